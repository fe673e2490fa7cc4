"""
Clinic registration and the staff membership workflow.

A membership row moves through ``pending -> approved | rejected`` and a
rejected request may be sent again (``rejected -> pending``).  Only the
clinic's admins (or a super admin) decide on requests.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from emr.models import Clinic, ClinicMembership, User
from emr.services.audit import log_action
from emr.services.common import approved_membership, clean_text, is_super, iso
from emr.services.notifications import notify

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    ClinicMembership.STATUS_PENDING: [ClinicMembership.STATUS_APPROVED, ClinicMembership.STATUS_REJECTED],
    ClinicMembership.STATUS_APPROVED: [],
    ClinicMembership.STATUS_REJECTED: [ClinicMembership.STATUS_PENDING],
}


def can_transition(current: str, new: str) -> bool:
    """Return True if a membership may move from ``current`` to ``new``."""
    return new in _TRANSITIONS.get(current, [])


def _stats_key(clinic_id) -> str:
    return f'clinic:staff-stats:{clinic_id}'


def _audit(user, action, membership, **detail):
    try:
        log_action(user=user, action=action, object_type='clinic_membership', object_id=membership.id,
                   detail={'clinicId': membership.clinic_id, 'userId': membership.user_id, **detail},
                   clinic=membership.clinic)
    except Exception:
        logger.warning('audit write failed for %s', action, exc_info=True)


def clinic_to_dict(c: Clinic) -> dict:
    return {
        'id': c.id,
        'name': c.name,
        'type': c.type,
        'address': c.address,
        'phone': c.phone,
        'email': c.email,
        'website': c.website,
        'licenseNumber': c.license_number,
        'directorName': c.director_name,
        'directorLicense': c.director_license,
        'settings': c.settings,
        'isActive': c.is_active,
        'createdAt': iso(c.created_at),
    }


def membership_to_dict(m: ClinicMembership) -> dict:
    return {
        'id': m.id,
        'clinicId': m.clinic_id,
        'clinicName': m.clinic.name,
        'userId': m.user_id,
        'userName': m.user.display_name,
        'email': m.user.email,
        'roleInClinic': m.role_in_clinic,
        'isClinicAdmin': m.is_clinic_admin,
        'status': m.status,
        'isActive': m.is_active,
        'invitedBy': m.invited_by_id,
        'approvedAt': iso(m.approved_at),
        'approvedBy': m.approved_by_id,
        'rejectedAt': iso(m.rejected_at),
        'rejectedBy': m.rejected_by_id,
        'rejectionReason': m.rejection_reason,
        'createdAt': iso(m.created_at),
    }


def is_clinic_admin(user, clinic_id) -> bool:
    if is_super(user):
        return True
    m = approved_membership(user, clinic_id)
    return bool(m and m.is_clinic_admin)


def ensure_clinic_admin_or_raise(user, clinic_id) -> None:
    if not is_clinic_admin(user, clinic_id):
        raise PermissionDenied('Solo los administradores de la clínica pueden realizar esta acción')


def bind_active_clinic(user: User, clinic: Clinic) -> None:
    user.clinic = clinic
    user.clinic_bind_time = timezone.now()
    user.save(update_fields=['clinic', 'clinic_bind_time'])


@transaction.atomic
def register_clinic(user: User, data: dict) -> Clinic:
    """Create a clinic and make its creator an approved clinic admin."""
    if getattr(user, 'role', '') not in ('doctor', 'admin_staff', 'super'):
        raise PermissionDenied('Solo el personal médico puede registrar clínicas')
    clinic = Clinic.objects.create(
        name=clean_text(data['name'], 255),
        type=data.get('type') or Clinic.TYPE_CLINIC,
        address=clean_text(data.get('address')),
        phone=data.get('phone') or '',
        email=data.get('email') or '',
        website=data.get('website') or '',
        license_number=data.get('licenseNumber') or '',
        director_name=clean_text(data.get('directorName'), 255),
        director_license=data.get('directorLicense') or '',
        settings=data.get('settings') or {},
    )
    role = ClinicMembership.ROLE_ADMIN_STAFF if user.role == 'admin_staff' else ClinicMembership.ROLE_DOCTOR
    m = ClinicMembership.objects.create(
        clinic=clinic, user=user, role_in_clinic=role, is_clinic_admin=True,
        status=ClinicMembership.STATUS_APPROVED, approved_at=timezone.now(), approved_by=user,
    )
    if not user.clinic_id:
        bind_active_clinic(user, clinic)
    _audit(user, 'clinic_register', m)
    return clinic


def search_clinics(q: Optional[str] = None, limit: int = 20) -> list:
    qs = Clinic.objects.filter(is_active=True)
    if q:
        qs = qs.filter(name__icontains=q.strip())
    return [clinic_to_dict(c) for c in qs.order_by('name')[:limit]]


@transaction.atomic
def request_access(user: User, clinic: Clinic, role: str = ClinicMembership.ROLE_DOCTOR,
                   invited_by: Optional[User] = None) -> ClinicMembership:
    """Create (or resend) a pending membership for ``user`` in ``clinic``."""
    if role not in dict(ClinicMembership.ROLE_CHOICES):
        raise ValidationError({'role': 'Rol no válido'})
    if not clinic.is_active:
        raise ValidationError('La clínica no está activa')
    existing = ClinicMembership.objects.select_for_update().filter(clinic=clinic, user=user).first()
    if existing:
        if existing.status == ClinicMembership.STATUS_PENDING:
            raise ValidationError('Ya tienes una solicitud pendiente para esta clínica')
        if existing.status == ClinicMembership.STATUS_APPROVED:
            raise ValidationError('Ya estás aprobado en esta clínica')
        existing.status = ClinicMembership.STATUS_PENDING
        existing.role_in_clinic = role
        existing.rejected_at = None
        existing.rejected_by = None
        existing.rejection_reason = ''
        existing.invited_by = invited_by or existing.invited_by
        existing.save()
        _audit(user, 'clinic_request_resend', existing)
        membership = existing
    else:
        membership = ClinicMembership.objects.create(
            clinic=clinic, user=user, role_in_clinic=role, invited_by=invited_by,
            status=ClinicMembership.STATUS_PENDING,
        )
        _audit(invited_by or user, 'clinic_request', membership)
    cache.delete(_stats_key(clinic.id))
    _notify_admins(clinic, membership)
    return membership


def invite_user(admin: User, clinic: Clinic, username_or_email: str, role: str) -> ClinicMembership:
    ensure_clinic_admin_or_raise(admin, clinic.id)
    target = (User.objects.filter(username=username_or_email).first()
              or User.objects.filter(email__iexact=username_or_email).first())
    if not target:
        raise NotFound('Usuario no encontrado')
    if target.role not in ('doctor', 'admin_staff'):
        raise ValidationError('Solo se puede invitar a médicos o personal administrativo')
    return request_access(target, clinic, role, invited_by=admin)


def _notify_admins(clinic: Clinic, membership: ClinicMembership) -> None:
    admins = ClinicMembership.objects.filter(
        clinic=clinic, is_clinic_admin=True, status=ClinicMembership.STATUS_APPROVED, is_active=True,
    ).exclude(user_id=membership.user_id).select_related('user')
    for a in admins:
        notify(a.user, title='Nueva solicitud de acceso',
               message=f'{membership.user.display_name} solicita unirse a {clinic.name}',
               category='staff', clinic=clinic, data={'membershipId': membership.id})


def _locked(membership: ClinicMembership) -> ClinicMembership:
    # re-read under a row lock so concurrent approve/reject see the committed status
    return ClinicMembership.objects.select_for_update().select_related('user', 'clinic').get(id=membership.id)


def _transition(membership: ClinicMembership, new_status: str) -> None:
    if not can_transition(membership.status, new_status):
        raise ValidationError(f'No se puede cambiar el estado de {membership.status} a {new_status}')


@transaction.atomic
def approve(admin: User, membership: ClinicMembership) -> ClinicMembership:
    ensure_clinic_admin_or_raise(admin, membership.clinic_id)
    membership = _locked(membership)
    _transition(membership, ClinicMembership.STATUS_APPROVED)
    membership.status = ClinicMembership.STATUS_APPROVED
    membership.is_active = True
    membership.approved_at = timezone.now()
    membership.approved_by = admin
    membership.save(update_fields=['status', 'is_active', 'approved_at', 'approved_by', 'updated_at'])
    if not membership.user.clinic_id:
        bind_active_clinic(membership.user, membership.clinic)
    cache.delete(_stats_key(membership.clinic_id))
    _audit(admin, 'clinic_approve', membership)
    notify(membership.user, title='Acceso aprobado',
           message=f'Tu solicitud para {membership.clinic.name} fue aprobada',
           category='staff', clinic=membership.clinic)
    return membership


@transaction.atomic
def reject(admin: User, membership: ClinicMembership, reason: str = '') -> ClinicMembership:
    ensure_clinic_admin_or_raise(admin, membership.clinic_id)
    membership = _locked(membership)
    _transition(membership, ClinicMembership.STATUS_REJECTED)
    membership.status = ClinicMembership.STATUS_REJECTED
    membership.rejected_at = timezone.now()
    membership.rejected_by = admin
    membership.rejection_reason = clean_text(reason)
    membership.save(update_fields=['status', 'rejected_at', 'rejected_by', 'rejection_reason', 'updated_at'])
    cache.delete(_stats_key(membership.clinic_id))
    _audit(admin, 'clinic_reject', membership, reason=membership.rejection_reason)
    notify(membership.user, title='Solicitud rechazada',
           message=f'Tu solicitud para {membership.clinic.name} fue rechazada',
           category='staff', clinic=membership.clinic, data={'reason': membership.rejection_reason})
    return membership


def staff_overview(clinic: Clinic) -> dict:
    qs = ClinicMembership.objects.filter(clinic=clinic).select_related('user', 'clinic')
    groups = {'approved': [], 'pending': [], 'rejected': []}
    for m in qs.order_by('created_at'):
        if m.status == ClinicMembership.STATUS_APPROVED and not m.is_active:
            continue
        groups[m.status].append(membership_to_dict(m))
    return groups


def staff_stats(clinic_id) -> dict:
    ck = _stats_key(clinic_id)
    cached = cache.get(ck)
    if cached:
        return cached
    qs = ClinicMembership.objects.filter(clinic_id=clinic_id)
    stats = {
        'total': qs.count(),
        'approved': qs.filter(status=ClinicMembership.STATUS_APPROVED, is_active=True).count(),
        'pending': qs.filter(status=ClinicMembership.STATUS_PENDING).count(),
        'rejected': qs.filter(status=ClinicMembership.STATUS_REJECTED).count(),
    }
    cache.set(ck, stats, settings.STAFF_STATS_CACHE_SECONDS)
    return stats


def user_clinic_status(user: User) -> dict:
    memberships = ClinicMembership.objects.filter(user=user, is_active=True).select_related('clinic', 'user')
    current = None
    if user.clinic_id:
        current = memberships.filter(clinic_id=user.clinic_id).first()
    current = current or memberships.order_by('-updated_at').first()
    if not current:
        return {'hasRelationship': False, 'memberships': []}
    return {
        'hasRelationship': True,
        'status': current.status,
        'clinic': {'id': current.clinic_id, 'name': current.clinic.name},
        'isClinicAdmin': current.is_clinic_admin,
        'memberships': [membership_to_dict(m) for m in memberships.order_by('created_at')],
    }


def switch_clinic(user: User, clinic_id) -> Clinic:
    m = approved_membership(user, clinic_id)
    if not m:
        raise PermissionDenied('No tienes acceso aprobado a esta clínica')
    bind_active_clinic(user, m.clinic)
    return m.clinic
