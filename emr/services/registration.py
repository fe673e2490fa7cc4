"""
Public self-registration links.

A doctor generates a one-time token; the patient opens the public link,
fills their personal data and histories, and the record is created in
the doctor's clinic with that doctor as primary physician.
"""
import logging
import secrets
import string
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from emr.models import PatientRegistrationToken
from emr.services.audit import log_action
from emr.services.common import active_clinic_or_raise, clean_list, iso
from emr.services.patients import create_patient
from emr.services.scales import record_requested

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 64
TOKEN_ALPHABET = string.ascii_letters + string.digits
DEFAULT_SECTIONS = ['personal', 'pathological', 'non_pathological', 'hereditary']


def generate_token() -> str:
    return ''.join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def registration_link(token: str) -> str:
    return f"{settings.PUBLIC_APP_URL.rstrip('/')}/registro/{token}"


def create_token(doctor, *, scale_ids=None, allowed_sections=None, expires_in_hours: Optional[int] = None) -> dict:
    clinic = active_clinic_or_raise(doctor)
    if clinic is None:
        raise PermissionDenied('Selecciona una clínica activa para generar invitaciones')
    hours = expires_in_hours or settings.REGISTRATION_TOKEN_TTL_HOURS
    sections = [s for s in (allowed_sections or DEFAULT_SECTIONS) if s in DEFAULT_SECTIONS]
    row = PatientRegistrationToken.objects.create(
        token=generate_token(),
        doctor=doctor,
        clinic=clinic,
        selected_scale_ids=clean_list(scale_ids, 64),
        allowed_sections=sections or DEFAULT_SECTIONS,
        expires_at=timezone.now() + timedelta(hours=hours),
    )
    return {'token': row.token, 'link': registration_link(row.token), 'expiresAt': iso(row.expires_at)}


def _load_usable(token: str) -> PatientRegistrationToken:
    row = PatientRegistrationToken.objects.select_related('doctor', 'clinic').filter(token=token or '').first()
    if not row:
        raise ValidationError('Token inválido')
    if row.status != PatientRegistrationToken.STATUS_PENDING or row.expires_at < timezone.now():
        raise ValidationError('Token expirado o usado')
    return row


def validate_token(token: str) -> dict:
    row = _load_usable(token)
    return {
        'doctorName': row.doctor.display_name,
        'clinicName': row.clinic.name,
        'selectedScaleIds': row.selected_scale_ids,
        'allowedSections': row.allowed_sections or DEFAULT_SECTIONS,
        'expiresAt': iso(row.expires_at),
    }


@transaction.atomic
def complete_registration(token: str, personal: dict, pathological=None, non_pathological=None,
                          hereditary=None, scales=None) -> int:
    """Create the patient for ``token`` and close the invitation; returns the patient id."""
    row = _load_usable(token)
    # lock the invitation so two submissions cannot both create a patient
    row = PatientRegistrationToken.objects.select_for_update().select_related('doctor', 'clinic').get(id=row.id)
    if row.status != PatientRegistrationToken.STATUS_PENDING:
        raise ValidationError('Token expirado o usado')
    sections = row.allowed_sections or DEFAULT_SECTIONS
    data = dict(personal or {})
    if 'pathological' in sections and pathological:
        data['pathologicalHistory'] = pathological
    if 'non_pathological' in sections and non_pathological:
        data['nonPathologicalHistory'] = non_pathological
    if 'hereditary' in sections and hereditary:
        data['hereditaryBackground'] = hereditary
    patient = create_patient(row.doctor, data, clinic=row.clinic, primary_doctor=row.doctor)
    if scales:
        record_requested(patient, row.doctor, scales, row.selected_scale_ids)
    row.status = PatientRegistrationToken.STATUS_COMPLETED
    row.assigned_patient = patient
    row.save(update_fields=['status', 'assigned_patient'])
    try:
        log_action(user=row.doctor, action='patient_self_registration', object_type='patient',
                   object_id=patient.id, detail={'tokenId': row.id}, clinic=row.clinic)
    except Exception:
        logger.warning('audit write failed for patient_self_registration', exc_info=True)
    return patient.id
