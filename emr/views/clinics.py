"""
Clinic registration and staff membership endpoints.

Staff request access to a clinic, clinic admins approve or reject the
request, and users switch between the clinics they are approved in.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.models import Clinic, ClinicMembership
from emr.permissions import IsClinicStaff
from emr.serializers.clinics import (
    AccessRequestSerializer, AuditQuerySerializer, ClinicCreateSerializer, ClinicSearchSerializer,
    InviteSerializer, RejectSerializer, SwitchClinicSerializer,
)
from emr.services import audit
from emr.services import clinics as svc
from emr.services.common import approved_membership, is_super, page_payload, paginate


def _clinic_or_404(clinic_id) -> Clinic:
    clinic = Clinic.objects.filter(id=clinic_id).first()
    if not clinic:
        raise NotFound('Clínica no encontrada')
    return clinic


def _membership_or_404(membership_id) -> ClinicMembership:
    m = ClinicMembership.objects.select_related('clinic', 'user').filter(id=membership_id).first()
    if not m:
        raise NotFound('Solicitud no encontrada')
    return m


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def register_clinic(request):
    s = ClinicCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    clinic = svc.register_clinic(request.user, s.validated_data)
    return Response({'ok': True, 'clinic': svc.clinic_to_dict(clinic)}, status=201)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def search_clinics(request):
    q = ClinicSearchSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': svc.search_clinics(q.validated_data.get('q'))})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def clinic_detail(request, clinic_id: int):
    clinic = _clinic_or_404(clinic_id)
    if not (is_super(request.user) or approved_membership(request.user, clinic.id)):
        raise PermissionDenied('No perteneces a esta clínica')
    return Response({'ok': True, 'clinic': svc.clinic_to_dict(clinic)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def request_access(request):
    s = AccessRequestSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    clinic = _clinic_or_404(s.validated_data['clinicId'])
    m = svc.request_access(request.user, clinic, s.validated_data['role'])
    return Response({'ok': True, 'membership': svc.membership_to_dict(m)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def invite_user(request, clinic_id: int):
    s = InviteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    clinic = _clinic_or_404(clinic_id)
    m = svc.invite_user(request.user, clinic, s.validated_data['user'].strip(), s.validated_data['role'])
    return Response({'ok': True, 'membership': svc.membership_to_dict(m)}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def approve_membership(request, membership_id: int):
    m = svc.approve(request.user, _membership_or_404(membership_id))
    return Response({'ok': True, 'membership': svc.membership_to_dict(m)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def reject_membership(request, membership_id: int):
    s = RejectSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    m = svc.reject(request.user, _membership_or_404(membership_id), s.validated_data.get('reason', ''))
    return Response({'ok': True, 'membership': svc.membership_to_dict(m)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def clinic_staff(request, clinic_id: int):
    clinic = _clinic_or_404(clinic_id)
    svc.ensure_clinic_admin_or_raise(request.user, clinic.id)
    return Response({'ok': True, 'staff': svc.staff_overview(clinic), 'stats': svc.staff_stats(clinic.id)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_clinic_status(request):
    return Response({'ok': True, **svc.user_clinic_status(request.user)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def switch_clinic(request):
    s = SwitchClinicSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    clinic = svc.switch_clinic(request.user, s.validated_data['clinicId'])
    return Response({'ok': True, 'clinic': svc.clinic_to_dict(clinic)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def clinic_audit(request, clinic_id: int):
    """Audit trail of one clinic, newest first; clinic admins only."""
    clinic = _clinic_or_404(clinic_id)
    svc.ensure_clinic_admin_or_raise(request.user, clinic.id)
    q = AuditQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = audit.clinic_events(clinic.id, action=vd.get('action'), object_type=vd.get('objectType'),
                             object_id=vd.get('objectId'), date_from=vd.get('dateFrom'), date_to=vd.get('dateTo'))
    items, total, page, page_size = paginate(qs, vd.get('page'), vd.get('pageSize'))
    return Response(page_payload([audit.event_to_dict(ev) for ev in items], total, page, page_size))
