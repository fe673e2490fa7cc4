"""
Patient record endpoints.

All reads and writes are scoped to the caller's active clinic by the
services layer; super admins may pass ``clinicId`` explicitly.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.permissions import IsClinicStaff, IsDoctorOrReadOnlyStaff
from emr.serializers.patients import PatientListQuerySerializer, PatientWriteSerializer
from emr.serializers.scales import ScaleAssessmentSerializer, ScaleQuerySerializer
from emr.services import patients as svc
from emr.services import scales
from emr.services.common import page_payload, paginate
from emr.services.file_storage import storage_stats


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def patients(request):
    if request.method == 'POST':
        s = PatientWriteSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        patient = svc.create_patient(request.user, s.validated_data)
        return Response({'ok': True, 'patient': svc.patient_to_dict(patient)}, status=201)

    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = svc.search_patients(request.user, vd.get('q'), clinic_id=vd.get('clinicId'),
                             include_inactive=vd.get('includeInactive', False))
    items, total, page, page_size = paginate(qs, vd.get('page'), vd.get('pageSize'))
    return Response(page_payload([svc.patient_to_dict(p) for p in items], total, page, page_size))


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def patient_detail(request, patient_id: int):
    patient = svc.get_patient_or_raise(request.user, patient_id)
    if request.method == 'GET':
        return Response({'ok': True, 'patient': svc.patient_to_dict(patient)})
    if request.method == 'DELETE':
        hard = request.query_params.get('hard') in ('1', 'true', 'True')
        svc.delete_patient(request.user, patient, hard=hard)
        return Response({'ok': True})
    s = PatientWriteSerializer(data=request.data, partial=request.method == 'PATCH')
    s.is_valid(raise_exception=True)
    patient = svc.update_patient(request.user, patient, s.validated_data)
    return Response({'ok': True, 'patient': svc.patient_to_dict(patient)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def patient_stats(request):
    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    stats = svc.patient_stats(request.user, clinic_id=q.validated_data.get('clinicId'))
    return Response({'ok': True, 'stats': stats})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def patient_timeline(request, patient_id: int):
    patient = svc.get_patient_or_raise(request.user, patient_id)
    return Response({'ok': True, 'data': svc.patient_timeline(patient)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def patient_storage(request, patient_id: int):
    patient = svc.get_patient_or_raise(request.user, patient_id)
    return Response({'ok': True, 'stats': storage_stats(patient)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDoctorOrReadOnlyStaff])
def patient_scales(request, patient_id: int):
    patient = svc.get_patient_or_raise(request.user, patient_id)
    if request.method == 'POST':
        s = ScaleAssessmentSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        a = scales.record_assessment(request.user, patient, s.validated_data)
        return Response({'ok': True, 'assessment': scales.assessment_to_dict(a)}, status=201)
    q = ScaleQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = scales.list_assessments(patient, q.validated_data.get('scaleId'))
    return Response({'ok': True, 'data': [scales.assessment_to_dict(a) for a in qs]})
