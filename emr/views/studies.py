"""
Medical studies (lab and imaging orders) and their result files.

Uploaded files are validated and de-duplicated by
:mod:`emr.services.file_storage`; validation failures come back as 400
with the reason, duplicates as 409.
"""
from __future__ import annotations

from django.db import transaction
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.models import MedicalTest, MedicalTestFile
from emr.permissions import IsClinicStaff
from emr.serializers.studies import FileUploadSerializer, StudyCreateSerializer, StudyUpdateSerializer
from emr.services import file_storage
from emr.services.common import clean_text, iso
from emr.services.patients import get_patient_or_raise


def study_to_dict(t: MedicalTest) -> dict:
    return {
        'id': t.id,
        'patientId': t.patient_id,
        'doctorId': t.doctor_id,
        'category': t.category,
        'testName': t.test_name,
        'status': t.status,
        'orderedDate': iso(t.ordered_date),
        'resultDate': iso(t.result_date),
        'labName': t.lab_name,
        'notes': t.notes,
        'fileCount': t.files.count(),
        'createdAt': iso(t.created_at),
    }


def _study_or_404(user, study_id) -> MedicalTest:
    t = MedicalTest.objects.select_related('patient').filter(id=study_id).first()
    if not t:
        raise NotFound('Estudio no encontrado')
    get_patient_or_raise(user, t.patient_id)
    return t


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def studies(request):
    if request.method == 'POST':
        s = StudyCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        patient = get_patient_or_raise(request.user, vd['patientId'])
        t = MedicalTest.objects.create(
            patient=patient,
            doctor=request.user if request.user.role == 'doctor' else None,
            category=vd['category'],
            test_name=clean_text(vd['testName'], 255),
            lab_name=clean_text(vd.get('labName'), 255),
            notes=clean_text(vd.get('notes')),
        )
        return Response({'ok': True, 'study': study_to_dict(t)}, status=201)

    patient_id = request.query_params.get('patientId')
    patient = get_patient_or_raise(request.user, patient_id if patient_id and patient_id.isdigit() else 0)
    qs = MedicalTest.objects.filter(patient=patient).order_by('-created_at', '-id')
    return Response({'ok': True, 'data': [study_to_dict(t) for t in qs]})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def study_detail(request, study_id: int):
    t = _study_or_404(request.user, study_id)
    if request.method == 'GET':
        return Response({'ok': True, 'study': study_to_dict(t)})
    if request.method == 'DELETE':
        with transaction.atomic():
            for f in list(t.files.all()):
                file_storage.delete(f)
            t.delete()
        return Response({'ok': True})
    s = StudyUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    if 'status' in vd:
        t.status = vd['status']
    if 'resultDate' in vd:
        t.result_date = vd['resultDate']
    if 'labName' in vd:
        t.lab_name = clean_text(vd['labName'], 255)
    if 'notes' in vd:
        t.notes = clean_text(vd['notes'])
    t.save()
    return Response({'ok': True, 'study': study_to_dict(t)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
@parser_classes([MultiPartParser, FormParser])
def study_files(request, study_id: int):
    t = _study_or_404(request.user, study_id)
    if request.method == 'GET':
        return Response({'ok': True, 'data': [file_storage.file_to_dict(f) for f in file_storage.list_files(t)]})
    s = FileUploadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    try:
        result = file_storage.upload(s.validated_data['file'], t, request.user)
    except ValueError as e:
        return Response({'ok': False, 'error': {'code': 'invalid_file', 'message': str(e)}}, status=400)
    return Response({'ok': True, 'file': result}, status=201)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def study_file_delete(request, study_id: int, file_id: int):
    t = _study_or_404(request.user, study_id)
    record = MedicalTestFile.objects.filter(id=file_id, test=t).first()
    if not record:
        raise NotFound('Archivo no encontrado')
    file_storage.delete(record)
    return Response({'ok': True})
