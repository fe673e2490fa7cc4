"""
Prescription endpoints, including the printable HTML rendering.
"""
from __future__ import annotations

from django.http import HttpResponse
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.permissions import IsDoctor, IsDoctorOrReadOnlyStaff
from emr.serializers.prescriptions import (
    PrescriptionCreateSerializer, PrescriptionListQuerySerializer, PrescriptionUpdateSerializer,
    PrintQuerySerializer,
)
from emr.services import prescriptions as svc
from emr.services.common import page_payload, paginate
from emr.services.layouts import print_prescription_html


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def prescriptions(request):
    if request.method == 'POST':
        s = PrescriptionCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        rx = svc.create_prescription(request.user, s.validated_data)
        return Response({'ok': True, 'prescription': svc.prescription_to_dict(rx)}, status=201)

    q = PrescriptionListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = svc.list_prescriptions(request.user, patient_id=vd.get('patientId'), status=vd.get('status'))
    items, total, page, page_size = paginate(qs, vd.get('page'), vd.get('pageSize'))
    return Response(page_payload([svc.prescription_to_dict(rx) for rx in items], total, page, page_size))


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsDoctorOrReadOnlyStaff])
def prescription_detail(request, prescription_id: int):
    rx = svc.get_prescription_or_raise(request.user, prescription_id)
    if request.method == 'GET':
        return Response({'ok': True, 'prescription': svc.prescription_to_dict(rx)})
    if request.method == 'DELETE':
        svc.delete_prescription(request.user, rx)
        return Response({'ok': True})
    s = PrescriptionUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    rx = svc.update_prescription(request.user, rx, s.validated_data)
    return Response({'ok': True, 'prescription': svc.prescription_to_dict(rx)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctor])
def prescription_stats(request):
    return Response({'ok': True, 'stats': svc.prescription_stats(request.user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctorOrReadOnlyStaff])
def prescription_print(request, prescription_id: int):
    """Printable HTML of the prescription, rendered with the doctor's layout."""
    rx = svc.get_prescription_or_raise(request.user, prescription_id)
    q = PrintQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    html = print_prescription_html(rx.doctor, svc.print_data(rx), layout_id=q.validated_data.get('layoutId'),
                                   overrides={'autoPrint': q.validated_data['autoPrint']})
    return HttpResponse(html, content_type='text/html; charset=utf-8')
