"""
Appointment endpoints.

Scheduling refuses overlapping bookings with 409 and bookings outside
the doctor's business hours with 400.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.models import PracticeSchedule
from emr.permissions import IsClinicStaff, IsDoctor
from emr.serializers.appointments import (
    AppointmentCreateSerializer, AppointmentListQuerySerializer, AppointmentUpdateSerializer,
    AvailabilityQuerySerializer, ScheduleSerializer, StatusSerializer,
)
from emr.services import appointments as svc
from emr.services.common import active_clinic_or_raise


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def appointments(request):
    if request.method == 'POST':
        s = AppointmentCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        a = svc.schedule(request.user, s.validated_data)
        return Response({'ok': True, 'appointment': svc.appointment_to_dict(a)}, status=201)

    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    qs = svc.list_appointments(
        request.user, doctor_id=vd.get('doctorId'), patient_id=vd.get('patientId'),
        date_from=vd.get('dateFrom'), date_to=vd.get('dateTo'), statuses=vd.get('status'), types=vd.get('type'),
    )
    return Response({'ok': True, 'data': [svc.appointment_to_dict(a) for a in qs]})


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def appointment_detail(request, appointment_id: int):
    a = svc.get_appointment_or_raise(request.user, appointment_id)
    if request.method == 'GET':
        return Response({'ok': True, 'appointment': svc.appointment_to_dict(a)})
    if request.method == 'DELETE':
        svc.delete_appointment(request.user, a)
        return Response({'ok': True})
    s = AppointmentUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    a = svc.update_appointment(request.user, a, s.validated_data)
    return Response({'ok': True, 'appointment': svc.appointment_to_dict(a)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def appointment_status(request, appointment_id: int):
    a = svc.get_appointment_or_raise(request.user, appointment_id)
    s = StatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    a = svc.change_status(request.user, a, s.validated_data['status'])
    return Response({'ok': True, 'appointment': svc.appointment_to_dict(a)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinicStaff])
def availability(request):
    q = AvailabilityQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    doctor = svc.doctor_for(request.user, vd, active_clinic_or_raise(request.user))
    result = svc.check_availability(doctor, vd['date'], vd['time'], vd['duration'], vd.get('excludeId'))
    return Response({'ok': True, **result})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def practice_schedule(request):
    if request.method == 'POST':
        s = ScheduleSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        schedule = svc.update_schedule(request.user, s.validated_data)
    else:
        schedule = PracticeSchedule.objects.filter(doctor=request.user).first() or PracticeSchedule(doctor=request.user)
    return Response({'ok': True, 'schedule': svc.schedule_to_dict(schedule)})
