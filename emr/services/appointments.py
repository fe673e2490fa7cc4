"""
Appointment scheduling: business hours, double-booking detection and the
status workflow.

Times are naive wall-clock values in the clinic's timezone, the same way
the agenda stores them (``appointment_date`` + ``appointment_time``).
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from django.db import transaction
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from emr.exceptions import Conflict
from emr.models import Appointment, PracticeSchedule, User
from emr.services.audit import log_action
from emr.services.common import active_clinic_or_raise, approved_membership, clean_text, is_super, iso
from emr.services.patients import get_patient_or_raise

logger = logging.getLogger(__name__)

DAY_NAMES_ES = ('lunes', 'martes', 'miércoles', 'jueves', 'viernes', 'sábado', 'domingo')

_TRANSITIONS = {
    Appointment.STATUS_SCHEDULED: [
        Appointment.STATUS_CONFIRMED, Appointment.STATUS_IN_PROGRESS,
        Appointment.STATUS_CANCELLED, Appointment.STATUS_NO_SHOW,
    ],
    Appointment.STATUS_CONFIRMED: [
        Appointment.STATUS_IN_PROGRESS, Appointment.STATUS_CANCELLED, Appointment.STATUS_NO_SHOW,
    ],
    Appointment.STATUS_IN_PROGRESS: [Appointment.STATUS_COMPLETED, Appointment.STATUS_CANCELLED],
    Appointment.STATUS_COMPLETED: [],
    Appointment.STATUS_CANCELLED: [],
    Appointment.STATUS_NO_SHOW: [],
}


def _can_transition(current: str, new: str) -> bool:
    return new in _TRANSITIONS.get(current, [])


def appointment_to_dict(a: Appointment) -> dict:
    return {
        'id': a.id,
        'doctorId': a.doctor_id,
        'patientId': a.patient_id,
        'patientName': a.patient.full_name,
        'clinicId': a.clinic_id,
        'title': a.title,
        'description': a.description,
        'appointmentDate': a.appointment_date.isoformat(),
        'appointmentTime': a.appointment_time.strftime('%H:%M'),
        'duration': a.duration,
        'status': a.status,
        'type': a.type,
        'location': a.location,
        'notes': a.notes,
        'reminderSent': a.reminder_sent,
        'confirmationRequired': a.confirmation_required,
        'createdAt': iso(a.created_at),
        'updatedAt': iso(a.updated_at),
    }


def schedule_to_dict(s: PracticeSchedule) -> dict:
    def hhmm(t):
        return t.strftime('%H:%M') if t else None

    return {
        'weekdayStart': hhmm(s.weekday_start),
        'weekdayEnd': hhmm(s.weekday_end),
        'saturdayStart': hhmm(s.saturday_start),
        'saturdayEnd': hhmm(s.saturday_end),
        'sundayEnabled': s.sunday_enabled,
        'sundayStart': hhmm(s.sunday_start),
        'sundayEnd': hhmm(s.sunday_end),
        'defaultDuration': s.default_duration,
    }


_SCHEDULE_FIELDS = {
    'weekdayStart': 'weekday_start',
    'weekdayEnd': 'weekday_end',
    'saturdayStart': 'saturday_start',
    'saturdayEnd': 'saturday_end',
    'sundayEnabled': 'sunday_enabled',
    'sundayStart': 'sunday_start',
    'sundayEnd': 'sunday_end',
    'defaultDuration': 'default_duration',
}


def update_schedule(doctor, data: dict) -> PracticeSchedule:
    s, _ = PracticeSchedule.objects.get_or_create(doctor=doctor)
    for key, field in _SCHEDULE_FIELDS.items():
        if key in data:
            setattr(s, field, data[key])
    s.save()
    return s


def _hours_for(s: PracticeSchedule, day: date):
    weekday = day.weekday()
    if weekday < 5:
        return s.weekday_start, s.weekday_end
    if weekday == 5:
        return s.saturday_start, s.saturday_end
    return s.sunday_start, s.sunday_end


def check_business_hours(doctor, day: date, at: time) -> Optional[str]:
    """Return ``None`` when ``at`` falls inside the doctor's hours, else the reason."""
    s = PracticeSchedule.objects.filter(doctor=doctor).first()
    if s is None:
        return None
    if day.weekday() == 6 and not s.sunday_enabled:
        return 'No se programan citas los domingos'
    start, end = _hours_for(s, day)
    if not start or not end:
        return 'No hay horarios configurados para este día'
    if not (start <= at < end):
        return (f'La hora seleccionada está fuera del horario de consulta del {DAY_NAMES_ES[day.weekday()]} '
                f'({start:%H:%M} - {end:%H:%M})')
    return None


def find_conflict(doctor, day: date, at: time, duration: int, exclude_id=None) -> Optional[Appointment]:
    """First live appointment of the doctor that overlaps ``[at, at+duration)``.

    Neighbouring days are included so a late booking that runs past
    midnight still collides with the next morning.
    """
    qs = Appointment.objects.filter(
        doctor=doctor, appointment_date__range=(day - timedelta(days=1), day + timedelta(days=1)),
    ).exclude(status__in=Appointment.INACTIVE_STATUSES).select_related('patient')
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    start = datetime.combine(day, at)
    end = start + timedelta(minutes=duration)
    for other in qs.order_by('appointment_date', 'appointment_time'):
        other_start = datetime.combine(other.appointment_date, other.appointment_time)
        if start < other_start + timedelta(minutes=other.duration) and other_start < end:
            return other
    return None


def _lock_agenda(doctor) -> None:
    # serializes bookings per doctor between the overlap check and the insert
    User.objects.select_for_update().filter(id=doctor.id).first()


def _time_range(a: Appointment) -> dict:
    start = datetime.combine(a.appointment_date, a.appointment_time)
    return {'start': start.strftime('%H:%M'), 'end': (start + timedelta(minutes=a.duration)).strftime('%H:%M')}


def check_availability(doctor, day: date, at: time, duration: int = 30, exclude_id=None) -> dict:
    reason = check_business_hours(doctor, day, at)
    if reason:
        return {'available': False,
                'conflict_details': {'reason': 'outside_business_hours', 'message': reason}}
    other = find_conflict(doctor, day, at, duration, exclude_id)
    if other:
        return {'available': False, 'conflict_details': {
            'reason': 'appointment_conflict',
            'conflicting_appointment_id': other.id,
            'conflicting_time_range': _time_range(other),
            'patient_name': other.patient.full_name,
        }}
    return {'available': True, 'conflict_details': None}


def _ensure_slot(doctor, day, at, duration, exclude_id=None) -> None:
    reason = check_business_hours(doctor, day, at)
    if reason:
        raise ValidationError({'appointmentTime': reason})
    other = find_conflict(doctor, day, at, duration, exclude_id)
    if other:
        raise Conflict('El horario seleccionado ya está ocupado.', details={
            'conflicting_appointment_id': other.id,
            'conflicting_time_range': _time_range(other),
        })


def list_appointments(user, *, doctor_id=None, patient_id=None, date_from=None, date_to=None,
                      statuses=None, types=None):
    clinic = active_clinic_or_raise(user)
    qs = Appointment.objects.select_related('patient')
    if clinic is not None:
        qs = qs.filter(clinic=clinic)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if date_from:
        qs = qs.filter(appointment_date__gte=date_from)
    if date_to:
        qs = qs.filter(appointment_date__lte=date_to)
    if statuses:
        qs = qs.filter(status__in=statuses)
    if types:
        qs = qs.filter(type__in=types)
    return qs.order_by('appointment_date', 'appointment_time', 'id')


def get_appointment_or_raise(user, appointment_id) -> Appointment:
    a = Appointment.objects.select_related('patient').filter(id=appointment_id).first()
    if not a:
        raise NotFound('Cita no encontrada')
    get_patient_or_raise(user, a.patient_id)
    return a


def doctor_for(user, data: dict, clinic=None):
    """Resolve whose agenda a booking goes into.

    Doctors book for themselves unless ``doctorId`` says otherwise; anyone
    else must name the doctor.  The doctor must be an approved, active
    member of ``clinic`` (no restriction when ``clinic`` is None, i.e. a
    super admin without a target clinic).
    """
    doctor_id = data.get('doctorId')
    if not doctor_id:
        if getattr(user, 'role', '') != User.ROLE_DOCTOR:
            raise ValidationError({'doctorId': 'Selecciona el médico de la cita'})
        doctor_id = user.id
    doctor = User.objects.filter(id=doctor_id, role=User.ROLE_DOCTOR, is_active=True).first()
    if not doctor:
        raise ValidationError({'doctorId': 'Médico no encontrado'})
    if clinic is not None and not approved_membership(doctor, clinic.id):
        raise ValidationError({'doctorId': 'El médico no pertenece a esta clínica'})
    return doctor


@transaction.atomic
def schedule(user, data: dict) -> Appointment:
    """Create an appointment after checking business hours and overlaps.

    Staff must book for a doctor of the patient's clinic through
    ``doctorId``; a doctor books for themself by default.
    """
    patient = get_patient_or_raise(user, data['patientId'])
    doctor = doctor_for(user, data, patient.clinic)
    duration = data.get('duration') or 30
    _lock_agenda(doctor)
    _ensure_slot(doctor, data['appointmentDate'], data['appointmentTime'], duration)
    a = Appointment.objects.create(
        doctor=doctor,
        patient=patient,
        clinic=patient.clinic,
        title=clean_text(data.get('title'), 255) or 'Consulta',
        description=clean_text(data.get('description')),
        appointment_date=data['appointmentDate'],
        appointment_time=data['appointmentTime'],
        duration=duration,
        type=data.get('type') or 'consultation',
        location=clean_text(data.get('location'), 255),
        notes=clean_text(data.get('notes')),
        confirmation_required=bool(data.get('confirmationRequired')),
    )
    try:
        log_action(user=user, action='appointment_create', object_type='appointment', object_id=a.id,
                   detail={'doctorId': doctor.id, 'patientId': patient.id}, clinic=patient.clinic)
    except Exception:
        logger.warning('audit write failed for appointment_create', exc_info=True)
    return a


@transaction.atomic
def update_appointment(user, a: Appointment, data: dict) -> Appointment:
    new_date = data.get('appointmentDate') or a.appointment_date
    new_time = data.get('appointmentTime') or a.appointment_time
    new_duration = data.get('duration') or a.duration
    if (new_date, new_time, new_duration) != (a.appointment_date, a.appointment_time, a.duration):
        if not _TRANSITIONS.get(a.status):
            raise ValidationError({'appointmentDate': f'No se puede reprogramar una cita en estado {a.status}'})
        _lock_agenda(a.doctor)
        _ensure_slot(a.doctor, new_date, new_time, new_duration, exclude_id=a.id)
        a.appointment_date, a.appointment_time, a.duration = new_date, new_time, new_duration
    for key in ('title', 'description', 'location', 'notes'):
        if key in data:
            setattr(a, key, clean_text(data[key], 255 if key in ('title', 'location') else 1000))
    if data.get('type'):
        a.type = data['type']
    if 'confirmationRequired' in data:
        a.confirmation_required = bool(data['confirmationRequired'])
    a.save()
    return a


def change_status(user, a: Appointment, new_status: str) -> Appointment:
    if not _can_transition(a.status, new_status):
        raise ValidationError({'status': f'No se puede cambiar de {a.status} a {new_status}'})
    old = a.status
    a.status = new_status
    a.save(update_fields=['status', 'updated_at'])
    try:
        log_action(user=user, action='appointment_status', object_type='appointment', object_id=a.id,
                   detail={'from': old, 'to': new_status}, clinic=a.clinic)
    except Exception:
        logger.warning('audit write failed for appointment_status', exc_info=True)
    return a


def delete_appointment(user, a: Appointment) -> None:
    if not (is_super(user) or a.doctor_id == user.id):
        raise PermissionDenied('Solo el médico de la cita puede eliminarla')
    a.delete()
