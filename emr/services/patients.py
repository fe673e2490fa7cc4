import logging
from datetime import date, datetime

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from emr.models import Appointment, Consultation, MedicalTest, Patient, Prescription
from emr.services.audit import log_action
from emr.services.common import (
    active_clinic_or_raise, clean_list, clean_text, is_super, is_valid_email, is_valid_phone, iso,
)

logger = logging.getLogger(__name__)

# serializer field -> model field
_TEXT_FIELDS = {
    'fullName': 'full_name',
    'address': 'address',
    'curp': 'curp',
    'cityOfBirth': 'city_of_birth',
    'cityOfResidence': 'city_of_residence',
    'socialSecurityNumber': 'social_security_number',
}
_JSON_FIELDS = {
    'insuranceInfo': 'insurance_info',
    'emergencyContact': 'emergency_contact',
    'pathologicalHistory': 'pathological_history',
    'nonPathologicalHistory': 'non_pathological_history',
}


def calculate_age(birth_date, today=None):
    if not birth_date:
        return None
    today = today or timezone.localdate()
    return today.year - birth_date.year - ((today.month, today.day) < (birth_date.month, birth_date.day))


def patient_to_dict(p: Patient) -> dict:
    return {
        'id': p.id,
        'clinicId': p.clinic_id,
        'fullName': p.full_name,
        'birthDate': iso(p.birth_date),
        'age': calculate_age(p.birth_date),
        'gender': p.gender,
        'email': p.email,
        'phone': p.phone,
        'address': p.address,
        'curp': p.curp,
        'cityOfBirth': p.city_of_birth,
        'cityOfResidence': p.city_of_residence,
        'socialSecurityNumber': p.social_security_number,
        'primaryDoctorId': p.primary_doctor_id,
        'insuranceInfo': p.insurance_info,
        'emergencyContact': p.emergency_contact,
        'pathologicalHistory': p.pathological_history,
        'nonPathologicalHistory': p.non_pathological_history,
        'hereditaryBackground': p.hereditary_background,
        'isActive': p.is_active,
        'createdAt': iso(p.created_at),
        'updatedAt': iso(p.updated_at),
    }


def validate_contact(email: str, phone: str) -> None:
    errors = {}
    if email and not is_valid_email(email):
        errors['email'] = 'Correo electrónico no válido'
    if phone and not is_valid_phone(phone):
        errors['phone'] = 'Teléfono no válido'
    if errors:
        raise ValidationError(errors)


def _apply(patient: Patient, data: dict) -> None:
    for key, field in _TEXT_FIELDS.items():
        if key in data:
            setattr(patient, field, clean_text(data[key], 255 if field != 'address' else 1000))
    for key, field in _JSON_FIELDS.items():
        if key in data and data[key] is not None:
            setattr(patient, field, data[key])
    if 'hereditaryBackground' in data:
        patient.hereditary_background = clean_list(data['hereditaryBackground'])
    if 'birthDate' in data:
        patient.birth_date = data['birthDate']
    if 'gender' in data:
        patient.gender = data['gender'] or ''
    if 'email' in data:
        patient.email = (data['email'] or '').strip()
    if 'phone' in data:
        patient.phone = (data['phone'] or '').strip()


def scoped_patients(user, clinic_id=None):
    clinic = active_clinic_or_raise(user, clinic_id)
    qs = Patient.objects.all()
    if clinic is not None:
        qs = qs.filter(clinic=clinic)
    return qs


def get_patient_or_raise(user, patient_id) -> Patient:
    """Load a patient the user may see (same active clinic, or super)."""
    p = Patient.objects.select_related('clinic').filter(id=patient_id).first()
    if not p:
        raise NotFound('Paciente no encontrado')
    if is_super(user):
        return p
    clinic = active_clinic_or_raise(user)
    if p.clinic_id != clinic.id:
        raise PermissionDenied('El paciente pertenece a otra clínica')
    return p


def search_patients(user, q=None, *, clinic_id=None, include_inactive=False):
    qs = scoped_patients(user, clinic_id)
    if not include_inactive:
        qs = qs.filter(is_active=True)
    if q:
        qs = qs.filter(full_name__icontains=q.strip())
    return qs.order_by('full_name', 'id')


@transaction.atomic
def create_patient(user, data: dict, *, clinic=None, primary_doctor=None) -> Patient:
    clinic = clinic or active_clinic_or_raise(user, data.get('clinicId'))
    if clinic is None:
        raise ValidationError({'clinicId': 'Se requiere una clínica'})
    validate_contact(data.get('email'), data.get('phone'))
    name = clean_text(data.get('fullName'), 255)
    if len(name) < 2:
        raise ValidationError({'fullName': 'El nombre debe tener al menos 2 caracteres'})
    patient = Patient(clinic=clinic)
    _apply(patient, data)
    patient.full_name = name
    if primary_doctor is not None:
        patient.primary_doctor = primary_doctor
    elif getattr(user, 'role', '') == 'doctor':
        patient.primary_doctor = user
    patient.save()
    try:
        log_action(user=user, action='patient_create', object_type='patient', object_id=patient.id,
                   detail={'clinicId': clinic.id}, clinic=clinic)
    except Exception:
        logger.warning('audit write failed for patient_create', exc_info=True)
    return patient


def update_patient(user, patient: Patient, data: dict) -> Patient:
    validate_contact(data.get('email'), data.get('phone'))
    _apply(patient, data)
    if len(patient.full_name) < 2:
        raise ValidationError({'fullName': 'El nombre debe tener al menos 2 caracteres'})
    patient.save()
    try:
        log_action(user=user, action='patient_update', object_type='patient', object_id=patient.id,
                   detail={'fields': sorted(data.keys())})
    except Exception:
        logger.warning('audit write failed for patient_update', exc_info=True)
    return patient


def delete_patient(user, patient: Patient, hard: bool = False) -> None:
    pid = patient.id
    if hard:
        patient.delete()
    else:
        patient.is_active = False
        patient.save(update_fields=['is_active', 'updated_at'])
    try:
        log_action(user=user, action='patient_delete', object_type='patient', object_id=pid,
                   detail={'hard': hard})
    except Exception:
        logger.warning('audit write failed for patient_delete', exc_info=True)


def patient_stats(user, clinic_id=None, today: date = None) -> dict:
    qs = scoped_patients(user, clinic_id).filter(is_active=True)
    today = today or timezone.localdate()
    month_start = today.replace(day=1)
    return {
        'total': qs.count(),
        'newThisMonth': qs.filter(created_at__date__gte=month_start).count(),
        'activeThisMonth': qs.filter(consultations__created_at__date__gte=month_start).distinct().count(),
    }


def patient_timeline(patient: Patient, limit: int = 50) -> list:
    """Consultations, prescriptions, appointments and studies merged newest first."""
    events = []
    for c in Consultation.objects.filter(patient=patient).order_by('-created_at')[:limit]:
        events.append({'kind': 'consultation', 'id': c.id, 'at': c.created_at,
                       'title': c.diagnosis or c.current_condition[:80], 'doctorId': c.doctor_id})
    for rx in Prescription.objects.filter(patient=patient, deleted_at__isnull=True).order_by('-created_at')[:limit]:
        events.append({'kind': 'prescription', 'id': rx.id, 'at': rx.created_at,
                       'title': rx.diagnosis, 'status': rx.status, 'doctorId': rx.doctor_id})
    for a in Appointment.objects.filter(patient=patient).order_by('-appointment_date', '-appointment_time')[:limit]:
        at = timezone.make_aware(datetime.combine(a.appointment_date, a.appointment_time))
        events.append({'kind': 'appointment', 'id': a.id, 'at': at,
                       'title': a.title, 'status': a.status, 'doctorId': a.doctor_id})
    for t in MedicalTest.objects.filter(patient=patient).order_by('-created_at')[:limit]:
        events.append({'kind': 'study', 'id': t.id, 'at': t.created_at,
                       'title': t.test_name, 'status': t.status, 'doctorId': t.doctor_id})
    events.sort(key=lambda e: e['at'], reverse=True)
    for e in events:
        e['at'] = e['at'].isoformat()
    return events[:limit]
