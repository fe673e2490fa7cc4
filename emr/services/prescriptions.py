import logging
from collections import Counter
from datetime import timedelta

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from emr.models import Consultation, Prescription
from emr.services.audit import log_action
from emr.services.common import MAX_ITEM_LENGTH, clean_text, is_super, iso
from emr.services.patients import calculate_age, get_patient_or_raise

logger = logging.getLogger(__name__)

MEDICATION_FIELDS = ('name', 'dosage', 'frequency', 'duration', 'instructions')
REQUIRED_MEDICATION_FIELDS = ('name', 'dosage', 'frequency', 'duration')


def clean_medications(medications) -> list:
    """Validate and sanitise the medication list of a prescription."""
    if not isinstance(medications, list) or not medications:
        raise ValidationError({'medications': 'La receta debe incluir al menos un medicamento'})
    cleaned = []
    for index, med in enumerate(medications, start=1):
        if not isinstance(med, dict):
            raise ValidationError({'medications': f'Medicamento {index} no válido'})
        item = {}
        for field in MEDICATION_FIELDS:
            value = med.get(field) or ''
            if not isinstance(value, str):
                value = str(value)
            item[field] = clean_text(value, MAX_ITEM_LENGTH)
        missing = [f for f in REQUIRED_MEDICATION_FIELDS if not item[f]]
        if missing:
            raise ValidationError({'medications': f"Medicamento {index}: faltan {', '.join(missing)}"})
        cleaned.append(item)
    return cleaned


def prescription_to_dict(rx: Prescription) -> dict:
    return {
        'id': rx.id,
        'patientId': rx.patient_id,
        'patientName': rx.patient.full_name,
        'doctorId': rx.doctor_id,
        'clinicId': rx.clinic_id,
        'consultationId': rx.consultation_id,
        'medications': rx.medications,
        'diagnosis': rx.diagnosis,
        'notes': rx.notes,
        'durationDays': rx.duration_days,
        'status': rx.status,
        'expiresAt': iso(rx.expires_at),
        'createdAt': iso(rx.created_at),
    }


def list_prescriptions(doctor, *, patient_id=None, status=None):
    qs = Prescription.objects.filter(deleted_at__isnull=True).select_related('patient')
    if not is_super(doctor):
        qs = qs.filter(doctor=doctor)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if status:
        qs = qs.filter(status=status)
    return qs.order_by('-created_at', '-id')


def get_prescription_or_raise(user, prescription_id) -> Prescription:
    rx = Prescription.objects.select_related('patient', 'doctor', 'clinic').filter(
        id=prescription_id, deleted_at__isnull=True).first()
    if not rx:
        raise NotFound('Receta no encontrada')
    get_patient_or_raise(user, rx.patient_id)
    return rx


def _ensure_author(user, rx: Prescription) -> None:
    if not (is_super(user) or rx.doctor_id == user.id):
        raise PermissionDenied('Solo el médico que emitió la receta puede modificarla')


@transaction.atomic
def create_prescription(doctor, data: dict) -> Prescription:
    patient = get_patient_or_raise(doctor, data['patientId'])
    consultation = None
    if data.get('consultationId'):
        consultation = Consultation.objects.filter(id=data['consultationId'], patient=patient).first()
        if not consultation:
            raise ValidationError({'consultationId': 'La consulta no corresponde al paciente'})
    duration_days = data.get('durationDays')
    rx = Prescription.objects.create(
        patient=patient,
        doctor=doctor,
        clinic=patient.clinic,
        consultation=consultation,
        medications=clean_medications(data.get('medications')),
        diagnosis=clean_text(data.get('diagnosis')),
        notes=clean_text(data.get('notes')),
        duration_days=duration_days,
        expires_at=timezone.now() + timedelta(days=duration_days) if duration_days else None,
    )
    try:
        log_action(user=doctor, action='prescription_create', object_type='prescription', object_id=rx.id,
                   detail={'patientId': patient.id, 'medications': len(rx.medications)}, clinic=rx.clinic)
    except Exception:
        logger.warning('audit write failed for prescription_create', exc_info=True)
    return rx


def update_prescription(user, rx: Prescription, data: dict) -> Prescription:
    _ensure_author(user, rx)
    if 'medications' in data:
        rx.medications = clean_medications(data['medications'])
    if 'diagnosis' in data:
        rx.diagnosis = clean_text(data['diagnosis'])
    if 'notes' in data:
        rx.notes = clean_text(data['notes'])
    if 'status' in data:
        rx.status = data['status']
    if 'durationDays' in data:
        rx.duration_days = data['durationDays']
        rx.expires_at = rx.created_at + timedelta(days=rx.duration_days) if rx.duration_days else None
    rx.save()
    return rx


def delete_prescription(user, rx: Prescription) -> None:
    _ensure_author(user, rx)
    rx.deleted_at = timezone.now()
    rx.save(update_fields=['deleted_at', 'updated_at'])
    try:
        log_action(user=user, action='prescription_delete', object_type='prescription', object_id=rx.id,
                   clinic=rx.clinic)
    except Exception:
        logger.warning('audit write failed for prescription_delete', exc_info=True)


def prescription_stats(doctor, today=None) -> dict:
    qs = Prescription.objects.filter(doctor=doctor, deleted_at__isnull=True)
    today = today or timezone.localdate()
    counter = Counter()
    for meds in qs.values_list('medications', flat=True):
        for med in meds or []:
            name = (med.get('name') or '').strip().lower() if isinstance(med, dict) else ''
            if name:
                counter[name] += 1
    return {
        'total': qs.count(),
        'active': qs.filter(status=Prescription.STATUS_ACTIVE).count(),
        'completed': qs.filter(status=Prescription.STATUS_COMPLETED).count(),
        'thisMonth': qs.filter(created_at__date__gte=today.replace(day=1)).count(),
        'mostPrescribed': [{'name': n, 'count': c} for n, c in counter.most_common(5)],
    }


def print_data(rx: Prescription) -> dict:
    """Variables available to ``{{...}}`` placeholders when printing."""
    doctor = rx.doctor
    age = calculate_age(rx.patient.birth_date)
    return {
        'patientName': rx.patient.full_name,
        'doctorName': doctor.display_name,
        'doctorLicense': doctor.professional_license,
        'clinicName': rx.clinic.name,
        'diagnosis': rx.diagnosis,
        'medications': rx.medications,
        'notes': rx.notes,
        'date': timezone.localtime(rx.created_at).strftime('%d/%m/%Y'),
        'patientAge': f'{age} años' if age is not None else '',
        'prescriptionId': str(rx.id),
    }
