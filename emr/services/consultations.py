import logging

from django.db import transaction
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from emr.models import Appointment, Consultation
from emr.services.audit import log_action
from emr.services.clinics import is_clinic_admin
from emr.services.common import clean_text, is_super, iso
from emr.services.patients import get_patient_or_raise

logger = logging.getLogger(__name__)

_TEXT_FIELDS = {
    'currentCondition': 'current_condition',
    'diagnosis': 'diagnosis',
    'prognosis': 'prognosis',
    'treatment': 'treatment',
}


def consultation_to_dict(c: Consultation) -> dict:
    return {
        'id': c.id,
        'patientId': c.patient_id,
        'doctorId': c.doctor_id,
        'clinicId': c.clinic_id,
        'appointmentId': c.appointment_id,
        'currentCondition': c.current_condition,
        'vitalSigns': c.vital_signs,
        'physicalExamination': c.physical_examination,
        'diagnosis': c.diagnosis,
        'prognosis': c.prognosis,
        'treatment': c.treatment,
        'createdAt': iso(c.created_at),
        'updatedAt': iso(c.updated_at),
    }


def _apply(c: Consultation, data: dict) -> None:
    for key, field in _TEXT_FIELDS.items():
        if key in data:
            setattr(c, field, clean_text(data[key], 5000))
    if data.get('vitalSigns') is not None:
        c.vital_signs = data['vitalSigns']
    if data.get('physicalExamination') is not None:
        c.physical_examination = data['physicalExamination']


def get_consultation_or_raise(user, consultation_id) -> Consultation:
    c = Consultation.objects.select_related('patient').filter(id=consultation_id).first()
    if not c:
        raise NotFound('Consulta no encontrada')
    get_patient_or_raise(user, c.patient_id)
    return c


def list_for_patient(user, patient_id):
    patient = get_patient_or_raise(user, patient_id)
    return Consultation.objects.filter(patient=patient).order_by('-created_at', '-id')


@transaction.atomic
def create_consultation(doctor, data: dict) -> Consultation:
    patient = get_patient_or_raise(doctor, data['patientId'])
    c = Consultation(patient=patient, doctor=doctor, clinic=patient.clinic)
    _apply(c, data)
    appointment_id = data.get('appointmentId')
    if appointment_id:
        appt = Appointment.objects.filter(id=appointment_id, patient=patient).first()
        if not appt:
            raise ValidationError({'appointmentId': 'La cita no corresponde al paciente'})
        c.appointment = appt
        if appt.status == Appointment.STATUS_IN_PROGRESS:
            appt.status = Appointment.STATUS_COMPLETED
            appt.save(update_fields=['status', 'updated_at'])
    c.save()
    try:
        log_action(user=doctor, action='consultation_create', object_type='consultation', object_id=c.id,
                   detail={'patientId': patient.id}, clinic=c.clinic)
    except Exception:
        logger.warning('audit write failed for consultation_create', exc_info=True)
    return c


def update_consultation(user, c: Consultation, data: dict) -> Consultation:
    if not (is_super(user) or c.doctor_id == user.id or is_clinic_admin(user, c.clinic_id)):
        raise PermissionDenied('Solo el médico tratante puede editar la consulta')
    _apply(c, data)
    c.save()
    try:
        log_action(user=user, action='consultation_update', object_type='consultation', object_id=c.id,
                   detail={'fields': sorted(data.keys())})
    except Exception:
        logger.warning('audit write failed for consultation_update', exc_info=True)
    return c
