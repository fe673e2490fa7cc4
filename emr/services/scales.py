"""
Clinical scale assessments (PHQ-9, Barthel, ...) recorded for a patient,
either by the doctor during care or by the patient through a
self-registration link that requested them.
"""
import logging
from typing import Optional

from rest_framework.exceptions import ValidationError

from emr.models import Consultation, ScaleAssessment
from emr.services.common import clean_text, iso

logger = logging.getLogger(__name__)


def assessment_to_dict(a: ScaleAssessment) -> dict:
    return {
        'id': a.id,
        'patientId': a.patient_id,
        'doctorId': a.doctor_id,
        'consultationId': a.consultation_id,
        'scaleId': a.scale_id,
        'answers': a.answers,
        'score': a.score,
        'severity': a.severity,
        'interpretation': a.interpretation,
        'createdAt': iso(a.created_at),
        'updatedAt': iso(a.updated_at),
    }


def list_assessments(patient, scale_id: Optional[str] = None):
    qs = ScaleAssessment.objects.filter(patient=patient)
    if scale_id:
        qs = qs.filter(scale_id=scale_id)
    return qs.order_by('-created_at', '-id')


def record_assessment(user, patient, data: dict) -> ScaleAssessment:
    consultation = None
    if data.get('consultationId'):
        consultation = Consultation.objects.filter(id=data['consultationId'], patient=patient).first()
        if consultation is None:
            raise ValidationError({'consultationId': 'La consulta no pertenece a este paciente'})
    a = ScaleAssessment.objects.create(
        patient=patient,
        doctor=user if getattr(user, 'role', '') == 'doctor' else None,
        consultation=consultation,
        scale_id=data['scaleId'].strip(),
        answers=data.get('answers') or {},
        score=data.get('score'),
        severity=clean_text(data.get('severity'), 32),
        interpretation=data.get('interpretation'),
    )
    logger.info('scale %s recorded for patient %s', a.scale_id, patient.id)
    return a


def record_requested(patient, doctor, scales: dict, requested) -> list:
    """Store the scales answered through a registration link.

    Only scales the invitation asked for are accepted.
    """
    extra = sorted(set(scales) - set(requested or []))
    if extra:
        raise ValidationError({'scales': f"Escalas no solicitadas: {', '.join(extra)}"})
    return [
        ScaleAssessment.objects.create(
            patient=patient, doctor=doctor, scale_id=scale_id,
            answers=payload.get('answers') or {}, score=payload.get('score'),
            severity=clean_text(payload.get('severity'), 32),
        )
        for scale_id, payload in scales.items()
    ]
