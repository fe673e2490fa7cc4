"""
Proactive follow-up reminders for chronic patients.

A rule matches patients whose consultations mention a condition and whose
latest consultation is older than the rule's follow-up interval.  The
reminder goes to the patient's primary doctor, or to whoever saw them
last.  Meant to run daily from cron via ``manage.py process_clinical_rules``.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from django.db.models import Max, Q
from django.utils import timezone

from emr.models import Consultation, Notification, Patient
from emr.services.notifications import notify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FollowUpRule:
    key: str
    label: str
    keywords: tuple
    months: int


RULES = (
    FollowUpRule('diabetes_follow_up', 'diabetes', ('diabetes', 'dm2', 'dm tipo 2'), 6),
    FollowUpRule('hypertension_follow_up', 'hipertensión', ('hipertensi', 'hta'), 4),
    FollowUpRule('cardiopathy_follow_up', 'cardiopatía', ('cardiopat', 'insuficiencia cardiaca', 'infarto'), 3),
)


def _mentions(rule: FollowUpRule):
    q = Q()
    for kw in rule.keywords:
        q |= Q(diagnosis__icontains=kw) | Q(current_condition__icontains=kw)
    return Consultation.objects.filter(q).values('patient_id')


def _already_notified(rule: FollowUpRule, patient: Patient, user) -> bool:
    return Notification.objects.filter(
        user=user, patient=patient, category='clinical_rule', is_read=False, data__rule=rule.key,
    ).exists()


def _recipient(patient: Patient):
    if patient.primary_doctor_id:
        return patient.primary_doctor
    last = Consultation.objects.filter(patient=patient).select_related('doctor').order_by('-created_at').first()
    return last.doctor if last else None


def apply_rule(rule: FollowUpRule, now=None) -> int:
    now = now or timezone.now()
    # months approximated as 30 days
    cutoff = now - timedelta(days=30 * rule.months)
    patients = (
        Patient.objects.filter(is_active=True, id__in=_mentions(rule))
        .annotate(last_seen=Max('consultations__created_at')).filter(last_seen__lt=cutoff)
        .select_related('primary_doctor', 'clinic')
    )
    created = 0
    for patient in patients:
        user = _recipient(patient)
        if user is None or _already_notified(rule, patient, user):
            continue
        days = (now - patient.last_seen).days
        notify(
            user,
            title=f'Seguimiento pendiente: {rule.label}',
            message=(f'{patient.full_name} no tiene consulta desde hace {days} días. '
                     f'Se recomienda seguimiento cada {rule.months} meses.'),
            category='clinical_rule', priority='high', clinic=patient.clinic, patient=patient,
            data={'rule': rule.key, 'lastConsultation': patient.last_seen.isoformat(), 'days': days},
        )
        created += 1
    return created


def process_clinical_rules(now=None) -> dict:
    now = now or timezone.now()
    created = 0
    for rule in RULES:
        n = apply_rule(rule, now)
        logger.info('clinical rule %s created %d notifications', rule.key, n)
        created += n
    return {'processed_rules': len(RULES), 'notifications_created': created, 'processed_at': now.isoformat()}
