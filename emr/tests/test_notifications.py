from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from emr.models import Clinic, ClinicMembership, Consultation, Notification, User
from emr.services import notifications as svc
from emr.services.clinical_rules import RULES, process_clinical_rules

from .helpers import api, make_staff

pytestmark = pytest.mark.django_db


def consult(patient, doctor, diagnosis, days_ago):
    c = Consultation.objects.create(patient=patient, doctor=doctor, clinic=patient.clinic, diagnosis=diagnosis)
    Consultation.objects.filter(id=c.id).update(created_at=timezone.now() - timedelta(days=days_ago))
    return c


def test_inbox_endpoints(doctor, clinic):
    svc.notify(doctor, title='Cita', message='Nueva cita', category='appointment', clinic=clinic)
    second = svc.notify(doctor, title='Aviso', message='Sistema')
    svc.notify(make_staff('otro', clinic), title='Ajena', message='x')
    client = api(doctor)

    r = client.get('/api/notifications')
    assert r.status_code == 200
    assert [n['title'] for n in r.data['data']] == ['Aviso', 'Cita']
    assert r.data['pagination']['total'] == 2

    r = client.get('/api/notifications', {'category': 'appointment'})
    assert [n['title'] for n in r.data['data']] == ['Cita']

    r = client.post('/api/notifications/read', {'ids': [second.id]}, format='json')
    assert r.data['updated'] == 1
    stats = client.get('/api/notifications/stats').data['stats']
    assert stats == {'total': 2, 'unread': 1, 'byCategory': {'appointment': 1, 'system': 1}}

    r = client.get('/api/notifications', {'unread': 'true'})
    assert [n['title'] for n in r.data['data']] == ['Cita']

    assert client.post('/api/notifications/clear-read').data['deleted'] == 1
    assert client.post('/api/notifications/read', {}, format='json').data['updated'] == 1
    assert Notification.objects.filter(user=doctor, is_read=False).count() == 0
    assert Notification.objects.filter(title='Ajena', is_read=False).exists()


def test_overdue_diabetic_gets_single_reminder(doctor, patient):
    consult(patient, doctor, 'Diabetes mellitus tipo 2', days_ago=200)
    result = process_clinical_rules()
    assert result['processed_rules'] == len(RULES)
    assert result['notifications_created'] == 1

    n = Notification.objects.get(user=doctor)
    assert n.category == 'clinical_rule'
    assert n.priority == 'high'
    assert n.patient_id == patient.id
    assert n.data['rule'] == 'diabetes_follow_up'
    assert 'Juan Pérez' in n.message

    # unread reminder is not repeated
    assert process_clinical_rules()['notifications_created'] == 0
    svc.mark_read(doctor)
    assert process_clinical_rules()['notifications_created'] == 1


def test_recent_consultation_suppresses_reminder(doctor, patient):
    consult(patient, doctor, 'HTA', days_ago=400)
    consult(patient, doctor, 'Control', days_ago=10)
    assert process_clinical_rules()['notifications_created'] == 0


def test_reminder_goes_to_last_doctor_without_primary(doctor, clinic, patient):
    patient.primary_doctor = None
    patient.save()
    colleague = make_staff('dr_ruiz', clinic)
    consult(patient, colleague, 'Cardiopatía isquémica', days_ago=120)
    process_clinical_rules()
    assert Notification.objects.filter(user=colleague, data__rule='cardiopathy_follow_up').exists()
    assert not Notification.objects.filter(user=doctor).exists()


def test_process_clinical_rules_command(doctor, patient):
    consult(patient, doctor, 'dm2', days_ago=365)
    out = StringIO()
    call_command('process_clinical_rules', stdout=out)
    text = out.getvalue()
    assert 'rule diabetes_follow_up: every 6 months' in text
    assert 'Processed 3 rules, 1 notifications' in text


def test_ensure_demo_users_is_idempotent():
    call_command('ensure_demo_users', stdout=StringIO())
    call_command('ensure_demo_users', '--password', 'otra-clave-1', stdout=StringIO())
    clinic = Clinic.objects.get(name='Clínica Demo')
    assert User.objects.filter(username__in=['doctor1', 'recepcion1', 'super']).count() == 3
    assert ClinicMembership.objects.filter(clinic=clinic).count() == 2
    doctor = User.objects.get(username='doctor1')
    assert doctor.check_password('otra-clave-1')
    assert doctor.clinic_id == clinic.id
    assert ClinicMembership.objects.get(user=doctor).is_clinic_admin
