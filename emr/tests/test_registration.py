from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from emr.models import AuditEvent, Patient, PatientRegistrationToken, ScaleAssessment
from emr.services import registration

from .helpers import api

pytestmark = pytest.mark.django_db


def create_token(doctor, **data):
    r = api(doctor).post('/api/registration/tokens', data, format='json')
    assert r.status_code == 201
    return r.data


def test_token_shape_and_link(doctor, settings):
    settings.PUBLIC_APP_URL = 'https://app.clinica.mx'
    data = create_token(doctor, scaleIds=['phq9'], expiresInHours=2)
    assert len(data['token']) == 64
    assert data['token'].isalnum()
    assert data['link'] == f"https://app.clinica.mx/registro/{data['token']}"
    row = PatientRegistrationToken.objects.get(token=data['token'])
    assert row.selected_scale_ids == ['phq9']
    assert row.allowed_sections == registration.DEFAULT_SECTIONS
    assert row.expires_at - timezone.now() <= timedelta(hours=2)


def test_public_validate_and_complete(doctor, clinic):
    token = create_token(doctor, allowedSections=['personal', 'hereditary'])['token']
    public = APIClient()
    info = public.get(f'/api/registration/{token}')
    assert info.status_code == 200
    assert info.data['doctorName'] == 'Dra. Ana López'
    assert info.data['clinicName'] == 'Clínica Norte'
    assert info.data['allowedSections'] == ['personal', 'hereditary']

    r = public.post('/api/registration/complete', {
        'token': token,
        'personal': {'fullName': 'Lucía Ramírez', 'email': 'lucia@example.com', 'birthDate': '1992-03-04'},
        'pathological': {'diabetes': True},
        'hereditary': ['Diabetes (madre)'],
    }, format='json')
    assert r.status_code == 201
    patient = Patient.objects.get(id=r.data['patientId'])
    assert patient.clinic_id == clinic.id
    assert patient.primary_doctor_id == doctor.id
    assert patient.hereditary_background == ['Diabetes (madre)']
    # section not offered by the invitation is ignored
    assert patient.pathological_history == {}
    assert AuditEvent.objects.filter(action='patient_self_registration', object_id=patient.id).exists()

    row = PatientRegistrationToken.objects.get(token=token)
    assert row.status == 'completed'
    assert row.assigned_patient_id == patient.id


def test_token_is_single_use(doctor):
    token = create_token(doctor)['token']
    payload = {'token': token, 'personal': {'fullName': 'Pedro Soto'}}
    assert APIClient().post('/api/registration/complete', payload, format='json').status_code == 201
    again = APIClient().post('/api/registration/complete', payload, format='json')
    assert again.status_code == 400
    assert again.data['error']['message'] == 'Token expirado o usado'
    assert Patient.objects.filter(full_name='Pedro Soto').count() == 1


def test_expired_and_unknown_tokens(doctor):
    token = create_token(doctor)['token']
    PatientRegistrationToken.objects.filter(token=token).update(expires_at=timezone.now() - timedelta(minutes=1))
    r = APIClient().get(f'/api/registration/{token}')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'Token expirado o usado'
    r = APIClient().get('/api/registration/desconocido')
    assert r.data['error']['message'] == 'Token inválido'


def test_full_name_is_required(doctor):
    token = create_token(doctor)['token']
    r = APIClient().post('/api/registration/complete', {'token': token, 'personal': {'email': 'x@y.mx'}},
                         format='json')
    assert r.status_code == 400
    assert PatientRegistrationToken.objects.get(token=token).status == 'pending'


def test_only_doctors_create_tokens(staff):
    assert api(staff).post('/api/registration/tokens', {}, format='json').status_code == 403


def test_requested_scales_are_stored_with_the_patient(doctor):
    token = create_token(doctor, scaleIds=['phq9'])['token']
    assert APIClient().get(f'/api/registration/{token}').data['selectedScaleIds'] == ['phq9']
    r = APIClient().post('/api/registration/complete', {
        'token': token,
        'personal': {'fullName': 'Rosa Medina'},
        'scales': {'phq9': {'answers': {'q1': 2, 'q2': 1}, 'score': 3, 'severity': 'mínima'}},
    }, format='json')
    assert r.status_code == 201
    a = ScaleAssessment.objects.get(patient_id=r.data['patientId'])
    assert a.scale_id == 'phq9'
    assert a.doctor_id == doctor.id
    assert a.answers == {'q1': 2, 'q2': 1}
    assert a.score == 3
    assert a.severity == 'mínima'


def test_scales_not_requested_are_refused(doctor):
    token = create_token(doctor, scaleIds=['phq9'])['token']
    r = APIClient().post('/api/registration/complete', {
        'token': token,
        'personal': {'fullName': 'Rosa Medina'},
        'scales': {'barthel': {'answers': {}}},
    }, format='json')
    assert r.status_code == 400
    assert r.data['error']['message']['scales'][0] == 'Escalas no solicitadas: barthel'
    assert not Patient.objects.filter(full_name='Rosa Medina').exists()
    assert PatientRegistrationToken.objects.get(token=token).status == 'pending'
