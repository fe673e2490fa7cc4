"""
Integration tests for the EMR API: clinic membership workflow, patient
records, consultations and prescriptions, exercised through DRF's
APIClient inside APITestCase.
"""
from rest_framework.exceptions import ValidationError
from rest_framework.test import APITestCase

from emr.models import AuditEvent, Clinic, ClinicMembership, Consultation, Notification, Patient, Prescription
from emr.services import clinics

from .helpers import api, make_staff

MEDS = [{'name': 'Metformina', 'dosage': '850 mg', 'frequency': 'cada 12 horas', 'duration': '30 días'}]


class ClinicMembershipTests(APITestCase):
    def setUp(self) -> None:
        self.clinic = Clinic.objects.create(name='Clínica Norte')
        self.admin = make_staff('admin_norte', self.clinic, admin=True)
        self.newcomer = make_staff('dr_nuevo', None)

    def test_register_clinic_makes_creator_admin_and_binds_it(self):
        r = api(self.newcomer).post('/api/clinics', {'name': 'Consultorio Centro', 'type': 'consultorio'}, format='json')
        self.assertEqual(r.status_code, 201)
        clinic_id = r.data['clinic']['id']
        m = ClinicMembership.objects.get(user=self.newcomer, clinic_id=clinic_id)
        self.assertTrue(m.is_clinic_admin)
        self.assertEqual(m.status, 'approved')
        self.newcomer.refresh_from_db()
        self.assertEqual(self.newcomer.clinic_id, clinic_id)

    def test_request_approve_flow_notifies_and_binds(self):
        r = api(self.newcomer).post('/api/clinics/request-access', {'clinicId': self.clinic.id}, format='json')
        self.assertEqual(r.status_code, 201)
        membership_id = r.data['membership']['id']
        self.assertEqual(r.data['membership']['status'], 'pending')
        self.assertTrue(Notification.objects.filter(user=self.admin, category='staff').exists())

        # a second request while pending is refused
        again = api(self.newcomer).post('/api/clinics/request-access', {'clinicId': self.clinic.id}, format='json')
        self.assertEqual(again.status_code, 400)

        ok = api(self.admin).post(f'/api/memberships/{membership_id}/approve', format='json')
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(ok.data['membership']['status'], 'approved')
        self.newcomer.refresh_from_db()
        self.assertEqual(self.newcomer.clinic_id, self.clinic.id)
        self.assertTrue(AuditEvent.objects.filter(action='clinic_approve', object_id=membership_id).exists())

    def test_reject_then_resend(self):
        r = api(self.newcomer).post('/api/clinics/request-access', {'clinicId': self.clinic.id}, format='json')
        membership_id = r.data['membership']['id']
        rej = api(self.admin).post(f'/api/memberships/{membership_id}/reject', {'reason': 'Sin cédula'}, format='json')
        self.assertEqual(rej.data['membership']['status'], 'rejected')
        self.assertEqual(rej.data['membership']['rejectionReason'], 'Sin cédula')

        # approved is terminal, rejected can be re-sent
        resend = api(self.newcomer).post('/api/clinics/request-access', {'clinicId': self.clinic.id}, format='json')
        self.assertEqual(resend.status_code, 201)
        self.assertEqual(resend.data['membership']['id'], membership_id)
        self.assertEqual(resend.data['membership']['status'], 'pending')

    def test_decision_is_checked_against_the_stored_status(self):
        r = api(self.newcomer).post('/api/clinics/request-access', {'clinicId': self.clinic.id}, format='json')
        stale = ClinicMembership.objects.get(id=r.data['membership']['id'])
        clinics.approve(self.admin, ClinicMembership.objects.get(id=stale.id))
        # the in-memory copy still says pending; reject must see the approved row
        self.assertEqual(stale.status, 'pending')
        with self.assertRaises(ValidationError):
            clinics.reject(self.admin, stale, 'tarde')
        self.assertEqual(ClinicMembership.objects.get(id=stale.id).status, 'approved')

    def test_clinic_audit_trail(self):
        r = api(self.newcomer).post('/api/clinics/request-access', {'clinicId': self.clinic.id}, format='json')
        membership_id = r.data['membership']['id']
        api(self.admin).post(f'/api/memberships/{membership_id}/approve', format='json')
        other = Clinic.objects.create(name='Clínica Sur')
        AuditEvent.objects.create(clinic=other, action='clinic_approve', object_type='clinic_membership', object_id=999)
        url = f'/api/clinics/{self.clinic.id}/audit'

        approvals = api(self.admin).get(url, {'action': 'clinic_approve'})
        self.assertEqual(approvals.status_code, 200)
        self.assertEqual([ev['objectId'] for ev in approvals.data['data']], [membership_id])
        self.assertEqual(approvals.data['data'][0]['userName'], 'admin_norte')
        self.assertEqual(approvals.data['pagination']['total'], 1)

        by_object = api(self.admin).get(url, {'objectType': 'clinic_membership', 'objectId': membership_id})
        self.assertEqual([ev['action'] for ev in by_object.data['data']], ['clinic_approve', 'clinic_request'])

        self.assertEqual(api(self.admin).get(url, {'dateFrom': '2999-01-01'}).data['data'], [])
        bad = api(self.admin).get(url, {'dateFrom': '2030-02-01', 'dateTo': '2030-01-01'})
        self.assertEqual(bad.status_code, 400)

        colleague = make_staff('dr_colega', self.clinic)
        self.assertEqual(api(colleague).get(url).status_code, 403)

    def test_only_clinic_admins_decide(self):
        r = api(self.newcomer).post('/api/clinics/request-access', {'clinicId': self.clinic.id}, format='json')
        colleague = make_staff('dr_colega', self.clinic)
        denied = api(colleague).post(f"/api/memberships/{r.data['membership']['id']}/approve", format='json')
        self.assertEqual(denied.status_code, 403)

    def test_invite_and_staff_overview(self):
        r = api(self.admin).post(f'/api/clinics/{self.clinic.id}/invite',
                                 {'user': 'dr_nuevo', 'role': 'doctor'}, format='json')
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.data['membership']['invitedBy'], self.admin.id)
        staff = api(self.admin).get(f'/api/clinics/{self.clinic.id}/staff')
        self.assertEqual(staff.status_code, 200)
        self.assertEqual(len(staff.data['staff']['pending']), 1)
        self.assertEqual(staff.data['stats']['pending'], 1)
        self.assertEqual(staff.data['stats']['approved'], 1)

    def test_switch_clinic_requires_approved_membership(self):
        other = Clinic.objects.create(name='Clínica Sur')
        r = api(self.admin).post('/api/clinics/switch', {'clinicId': other.id}, format='json')
        self.assertEqual(r.status_code, 403)
        ClinicMembership.objects.create(clinic=other, user=self.admin, status='approved')
        r = api(self.admin).post('/api/clinics/switch', {'clinicId': other.id}, format='json')
        self.assertEqual(r.status_code, 200)
        self.admin.refresh_from_db()
        self.assertEqual(self.admin.clinic_id, other.id)

    def test_search_clinics(self):
        r = api(self.newcomer).get('/api/clinics/search', {'q': 'norte'})
        self.assertEqual([c['name'] for c in r.data['data']], ['Clínica Norte'])


class PatientRecordTests(APITestCase):
    def setUp(self) -> None:
        self.clinic = Clinic.objects.create(name='Clínica Norte')
        self.doctor = make_staff('dra_lopez', self.clinic, full_name='Dra. Ana López')
        self.client = api(self.doctor)

    def _create(self, **data):
        payload = {'fullName': 'Juan Pérez', 'birthDate': '1980-05-10', 'gender': 'male', **data}
        return self.client.post('/api/patients', payload, format='json')

    def test_create_assigns_clinic_and_primary_doctor(self):
        r = self._create(curp='pepj800510hdfrrn01')
        self.assertEqual(r.status_code, 201)
        p = r.data['patient']
        self.assertEqual(p['clinicId'], self.clinic.id)
        self.assertEqual(p['primaryDoctorId'], self.doctor.id)
        self.assertEqual(p['curp'], 'PEPJ800510HDFRRN01')
        self.assertIsNotNone(p['age'])

    def test_markup_is_stripped_and_contact_validated(self):
        r = self._create(fullName='<b>Juan</b> Pérez', address='<script>x</script>Calle 5')
        self.assertEqual(r.data['patient']['fullName'], 'Juan Pérez')
        self.assertNotIn('<', r.data['patient']['address'])
        bad = self._create(email='no-es-correo')
        self.assertEqual(bad.status_code, 400)
        bad = self._create(phone='123')
        self.assertEqual(bad.status_code, 400)

    def test_list_search_and_pagination(self):
        for name in ('Ana Ruiz', 'Beto Ruiz', 'Carla Díaz'):
            self._create(fullName=name)
        r = self.client.get('/api/patients', {'q': 'ruiz', 'pageSize': 1})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.data['pagination'], {'total': 2, 'page': 1, 'pageSize': 1})
        self.assertEqual(r.data['data'][0]['fullName'], 'Ana Ruiz')

    def test_soft_delete_hides_patient_and_hard_delete_removes_it(self):
        pid = self._create().data['patient']['id']
        self.assertEqual(self.client.delete(f'/api/patients/{pid}').status_code, 200)
        self.assertFalse(Patient.objects.get(id=pid).is_active)
        self.assertEqual(self.client.get('/api/patients').data['pagination']['total'], 0)
        self.assertEqual(self.client.get('/api/patients', {'includeInactive': 'true'}).data['pagination']['total'], 1)
        self.client.delete(f'/api/patients/{pid}?hard=true')
        self.assertFalse(Patient.objects.filter(id=pid).exists())

    def test_patch_updates_only_given_fields(self):
        pid = self._create(phone='55 1234 5678').data['patient']['id']
        r = self.client.patch(f'/api/patients/{pid}', {'cityOfResidence': 'Puebla'}, format='json')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.data['patient']['cityOfResidence'], 'Puebla')
        self.assertEqual(r.data['patient']['phone'], '55 1234 5678')

    def test_stats_and_timeline(self):
        pid = self._create().data['patient']['id']
        self.client.post('/api/consultations', {'patientId': pid, 'diagnosis': 'Diabetes tipo 2'}, format='json')
        stats = self.client.get('/api/patients/stats')
        self.assertEqual(stats.data['stats']['total'], 1)
        self.assertEqual(stats.data['stats']['newThisMonth'], 1)
        self.assertEqual(stats.data['stats']['activeThisMonth'], 1)
        timeline = self.client.get(f'/api/patients/{pid}/timeline')
        self.assertEqual([e['kind'] for e in timeline.data['data']], ['consultation'])

    def test_scale_assessments(self):
        pid = self._create().data['patient']['id']
        other = Patient.objects.create(clinic=self.clinic, full_name='Otra Persona')
        foreign = Consultation.objects.create(patient=other, doctor=self.doctor, clinic=self.clinic)
        url = f'/api/patients/{pid}/scales'

        r = self.client.post(url, {'scaleId': 'phq9', 'answers': {'q1': 3}, 'score': 12, 'severity': 'moderada',
                                   'interpretation': {'texto': 'Depresión moderada'}}, format='json')
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.data['assessment']['doctorId'], self.doctor.id)
        self.assertEqual(r.data['assessment']['score'], 12)
        self.client.post(url, {'scaleId': 'barthel', 'score': 85}, format='json')

        wrong = self.client.post(url, {'scaleId': 'phq9', 'consultationId': foreign.id}, format='json')
        self.assertEqual(wrong.status_code, 400)

        staff = make_staff('recepcion', self.clinic, role='admin_staff')
        self.assertEqual(api(staff).post(url, {'scaleId': 'phq9'}, format='json').status_code, 403)
        listed = api(staff).get(url, {'scaleId': 'phq9'})
        self.assertEqual([a['severity'] for a in listed.data['data']], ['moderada'])
        self.assertEqual(len(self.client.get(url).data['data']), 2)


class ConsultationAndPrescriptionTests(APITestCase):
    def setUp(self) -> None:
        self.clinic = Clinic.objects.create(name='Clínica Norte')
        self.doctor = make_staff('dra_lopez', self.clinic, full_name='Dra. Ana López')
        self.colleague = make_staff('dr_perez', self.clinic)
        self.staff = make_staff('recepcion', self.clinic, role='admin_staff')
        self.patient = Patient.objects.create(clinic=self.clinic, full_name='Juan Pérez')

    def test_consultation_crud_and_author_rule(self):
        r = api(self.doctor).post('/api/consultations', {
            'patientId': self.patient.id, 'currentCondition': 'Tos de 3 días',
            'vitalSigns': {'temperature': 37.2},
        }, format='json')
        self.assertEqual(r.status_code, 201)
        cid = r.data['consultation']['id']
        listed = api(self.staff).get('/api/consultations', {'patientId': self.patient.id})
        self.assertEqual(listed.data['pagination']['total'], 1)
        denied = api(self.colleague).patch(f'/api/consultations/{cid}', {'diagnosis': 'Otro'}, format='json')
        self.assertEqual(denied.status_code, 403)
        ok = api(self.doctor).patch(f'/api/consultations/{cid}', {'diagnosis': 'Bronquitis aguda'}, format='json')
        self.assertEqual(ok.data['consultation']['diagnosis'], 'Bronquitis aguda')
        self.assertEqual(Consultation.objects.get(id=cid).vital_signs, {'temperature': 37.2})

    def test_consultation_list_requires_patient(self):
        r = api(self.doctor).get('/api/consultations')
        self.assertEqual(r.status_code, 400)

    def test_prescription_lifecycle(self):
        r = api(self.doctor).post('/api/prescriptions', {
            'patientId': self.patient.id, 'medications': MEDS, 'diagnosis': 'Diabetes tipo 2', 'durationDays': 30,
        }, format='json')
        self.assertEqual(r.status_code, 201)
        rx = r.data['prescription']
        self.assertEqual(rx['status'], 'active')
        self.assertIsNotNone(rx['expiresAt'])

        # staff may read, only the author may modify
        self.assertEqual(api(self.staff).get(f"/api/prescriptions/{rx['id']}").status_code, 200)
        denied = api(self.colleague).patch(f"/api/prescriptions/{rx['id']}", {'notes': 'x'}, format='json')
        self.assertEqual(denied.status_code, 403)

        done = api(self.doctor).patch(f"/api/prescriptions/{rx['id']}", {'status': 'completed'}, format='json')
        self.assertEqual(done.data['prescription']['status'], 'completed')
        stats = api(self.doctor).get('/api/prescriptions/stats')
        self.assertEqual(stats.data['stats']['completed'], 1)
        self.assertEqual(stats.data['stats']['mostPrescribed'], [{'name': 'metformina', 'count': 1}])

        self.assertEqual(api(self.doctor).delete(f"/api/prescriptions/{rx['id']}").status_code, 200)
        self.assertIsNotNone(Prescription.objects.get(id=rx['id']).deleted_at)
        self.assertEqual(api(self.doctor).get(f"/api/prescriptions/{rx['id']}").status_code, 404)

    def test_prescription_requires_complete_medications(self):
        r = api(self.doctor).post('/api/prescriptions', {'patientId': self.patient.id, 'medications': []},
                                  format='json')
        self.assertEqual(r.status_code, 400)
        r = api(self.doctor).post('/api/prescriptions', {
            'patientId': self.patient.id, 'medications': [{'name': 'Losartán', 'dosage': '50 mg'}],
        }, format='json')
        self.assertEqual(r.status_code, 400)
        self.assertIn('frequency', str(r.data['error']['message']))

    def test_prescription_list_is_scoped_to_author(self):
        Prescription.objects.create(patient=self.patient, doctor=self.colleague, clinic=self.clinic, medications=MEDS)
        Prescription.objects.create(patient=self.patient, doctor=self.doctor, clinic=self.clinic, medications=MEDS)
        r = api(self.doctor).get('/api/prescriptions')
        self.assertEqual(r.data['pagination']['total'], 1)


class HealthTests(APITestCase):
    def test_healthz(self):
        r = self.client.get('/healthz')
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()['db'], True)
