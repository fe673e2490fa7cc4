from datetime import date, time

import pytest

from emr.models import Appointment, PracticeSchedule
from emr.services import appointments as svc

from .helpers import api, make_staff

pytestmark = pytest.mark.django_db

MONDAY = date(2030, 1, 7)
SATURDAY = date(2030, 1, 12)
SUNDAY = date(2030, 1, 13)


def book(client, patient, at='10:00', day=MONDAY, **extra):
    return client.post('/api/appointments', {
        'patientId': patient.id, 'appointmentDate': day.isoformat(), 'appointmentTime': at, **extra,
    }, format='json')


@pytest.fixture
def office_hours(doctor):
    return PracticeSchedule.objects.create(
        doctor=doctor, weekday_start=time(9), weekday_end=time(14),
        saturday_start=time(9), saturday_end=time(12),
    )


def test_without_schedule_any_time_is_bookable(doctor, patient):
    r = book(api(doctor), patient, at='22:30')
    assert r.status_code == 201
    assert r.data['appointment']['appointmentTime'] == '22:30'
    assert r.data['appointment']['title'] == 'Consulta'
    assert r.data['appointment']['patientName'] == 'Juan Pérez'


def test_overlap_is_a_conflict(doctor, patient):
    client = api(doctor)
    first = book(client, patient, at='10:00', duration=30)
    r = book(client, patient, at='10:15')
    assert r.status_code == 409
    assert r.data['error']['code'] == 'conflict'
    assert r.data['error']['details']['conflicting_appointment_id'] == first.data['appointment']['id']
    assert r.data['error']['details']['conflicting_time_range'] == {'start': '10:00', 'end': '10:30'}


def test_back_to_back_slots_do_not_overlap(doctor, patient):
    client = api(doctor)
    assert book(client, patient, at='10:00', duration=30).status_code == 201
    assert book(client, patient, at='10:30').status_code == 201
    assert book(client, patient, at='09:30').status_code == 201


def test_cancelled_appointments_free_the_slot(doctor, patient):
    client = api(doctor)
    aid = book(client, patient).data['appointment']['id']
    client.post(f'/api/appointments/{aid}/status', {'status': 'cancelled'}, format='json')
    assert book(client, patient).status_code == 201


def test_outside_business_hours_is_rejected(doctor, patient, office_hours):
    client = api(doctor)
    r = book(client, patient, at='15:00')
    assert r.status_code == 400
    assert 'lunes (09:00 - 14:00)' in r.data['error']['message']['appointmentTime'][0]
    assert book(client, patient, at='13:45', day=MONDAY).status_code == 201
    # end of the window is exclusive
    assert book(client, patient, at='12:00', day=SATURDAY).status_code == 400


def test_sunday_needs_to_be_enabled(doctor, office_hours):
    assert svc.check_business_hours(doctor, SUNDAY, time(10)) == 'No se programan citas los domingos'
    office_hours.sunday_enabled = True
    office_hours.save()
    assert svc.check_business_hours(doctor, SUNDAY, time(10)) == 'No hay horarios configurados para este día'


def test_availability_endpoint(doctor, patient, office_hours):
    client = api(doctor)
    book(client, patient, at='11:00', duration=45)
    busy = client.get('/api/appointments/availability', {'date': MONDAY.isoformat(), 'time': '11:30'})
    assert busy.data['available'] is False
    details = busy.data['conflict_details']
    assert details['reason'] == 'appointment_conflict'
    assert details['patient_name'] == 'Juan Pérez'
    assert details['conflicting_time_range'] == {'start': '11:00', 'end': '11:45'}

    free = client.get('/api/appointments/availability', {'date': MONDAY.isoformat(), 'time': '11:45'})
    assert free.data == {'ok': True, 'available': True, 'conflict_details': None}

    closed = client.get('/api/appointments/availability', {'date': MONDAY.isoformat(), 'time': '08:00'})
    assert closed.data['conflict_details']['reason'] == 'outside_business_hours'


def test_status_workflow(doctor, patient):
    client = api(doctor)
    aid = book(client, patient).data['appointment']['id']
    for status in ('confirmed', 'in_progress', 'completed'):
        r = client.post(f'/api/appointments/{aid}/status', {'status': status}, format='json')
        assert r.status_code == 200
        assert r.data['appointment']['status'] == status
    r = client.post(f'/api/appointments/{aid}/status', {'status': 'scheduled'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message']['status'][0] == 'No se puede cambiar de completed a scheduled'


def test_reschedule_checks_slot_but_ignores_itself(doctor, patient):
    client = api(doctor)
    aid = book(client, patient, at='10:00').data['appointment']['id']
    book(client, patient, at='11:00')
    moved = client.patch(f'/api/appointments/{aid}', {'appointmentTime': '10:15'}, format='json')
    assert moved.status_code == 200
    assert moved.data['appointment']['appointmentTime'] == '10:15'
    clash = client.patch(f'/api/appointments/{aid}', {'appointmentTime': '11:10'}, format='json')
    assert clash.status_code == 409


def test_staff_books_for_a_doctor_and_only_the_doctor_deletes(doctor, staff, patient):
    r = book(api(staff), patient, doctorId=doctor.id)
    assert r.status_code == 201
    assert r.data['appointment']['doctorId'] == doctor.id
    aid = r.data['appointment']['id']
    assert api(staff).delete(f'/api/appointments/{aid}').status_code == 403
    assert api(doctor).delete(f'/api/appointments/{aid}').status_code == 200
    assert not Appointment.objects.filter(id=aid).exists()


def test_list_filters(doctor, patient, clinic):
    client = api(doctor)
    book(client, patient, at='09:00', type='follow_up')
    book(client, patient, at='10:00', day=date(2030, 1, 8))
    other = make_staff('dr_otro', clinic)
    book(api(other), patient, at='09:00')
    r = client.get('/api/appointments', {'doctorId': doctor.id, 'dateFrom': '2030-01-07', 'dateTo': '2030-01-07'})
    assert len(r.data['data']) == 1
    r = client.get('/api/appointments', {'type': 'follow_up,consultation'})
    assert len(r.data['data']) == 3
    assert client.get('/api/appointments', {'status': 'bogus'}).status_code == 400


def test_practice_schedule_get_does_not_create_a_row(doctor):
    client = api(doctor)
    r = client.get('/api/appointments/schedule')
    assert r.data['schedule']['weekdayStart'] is None
    assert not PracticeSchedule.objects.filter(doctor=doctor).exists()
    r = client.post('/api/appointments/schedule', {'weekdayStart': '08:00', 'weekdayEnd': '16:00'}, format='json')
    assert r.data['schedule']['weekdayEnd'] == '16:00'
    bad = client.post('/api/appointments/schedule', {'weekdayStart': '16:00', 'weekdayEnd': '08:00'}, format='json')
    assert bad.status_code == 400


def test_staff_must_name_a_doctor_of_the_clinic(doctor, staff, patient, other_clinic):
    client = api(staff)
    r = book(client, patient)
    assert r.status_code == 400
    assert r.data['error']['message']['doctorId'][0] == 'Selecciona el médico de la cita'
    foreign = make_staff('dr_sur', other_clinic)
    r = book(client, patient, doctorId=foreign.id)
    assert r.status_code == 400
    assert r.data['error']['message']['doctorId'][0] == 'El médico no pertenece a esta clínica'
    r = client.get('/api/appointments/availability',
                   {'date': MONDAY.isoformat(), 'time': '10:00', 'doctorId': foreign.id})
    assert r.status_code == 400
    assert book(client, patient, doctorId=staff.id).status_code == 400
    assert not Appointment.objects.exists()


def test_late_booking_blocks_the_next_morning(doctor, patient):
    client = api(doctor)
    late = book(client, patient, at='23:45', duration=30)
    assert late.status_code == 201
    r = book(client, patient, at='00:00', day=date(2030, 1, 8))
    assert r.status_code == 409
    assert r.data['error']['details']['conflicting_appointment_id'] == late.data['appointment']['id']
    assert book(client, patient, at='00:15', day=date(2030, 1, 8)).status_code == 201


def test_finished_appointments_cannot_be_rescheduled(doctor, patient):
    client = api(doctor)
    aid = book(client, patient).data['appointment']['id']
    client.post(f'/api/appointments/{aid}/status', {'status': 'cancelled'}, format='json')
    r = client.patch(f'/api/appointments/{aid}', {'appointmentTime': '12:00'}, format='json')
    assert r.status_code == 400
    assert client.patch(f'/api/appointments/{aid}', {'notes': 'Llamar antes'}, format='json').status_code == 200
