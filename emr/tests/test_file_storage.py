import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from emr.exceptions import Conflict
from emr.models import MedicalTest, MedicalTestFile
from emr.services import file_storage

from .helpers import api, make_staff

PDF = b'%PDF-1.4 resultado de laboratorio'


def test_sanitize_file_name():
    assert file_storage.sanitize_file_name('Estudio de María José.pdf') == 'estudio_de_maria_jose.pdf'
    assert file_storage.sanitize_file_name('rx  (tórax)!!.PNG') == 'rx_torax_.png'


@pytest.mark.parametrize('name, expected', [
    ('informe-final.v2.pdf', 'informe-final.v2.pdf'),
    ('ECO_Abdominal.JPG', 'eco_abdominal.jpg'),
    ('Resonancia Cervical - Ñandú.dcm', 'resonancia_cervical_-_nandu.dcm'),
    ('análisis__de___sangre.pdf', 'analisis_de_sangre.pdf'),
    ('../../etc/passwd', '.._.._etc_passwd'),
    ('', ''),
])
def test_sanitize_file_name_is_stable(name, expected):
    once = file_storage.sanitize_file_name(name)
    assert once == expected
    assert file_storage.sanitize_file_name(once) == once


def test_validate_file_rules(settings):
    settings.MEDICAL_FILE_MAX_MB = 1
    file_storage.validate_file('ok.pdf', 1024, 'application/pdf')
    # unknown declared type is not compared with the extension
    file_storage.validate_file('scan.dcm', 10, 'application/octet-stream')
    with pytest.raises(ValueError, match='tamaño máximo de 1MB'):
        file_storage.validate_file('big.pdf', 2 * 1024 * 1024, 'application/pdf')
    with pytest.raises(ValueError, match='Tipo de archivo no permitido'):
        file_storage.validate_file('malware.exe', 10)
    with pytest.raises(ValueError, match='no coincide'):
        file_storage.validate_file('foto.png', 10, 'application/pdf')


def test_hash_is_md5_of_content():
    assert file_storage.calculate_file_hash(b'abc') == '900150983cd24fb0d6963f7d28e17f72'
    upload = SimpleUploadedFile('a.txt', b'abc', content_type='text/plain')
    assert file_storage.calculate_file_hash(upload) == '900150983cd24fb0d6963f7d28e17f72'
    assert upload.read() == b'abc'


@pytest.fixture
def study(patient, doctor):
    return MedicalTest.objects.create(patient=patient, doctor=doctor, test_name='Biometría hemática')


@pytest.mark.django_db
def test_upload_stores_file_and_completes_study(study, doctor):
    result = file_storage.upload(SimpleUploadedFile('Resultado Final.pdf', PDF, content_type='application/pdf'),
                                 study, doctor)
    record = MedicalTestFile.objects.get(id=result['id'])
    clinic_id, patient_id = study.patient.clinic_id, study.patient_id
    assert record.file.name.startswith(f'{clinic_id}/{patient_id}/{study.id}/')
    assert record.file.name.endswith('-resultado_final.pdf')
    assert record.file_size == len(PDF)
    study.refresh_from_db()
    assert study.status == MedicalTest.STATUS_COMPLETED
    assert study.result_date is not None


@pytest.mark.django_db
def test_duplicate_content_is_refused(study, doctor, settings):
    file_storage.upload(SimpleUploadedFile('a.pdf', PDF, content_type='application/pdf'), study, doctor)
    with pytest.raises(Conflict):
        file_storage.upload(SimpleUploadedFile('b.pdf', PDF, content_type='application/pdf'), study, doctor)
    settings.MEDICAL_FILES_REJECT_DUPLICATES = False
    file_storage.upload(SimpleUploadedFile('c.pdf', PDF, content_type='application/pdf'), study, doctor)
    assert study.files.count() == 2


@pytest.mark.django_db
def test_storage_stats(study, doctor, patient):
    file_storage.upload(SimpleUploadedFile('a.pdf', PDF, content_type='application/pdf'), study, doctor)
    file_storage.upload(SimpleUploadedFile('b.png', b'\x89PNG', content_type='image/png'), study, doctor)
    stats = file_storage.storage_stats(patient)
    assert stats['fileCount'] == 2
    assert stats['totalSize'] == len(PDF) + 4
    assert stats['byType']['image/png'] == {'count': 1, 'size': 4}


@pytest.mark.django_db
def test_study_endpoints(doctor, patient, clinic):
    client = api(doctor)
    r = client.post('/api/studies', {'patientId': patient.id, 'testName': 'Rayos X de tórax',
                                     'category': 'gabinete'}, format='json')
    assert r.status_code == 201
    sid = r.data['study']['id']
    assert r.data['study']['status'] == 'ordered'

    up = client.post(f'/api/studies/{sid}/files',
                     {'file': SimpleUploadedFile('rx.png', b'\x89PNG data', content_type='image/png')},
                     format='multipart')
    assert up.status_code == 201
    assert up.data['file']['fileName'] == 'rx.png'

    dup = client.post(f'/api/studies/{sid}/files',
                      {'file': SimpleUploadedFile('rx2.png', b'\x89PNG data', content_type='image/png')},
                      format='multipart')
    assert dup.status_code == 409
    assert dup.data['error']['details']['hash'] == up.data['file']['hash']

    bad = client.post(f'/api/studies/{sid}/files',
                      {'file': SimpleUploadedFile('x.exe', b'MZ', content_type='application/x-msdownload')},
                      format='multipart')
    assert bad.status_code == 400
    assert bad.data['error']['code'] == 'invalid_file'

    listed = client.get(f'/api/studies/{sid}/files')
    assert len(listed.data['data']) == 1
    assert client.get('/api/studies', {'patientId': patient.id}).data['data'][0]['fileCount'] == 1
    assert client.get(f'/api/patients/{patient.id}/storage').data['stats']['fileCount'] == 1

    fid = up.data['file']['id']
    assert client.delete(f'/api/studies/{sid}/files/{fid}').status_code == 200
    assert not MedicalTestFile.objects.filter(id=fid).exists()

    outsider = make_staff('dr_fuera', None)
    assert api(outsider).get(f'/api/studies/{sid}').status_code == 403


@pytest.mark.django_db
def test_study_deletion_keeps_blobs_until_commit(study, doctor, django_capture_on_commit_callbacks):
    result = file_storage.upload(SimpleUploadedFile('a.pdf', PDF, content_type='application/pdf'), study, doctor)
    record = MedicalTestFile.objects.get(id=result['id'])
    storage, name = record.file.storage, record.file.name

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        assert api(doctor).delete(f'/api/studies/{study.id}').status_code == 200
    assert not MedicalTest.objects.filter(id=study.id).exists()
    assert storage.exists(name)

    for callback in callbacks:
        callback()
    assert not storage.exists(name)
