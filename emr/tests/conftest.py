import pytest
from django.core.cache import cache

from emr.models import Clinic, Patient

from .helpers import make_staff


@pytest.fixture(autouse=True)
def _isolated(settings, tmp_path):
    # throttle counters and cached stats live in the cache
    cache.clear()
    settings.MEDIA_ROOT = str(tmp_path / 'media')
    settings.AI_GUIDANCE_ENABLED = False
    yield
    cache.clear()


@pytest.fixture
def clinic(db):
    return Clinic.objects.create(name='Clínica Norte')


@pytest.fixture
def other_clinic(db):
    return Clinic.objects.create(name='Clínica Sur')


@pytest.fixture
def doctor(clinic):
    return make_staff('dra_lopez', clinic, admin=True, full_name='Dra. Ana López', professional_license='1234567')


@pytest.fixture
def staff(clinic):
    return make_staff('recepcion', clinic, role='admin_staff')


@pytest.fixture
def patient(clinic, doctor):
    return Patient.objects.create(clinic=clinic, full_name='Juan Pérez', primary_doctor=doctor)
