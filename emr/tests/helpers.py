from django.utils import timezone
from rest_framework.test import APIClient

from emr.models import ClinicMembership, User

PASSWORD = 'Cl1nica!2024'


def make_staff(username, clinic, role='doctor', admin=False, **extra):
    """Create a user bound to ``clinic`` with an approved membership."""
    user = User.objects.create_user(
        username=username, password=PASSWORD, role=role, full_name=extra.pop('full_name', username),
        clinic=clinic, clinic_bind_time=timezone.now() if clinic else None, **extra,
    )
    if clinic is not None:
        ClinicMembership.objects.create(
            clinic=clinic, user=user, role_in_clinic=role if role == 'admin_staff' else 'doctor',
            is_clinic_admin=admin, status=ClinicMembership.STATUS_APPROVED,
        )
    return user


def api(user=None):
    client = APIClient()
    if user is not None:
        client.force_authenticate(user=user)
    return client
