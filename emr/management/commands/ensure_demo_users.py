from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction

from emr.models import Clinic, ClinicMembership, User

DEMO_CLINIC = "Clínica Demo"
DEMO_USERS = [
    ("doctor1", "doctor", "Dra. Ana López", ClinicMembership.ROLE_DOCTOR),
    ("recepcion1", "admin_staff", "Luis Pérez", ClinicMembership.ROLE_ADMIN_STAFF),
    ("super", "super", "Administrador", None),
]


class Command(BaseCommand):
    help = "Ensure demo users and a demo clinic exist (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument('--password', default='demo12345')

    @transaction.atomic
    def handle(self, *args, **opts):
        password = make_password(opts['password'])
        clinic, _ = Clinic.objects.get_or_create(name=DEMO_CLINIC)
        for username, role, full_name, clinic_role in DEMO_USERS:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={'role': role, 'full_name': full_name, 'password': password, 'is_active': True},
            )
            if not created:
                u.password = password
                u.role = role
                u.is_active = True
                u.save(update_fields=['password', 'role', 'is_active'])
            if clinic_role:
                ClinicMembership.objects.update_or_create(
                    user=u, clinic=clinic,
                    defaults={'role_in_clinic': clinic_role, 'is_clinic_admin': role == 'doctor',
                              'status': ClinicMembership.STATUS_APPROVED, 'is_active': True},
                )
                if u.clinic_id != clinic.id:
                    u.clinic = clinic
                    u.save(update_fields=['clinic'])
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("All demo users ensured."))
