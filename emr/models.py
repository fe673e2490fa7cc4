"""
Database models for the clinic EMR backend.

The data model covers clinics and their staff (with a membership
approval workflow), patients and their clinical record (consultations,
prescriptions, studies and uploaded result files), appointments, the
visual prescription layouts used for printing and the patient
self-registration invitations.  Free-form clinical structures (vital
signs, exam definitions, layout elements) are stored as JSON because
their shape is owned by the front-end editors.
"""
from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class Clinic(models.Model):
    """A clinic, hospital or private practice that owns patients and staff."""
    TYPE_CLINIC = 'clinic'
    TYPE_HOSPITAL = 'hospital'
    TYPE_PRACTICE = 'consultorio'
    TYPE_OTHER = 'other'
    TYPE_CHOICES = (
        (TYPE_CLINIC, 'Clinic'),
        (TYPE_HOSPITAL, 'Hospital'),
        (TYPE_PRACTICE, 'Private practice'),
        (TYPE_OTHER, 'Other'),
    )

    name = models.CharField(max_length=255)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_CLINIC)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    website = models.URLField(blank=True)
    license_number = models.CharField(max_length=64, blank=True)
    director_name = models.CharField(max_length=255, blank=True)
    director_license = models.CharField(max_length=64, blank=True)
    settings = models.JSONField(default=dict, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.name


class User(AbstractUser):
    """Custom user with a role and the currently active clinic.

    ``clinic`` is the clinic the user is working in right now; the full
    set of clinics a user belongs to lives in :class:`ClinicMembership`.
    """
    ROLE_PATIENT = 'patient'
    ROLE_DOCTOR = 'doctor'
    ROLE_ADMIN_STAFF = 'admin_staff'
    ROLE_SUPER = 'super'
    ROLE_CHOICES = [
        (ROLE_PATIENT, 'Patient'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_ADMIN_STAFF, 'Administrative staff'),
        (ROLE_SUPER, 'Super Administrator'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default=ROLE_DOCTOR)
    full_name = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    specialty = models.CharField(max_length=128, blank=True)
    professional_license = models.CharField(max_length=64, blank=True)
    clinic = models.ForeignKey(
        Clinic, null=True, blank=True, on_delete=models.SET_NULL, related_name='active_users', db_index=True
    )
    clinic_bind_time = models.DateTimeField(null=True, blank=True)

    @property
    def display_name(self) -> str:
        return self.full_name or self.get_full_name() or self.username

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class ClinicMembership(models.Model):
    """Join row between a clinic and a staff user with an approval status."""
    ROLE_DOCTOR = 'doctor'
    ROLE_ADMIN_STAFF = 'admin_staff'
    ROLE_CHOICES = ((ROLE_DOCTOR, 'Doctor'), (ROLE_ADMIN_STAFF, 'Administrative staff'))

    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'pending'),
        (STATUS_APPROVED, 'approved'),
        (STATUS_REJECTED, 'rejected'),
    )

    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='memberships')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='clinic_memberships')
    role_in_clinic = models.CharField(max_length=16, choices=ROLE_CHOICES, default=ROLE_DOCTOR)
    is_clinic_admin = models.BooleanField(default=False)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    is_active = models.BooleanField(default=True)
    invited_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='sent_clinic_invitations'
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='approved_memberships'
    )
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='rejected_memberships'
    )
    rejection_reason = models.TextField(blank=True)
    permissions_override = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [('clinic', 'user')]
        indexes = [models.Index(fields=['clinic', 'status'])]

    def __str__(self) -> str:
        return f"{self.user} in {self.clinic} ({self.status})"


class Patient(models.Model):
    """A patient record owned by a clinic."""
    GENDER_CHOICES = [
        ('male', 'Male'),
        ('female', 'Female'),
        ('other', 'Other'),
    ]
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='patients')
    full_name = models.CharField(max_length=255, db_index=True)
    birth_date = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    address = models.TextField(blank=True)
    curp = models.CharField(max_length=18, blank=True)
    city_of_birth = models.CharField(max_length=128, blank=True)
    city_of_residence = models.CharField(max_length=128, blank=True)
    social_security_number = models.CharField(max_length=32, blank=True)
    primary_doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='primary_patients'
    )
    patient_user = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patient_records'
    )
    insurance_info = models.JSONField(default=dict, blank=True)
    emergency_contact = models.JSONField(default=dict, blank=True)
    pathological_history = models.JSONField(default=dict, blank=True)
    non_pathological_history = models.JSONField(default=dict, blank=True)
    hereditary_background = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['clinic', 'is_active', 'full_name'])]

    def __str__(self) -> str:
        return f"{self.full_name} ({self.clinic_id})"


class PracticeSchedule(models.Model):
    """Business hours a doctor accepts appointments in."""
    doctor = models.OneToOneField(User, on_delete=models.CASCADE, related_name='practice_schedule')
    weekday_start = models.TimeField(null=True, blank=True)
    weekday_end = models.TimeField(null=True, blank=True)
    saturday_start = models.TimeField(null=True, blank=True)
    saturday_end = models.TimeField(null=True, blank=True)
    sunday_enabled = models.BooleanField(default=False)
    sunday_start = models.TimeField(null=True, blank=True)
    sunday_end = models.TimeField(null=True, blank=True)
    default_duration = models.PositiveIntegerField(default=30)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Schedule(doctor={self.doctor_id})"


class Appointment(models.Model):
    STATUS_SCHEDULED = 'scheduled'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_NO_SHOW = 'no_show'
    STATUS_CHOICES = (
        (STATUS_SCHEDULED, 'scheduled'),
        (STATUS_CONFIRMED, 'confirmed'),
        (STATUS_IN_PROGRESS, 'in_progress'),
        (STATUS_COMPLETED, 'completed'),
        (STATUS_CANCELLED, 'cancelled'),
        (STATUS_NO_SHOW, 'no_show'),
    )
    # Statuses that no longer block the doctor's agenda
    INACTIVE_STATUSES = (STATUS_CANCELLED, STATUS_NO_SHOW)

    TYPE_CHOICES = (
        ('consultation', 'consultation'),
        ('follow_up', 'follow_up'),
        ('check_up', 'check_up'),
        ('procedure', 'procedure'),
        ('emergency', 'emergency'),
    )

    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='doctor_appointments')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='appointments')
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    appointment_date = models.DateField()
    appointment_time = models.TimeField()
    duration = models.PositiveIntegerField(default=30, help_text="Minutes")
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_SCHEDULED, db_index=True)
    type = models.CharField(max_length=16, choices=TYPE_CHOICES, default='consultation')
    location = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)
    reminder_sent = models.BooleanField(default=False)
    confirmation_required = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'appointment_date', 'appointment_time']),
            models.Index(fields=['clinic', 'appointment_date']),
        ]

    def __str__(self) -> str:
        return f"{self.title} {self.appointment_date} {self.appointment_time:%H:%M}"


class Consultation(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='consultations')
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='consultations')
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='consultations')
    appointment = models.ForeignKey(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='consultations'
    )
    current_condition = models.TextField(blank=True)
    vital_signs = models.JSONField(default=dict, blank=True)
    physical_examination = models.JSONField(default=dict, blank=True)
    diagnosis = models.TextField(blank=True)
    prognosis = models.TextField(blank=True)
    treatment = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['patient', 'created_at'])]

    def __str__(self) -> str:
        return f"consultation p={self.patient_id} d={self.doctor_id} @ {self.created_at:%F}"


class Prescription(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'active'),
        (STATUS_COMPLETED, 'completed'),
        (STATUS_CANCELLED, 'cancelled'),
    )

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='prescriptions')
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='prescriptions')
    consultation = models.ForeignKey(
        Consultation, null=True, blank=True, on_delete=models.SET_NULL, related_name='prescriptions'
    )
    medications = models.JSONField(default=list)
    diagnosis = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    duration_days = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['doctor', 'created_at'])]

    def __str__(self) -> str:
        return f"Rx #{self.id} p={self.patient_id}"


class PrescriptionLayout(models.Model):
    """A visual template of positioned elements used to print prescriptions."""
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='prescription_layouts')
    template_name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    template_elements = models.JSONField(default=list)
    canvas_settings = models.JSONField(default=dict)
    category = models.CharField(max_length=64, default='general')
    is_default = models.BooleanField(default=False)
    is_public = models.BooleanField(default=False, db_index=True)
    usage_count = models.PositiveIntegerField(default=0)
    last_used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.template_name} (#{self.id})"


class PrintSettings(models.Model):
    """Per-doctor printing preferences."""
    PAGE_SIZE_CHOICES = (('A4', 'A4'), ('Letter', 'Letter'), ('Legal', 'Legal'))
    ORIENTATION_CHOICES = (('portrait', 'portrait'), ('landscape', 'landscape'))
    QUALITY_CHOICES = (('draft', 'draft'), ('normal', 'normal'), ('high', 'high'))
    COLOR_MODE_CHOICES = (('color', 'color'), ('grayscale', 'grayscale'), ('blackwhite', 'blackwhite'))

    doctor = models.OneToOneField(User, on_delete=models.CASCADE, related_name='print_settings')
    default_layout = models.ForeignKey(
        PrescriptionLayout, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    page_size = models.CharField(max_length=10, choices=PAGE_SIZE_CHOICES, default='A4')
    orientation = models.CharField(max_length=10, choices=ORIENTATION_CHOICES, default='portrait')
    margins = models.JSONField(default=dict, blank=True)
    quality = models.CharField(max_length=10, choices=QUALITY_CHOICES, default='high')
    color_mode = models.CharField(max_length=12, choices=COLOR_MODE_CHOICES, default='color')
    scale_factor = models.FloatField(default=1.0)
    include_qr_code = models.BooleanField(default=True)
    include_digital_signature = models.BooleanField(default=True)
    watermark_text = models.CharField(max_length=128, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"PrintSettings(doctor={self.doctor_id})"


class PhysicalExamTemplate(models.Model):
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='exam_templates')
    name = models.CharField(max_length=255)
    definition = models.JSONField(default=dict)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.name


class MedicalTest(models.Model):
    """A laboratory or imaging (gabinete) study ordered for a patient."""
    CATEGORY_CHOICES = (
        ('gabinete', 'Imaging / cabinet'),
        ('laboratorio', 'Laboratory'),
        ('otro', 'Other'),
    )
    STATUS_ORDERED = 'ordered'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CHOICES = (
        (STATUS_ORDERED, 'ordered'),
        (STATUS_IN_PROGRESS, 'in_progress'),
        (STATUS_COMPLETED, 'completed'),
    )

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='medical_tests')
    doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='ordered_tests')
    category = models.CharField(max_length=16, choices=CATEGORY_CHOICES, default='laboratorio')
    test_name = models.CharField(max_length=255)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ORDERED, db_index=True)
    ordered_date = models.DateField(auto_now_add=True)
    result_date = models.DateField(null=True, blank=True)
    lab_name = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.test_name} p={self.patient_id}"


def _study_file_upload(instance, filename: str) -> str:
    from django.utils import timezone
    from emr.services.file_storage import sanitize_file_name
    test = instance.test
    stamp = int(timezone.now().timestamp() * 1000)
    return f"{test.patient.clinic_id}/{test.patient_id}/{test.id}/{stamp}-{sanitize_file_name(filename)}"


class MedicalTestFile(models.Model):
    test = models.ForeignKey(MedicalTest, on_delete=models.CASCADE, related_name='files')
    file = models.FileField(upload_to=_study_file_upload, max_length=512)
    file_name = models.CharField(max_length=255)
    file_size = models.PositiveBigIntegerField(default=0)
    file_type = models.CharField(max_length=128, blank=True)
    file_hash = models.CharField(max_length=32, db_index=True)
    uploaded_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='uploaded_files')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['test', 'file_hash'])]

    def __str__(self) -> str:
        return f"{self.file_name} (test={self.test_id})"


class ScaleAssessment(models.Model):
    """A clinical scale (PHQ-9, Barthel, ...) answered for a patient."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='scale_assessments')
    doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='scale_assessments')
    consultation = models.ForeignKey(
        Consultation, null=True, blank=True, on_delete=models.SET_NULL, related_name='scale_assessments'
    )
    scale_id = models.CharField(max_length=64, db_index=True)
    answers = models.JSONField(default=dict, blank=True)
    score = models.FloatField(null=True, blank=True)
    severity = models.CharField(max_length=32, blank=True)
    interpretation = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['patient', 'created_at'])]

    def __str__(self) -> str:
        return f"{self.scale_id} p={self.patient_id}"


class PatientRegistrationToken(models.Model):
    """Invitation that lets a patient fill their own record through a public link."""
    STATUS_PENDING = 'pending'
    STATUS_COMPLETED = 'completed'
    STATUS_CHOICES = ((STATUS_PENDING, 'pending'), (STATUS_COMPLETED, 'completed'))

    token = models.CharField(max_length=64, unique=True)
    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='registration_tokens')
    clinic = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name='registration_tokens')
    selected_scale_ids = models.JSONField(default=list, blank=True)
    allowed_sections = models.JSONField(default=list, blank=True)
    expires_at = models.DateTimeField()
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    assigned_patient = models.ForeignKey(
        Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='registration_tokens'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"RegToken {self.token[:8]}... ({self.status})"


class Notification(models.Model):
    CATEGORY_CHOICES = (
        ('clinical_rule', 'clinical_rule'),
        ('appointment', 'appointment'),
        ('staff', 'staff'),
        ('system', 'system'),
    )
    PRIORITY_CHOICES = (('low', 'low'), ('normal', 'normal'), ('high', 'high'))

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    clinic = models.ForeignKey(Clinic, null=True, blank=True, on_delete=models.CASCADE, related_name='notifications')
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.CASCADE, related_name='notifications')
    title = models.CharField(max_length=255)
    message = models.TextField()
    category = models.CharField(max_length=16, choices=CATEGORY_CHOICES, default='system')
    priority = models.CharField(max_length=8, choices=PRIORITY_CHOICES, default='normal')
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['user', 'is_read', 'created_at'])]

    def __str__(self) -> str:
        return f"{self.title} -> {self.user_id}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    clinic = models.ForeignKey(Clinic, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_events')
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at']),
            models.Index(fields=['object_type', 'object_id', 'created_at']),
            models.Index(fields=['clinic', 'created_at']),
        ]

    def __str__(self) -> str:
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"
