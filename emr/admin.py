"""
Django admin registrations for the EMR models.

Superusers can inspect clinics, staff memberships and clinical records
under ``/admin/``.
"""
from django.contrib import admin

from .models import (
    Appointment,
    AuditEvent,
    Clinic,
    ClinicMembership,
    Consultation,
    MedicalTest,
    MedicalTestFile,
    Notification,
    Patient,
    PatientRegistrationToken,
    PhysicalExamTemplate,
    PracticeSchedule,
    Prescription,
    PrescriptionLayout,
    PrintSettings,
    ScaleAssessment,
    User,
)


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'type', 'is_active', 'created_at')
    list_filter = ('type', 'is_active')
    search_fields = ('name', 'license_number')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'full_name', 'role', 'clinic', 'is_staff', 'is_superuser')
    list_filter = ('role', 'clinic')
    search_fields = ('username', 'full_name', 'email', 'professional_license')


@admin.register(ClinicMembership)
class ClinicMembershipAdmin(admin.ModelAdmin):
    list_display = ('user', 'clinic', 'role_in_clinic', 'is_clinic_admin', 'status', 'is_active')
    list_filter = ('status', 'role_in_clinic', 'clinic')
    search_fields = ('user__username', 'clinic__name')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'full_name', 'clinic', 'primary_doctor', 'is_active', 'created_at')
    list_filter = ('is_active', 'clinic', 'gender')
    search_fields = ('full_name', 'curp', 'email', 'phone')


@admin.register(Consultation)
class ConsultationAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'clinic', 'created_at')
    list_filter = ('clinic',)
    search_fields = ('patient__full_name', 'diagnosis')


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'status', 'expires_at', 'created_at')
    list_filter = ('status', 'clinic')
    search_fields = ('patient__full_name', 'diagnosis')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'doctor', 'appointment_date', 'appointment_time', 'status')
    list_filter = ('status', 'type', 'clinic')
    search_fields = ('patient__full_name', 'title')


@admin.register(MedicalTest)
class MedicalTestAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'test_name', 'category', 'status', 'ordered_date')
    list_filter = ('category', 'status')
    search_fields = ('test_name', 'patient__full_name')


@admin.register(MedicalTestFile)
class MedicalTestFileAdmin(admin.ModelAdmin):
    list_display = ('id', 'test', 'file_name', 'file_size', 'file_type', 'created_at')
    search_fields = ('file_name', 'file_hash')


@admin.register(ScaleAssessment)
class ScaleAssessmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'scale_id', 'patient', 'doctor', 'score', 'severity', 'created_at')
    list_filter = ('scale_id',)


@admin.register(PatientRegistrationToken)
class PatientRegistrationTokenAdmin(admin.ModelAdmin):
    list_display = ('id', 'doctor', 'clinic', 'status', 'expires_at', 'created_at')
    list_filter = ('status',)


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'title', 'category', 'priority', 'is_read', 'created_at')
    list_filter = ('category', 'priority', 'is_read')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('action', 'user', 'clinic', 'object_type', 'object_id', 'created_at')
    list_filter = ('action', 'object_type', 'clinic')
    search_fields = ('user__username',)


admin.site.register(PracticeSchedule)
admin.site.register(PrescriptionLayout)
admin.site.register(PrintSettings)
admin.site.register(PhysicalExamTemplate)
