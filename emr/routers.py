"""
URL mappings for the EMR API.

Trailing slashes are omitted throughout; the front end calls the paths
exactly as listed here.
"""
from django.urls import include, path

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view, me_view, register_view
from .views import (
    appointments,
    clinics,
    consultations,
    exam_templates,
    guidance,
    health,
    layouts,
    notifications,
    patients,
    prescriptions,
    registration,
    studies,
)

urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    # Authentication
    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),
    path('api/auth/me', me_view),
    path('api/auth/register', register_view),

    # Clinics and staff
    path('api/clinics', clinics.register_clinic),
    path('api/clinics/search', clinics.search_clinics),
    path('api/clinics/status', clinics.my_clinic_status),
    path('api/clinics/switch', clinics.switch_clinic),
    path('api/clinics/request-access', clinics.request_access),
    path('api/clinics/<int:clinic_id>', clinics.clinic_detail),
    path('api/clinics/<int:clinic_id>/invite', clinics.invite_user),
    path('api/clinics/<int:clinic_id>/staff', clinics.clinic_staff),
    path('api/clinics/<int:clinic_id>/audit', clinics.clinic_audit),
    path('api/memberships/<int:membership_id>/approve', clinics.approve_membership),
    path('api/memberships/<int:membership_id>/reject', clinics.reject_membership),

    # Patients
    path('api/patients', patients.patients),
    path('api/patients/stats', patients.patient_stats),
    path('api/patients/<int:patient_id>', patients.patient_detail),
    path('api/patients/<int:patient_id>/timeline', patients.patient_timeline),
    path('api/patients/<int:patient_id>/storage', patients.patient_storage),
    path('api/patients/<int:patient_id>/scales', patients.patient_scales),

    # Consultations
    path('api/consultations', consultations.consultations),
    path('api/consultations/<int:consultation_id>', consultations.consultation_detail),

    # Clinical guidance
    path('api/guidance/analyze', guidance.analyze),
    path('api/guidance/alerts', guidance.alerts),

    # Prescriptions and printing
    path('api/prescriptions', prescriptions.prescriptions),
    path('api/prescriptions/stats', prescriptions.prescription_stats),
    path('api/prescriptions/<int:prescription_id>', prescriptions.prescription_detail),
    path('api/prescriptions/<int:prescription_id>/print', prescriptions.prescription_print),
    path('api/prescription-layouts', layouts.layouts),
    path('api/prescription-layouts/validate', layouts.layout_validate),
    path('api/prescription-layouts/preview', layouts.layout_preview),
    path('api/prescription-layouts/<int:layout_id>', layouts.layout_detail),
    path('api/print-settings', layouts.print_settings),

    # Appointments
    path('api/appointments', appointments.appointments),
    path('api/appointments/availability', appointments.availability),
    path('api/appointments/schedule', appointments.practice_schedule),
    path('api/appointments/<int:appointment_id>', appointments.appointment_detail),
    path('api/appointments/<int:appointment_id>/status', appointments.appointment_status),

    # Physical exam templates
    path('api/exam-templates', exam_templates.exam_templates),
    path('api/exam-templates/<int:template_id>', exam_templates.exam_template_detail),

    # Studies and result files
    path('api/studies', studies.studies),
    path('api/studies/<int:study_id>', studies.study_detail),
    path('api/studies/<int:study_id>/files', studies.study_files),
    path('api/studies/<int:study_id>/files/<int:file_id>', studies.study_file_delete),

    # Patient self-registration
    path('api/registration/tokens', registration.create_token),
    path('api/registration/complete', registration.complete_registration),
    path('api/registration/<str:token>', registration.validate_token),

    # Notifications
    path('api/notifications', notifications.notifications),
    path('api/notifications/stats', notifications.notification_stats),
    path('api/notifications/read', notifications.mark_read),
    path('api/notifications/clear-read', notifications.delete_read),
]
