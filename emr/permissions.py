"""
Custom permission classes for role based access control.

Clinic scoping (which clinic's data a user may touch) is enforced in
the services layer; these classes only gate endpoints by role.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

STAFF_ROLES = {"doctor", "admin_staff", "super"}


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    return getattr(user, "role", None)


class IsClinicStaff(BasePermission):
    """Doctors, administrative staff and super admins."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in STAFF_ROLES


class IsDoctor(BasePermission):
    """Allow access only to users with the doctor role (or super)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in {"doctor", "super"}


class IsDoctorOrReadOnlyStaff(BasePermission):
    """Staff may read; only doctors may write (prescriptions, consultations)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        role = _role(request)
        if request.method in SAFE_METHODS:
            return role in STAFF_ROLES
        return role in {"doctor", "super"}
