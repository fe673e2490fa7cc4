"""
Rate limits for the sensitive endpoints.

Function views built with ``@api_view`` cannot carry ``throttle_scope``,
so each scope from ``DEFAULT_THROTTLE_RATES`` gets its own class.
"""
from rest_framework.throttling import AnonRateThrottle, UserRateThrottle


class LoginRateThrottle(AnonRateThrottle):
    scope = 'login'


class PatientRegisterRateThrottle(AnonRateThrottle):
    scope = 'patient_register'


class GuidanceRateThrottle(UserRateThrottle):
    scope = 'guidance'
