"""
Authentication views: login, JWT refresh/logout, current user and staff
self-registration.

Login issues both the legacy DRF token (``Authorization: Token ...``)
and a simplejwt pair (``Authorization: Bearer ...``); either is accepted
by the authentication classes configured in settings.
"""
from __future__ import annotations

import logging

from django.contrib.auth import authenticate
from django.db import transaction
from django.utils import timezone
from rest_framework.authtoken.models import Token
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from emr.models import User
from emr.serializers.auth import LoginSerializer, LogoutSerializer, RegisterSerializer
from emr.services.audit import client_ip, log_action
from emr.services.clinics import user_clinic_status
from emr.throttling import LoginRateThrottle

logger = logging.getLogger(__name__)


def user_to_dict(user: User) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'name': user.display_name,
        'email': user.email,
        'role': user.role,
        'phone': user.phone,
        'specialty': user.specialty,
        'professionalLicense': user.professional_license,
    }


def clinic_binding(user: User):
    if not user.clinic_id:
        return None
    return {
        'clinicId': user.clinic_id,
        'clinicName': user.clinic.name,
        'bindTime': int((user.clinic_bind_time or timezone.now()).timestamp()),
    }


def _audit_login(user, username, request, result):
    try:
        log_action(user=user, action='login', object_type='user', object_id=user.id if user else None,
                   detail={'result': result, 'username': username, 'ip': client_ip(request)})
    except Exception:
        logger.warning('audit write failed for login', exc_info=True)


# ---------------------------------------------------------------------
# Username/password login (role fields in the payload are ignored)
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def login_view(request):
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    username = s.validated_data['username']

    user = authenticate(request, username=username, password=s.validated_data['password'])
    if not user:
        _audit_login(None, username, request, 'fail')
        return Response({'ok': False, 'error': {'code': 'invalid_credentials',
                                                'message': 'Usuario o contraseña incorrectos'}}, status=400)
    _audit_login(user, username, request, 'ok')

    token_obj, _ = Token.objects.get_or_create(user=user)
    refresh = RefreshToken.for_user(user)
    return Response({
        'ok': True,
        'token': token_obj.key,
        'jwt_access': str(refresh.access_token),
        'jwt_refresh': str(refresh),
        'role': user.role,
        'user': user_to_dict(user),
        'clinicBinding': clinic_binding(user),
    })


@api_view(['POST'])
@permission_classes([AllowAny])
def jwt_refresh_view(request):
    """Return a new access token from a refresh token."""
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except TokenError as e:
        raise InvalidToken(e.args[0])
    data = dict(s.validated_data)
    data['jwt_access'] = data.pop('access')
    if 'refresh' in data:
        data['jwt_refresh'] = data.pop('refresh')
    return Response({'ok': True, **data})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def jwt_logout_view(request):
    """Blacklist one refresh token, or every outstanding token of the user."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    refresh = s.validated_data.get('refresh')
    count = 0
    if refresh and not s.validated_data.get('all'):
        try:
            RefreshToken(refresh).blacklist()
        except TokenError as e:
            raise ValidationError({'refresh': str(e)})
        count = 1
    else:
        for token in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=token)
            count += int(created)
    Token.objects.filter(user=request.user).delete()
    return Response({'ok': True, 'blacklisted': count})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me_view(request):
    user = request.user
    return Response({
        'ok': True,
        'user': user_to_dict(user),
        'clinicBinding': clinic_binding(user),
        'clinicStatus': user_clinic_status(user),
    })


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def register_view(request):
    """Create a doctor or administrative staff account."""
    s = RegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    with transaction.atomic():
        user = User.objects.create_user(
            username=vd['username'],
            password=vd['password'],
            email=vd.get('email') or '',
            role=vd['role'],
            full_name=vd['fullName'].strip(),
            phone=vd.get('phone') or '',
            specialty=vd.get('specialty') or '',
            professional_license=vd.get('professionalLicense') or '',
        )
    try:
        log_action(user=user, action='register', object_type='user', object_id=user.id,
                   detail={'role': user.role})
    except Exception:
        logger.warning('audit write failed for register', exc_info=True)
    return Response({'ok': True, 'user': user_to_dict(user)}, status=201)
