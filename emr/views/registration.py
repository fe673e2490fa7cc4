"""
Patient self-registration: doctors create invitation links, patients
validate and complete them without an account.
"""
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from emr.permissions import IsDoctor
from emr.serializers.registration import RegistrationCompleteSerializer, TokenCreateSerializer
from emr.services import registration as svc
from emr.throttling import PatientRegisterRateThrottle


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def create_token(request):
    s = TokenCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    result = svc.create_token(request.user, scale_ids=vd.get('scaleIds'),
                              allowed_sections=vd.get('allowedSections'),
                              expires_in_hours=vd.get('expiresInHours'))
    return Response({'ok': True, **result}, status=201)


@api_view(['GET'])
@permission_classes([AllowAny])
@throttle_classes([PatientRegisterRateThrottle])
def validate_token(request, token: str):
    return Response({'ok': True, **svc.validate_token(token)})


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([PatientRegisterRateThrottle])
def complete_registration(request):
    s = RegistrationCompleteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    patient_id = svc.complete_registration(
        vd['token'], vd['personal'], pathological=vd.get('pathological'),
        non_pathological=vd.get('nonPathological'), hereditary=vd.get('hereditary'),
        scales=vd.get('scales'),
    )
    return Response({'ok': True, 'patientId': patient_id}, status=201)
