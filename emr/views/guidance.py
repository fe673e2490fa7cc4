"""
Clinical guidance endpoints: symptom analysis of the current condition
text and real-time alerts for a consultation in progress.
"""
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from emr.permissions import IsClinicStaff
from emr.serializers.guidance import GuidanceContextSerializer, SymptomAnalysisSerializer
from emr.services import ai, guidance
from emr.throttling import GuidanceRateThrottle


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
@throttle_classes([GuidanceRateThrottle])
def analyze(request):
    s = SymptomAnalysisSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    text = s.validated_data['text']
    if s.validated_data['useAI']:
        result = guidance.analyze_with_ai(text)
    else:
        result = guidance.merge_analysis(guidance.analyze_symptoms(text), None)
    return Response({'ok': True, 'analysis': result, 'aiEnabled': ai.is_enabled()})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinicStaff])
@throttle_classes([GuidanceRateThrottle])
def alerts(request):
    s = GuidanceContextSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    context = dict(s.validated_data)
    use_ai = context.pop('useAI')
    return Response({'ok': True, 'alerts': guidance.guidance_alerts(context, use_ai=use_ai)})
