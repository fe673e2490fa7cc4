from rest_framework import serializers


class SymptomAnalysisSerializer(serializers.Serializer):
    text = serializers.CharField(max_length=5000)
    useAI = serializers.BooleanField(required=False, default=True)


class GuidanceContextSerializer(serializers.Serializer):
    vitalSigns = serializers.DictField(required=False)
    medications = serializers.ListField(required=False)
    patientAge = serializers.IntegerField(min_value=0, max_value=130, required=False, allow_null=True)
    currentCondition = serializers.CharField(required=False, allow_blank=True)
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    useAI = serializers.BooleanField(required=False, default=True)
