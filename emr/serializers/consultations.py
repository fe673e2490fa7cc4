from rest_framework import serializers


class ConsultationWriteSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    appointmentId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    currentCondition = serializers.CharField(required=False, allow_blank=True)
    vitalSigns = serializers.DictField(required=False)
    physicalExamination = serializers.DictField(required=False)
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    prognosis = serializers.CharField(required=False, allow_blank=True)
    treatment = serializers.CharField(required=False, allow_blank=True)


class ConsultationListQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=100, required=False)
