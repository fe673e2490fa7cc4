from rest_framework import serializers

from emr.models import Prescription

STATUSES = [s[0] for s in Prescription.STATUS_CHOICES]


class PrescriptionCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    consultationId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    medications = serializers.ListField(child=serializers.DictField(), allow_empty=True)
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    durationDays = serializers.IntegerField(min_value=1, max_value=365, required=False, allow_null=True)


class PrescriptionUpdateSerializer(serializers.Serializer):
    medications = serializers.ListField(child=serializers.DictField(), required=False)
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=STATUSES, required=False)
    durationDays = serializers.IntegerField(min_value=1, max_value=365, required=False, allow_null=True)


class PrescriptionListQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=STATUSES, required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=100, required=False)


class PrintQuerySerializer(serializers.Serializer):
    layoutId = serializers.IntegerField(min_value=1, required=False)
    autoPrint = serializers.BooleanField(required=False, default=True)
