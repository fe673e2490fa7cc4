from rest_framework import serializers

from emr.models import MedicalTest


class StudyCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    category = serializers.ChoiceField(choices=[c[0] for c in MedicalTest.CATEGORY_CHOICES], default='laboratorio')
    testName = serializers.CharField(max_length=255)
    labName = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class StudyUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s[0] for s in MedicalTest.STATUS_CHOICES], required=False)
    resultDate = serializers.DateField(required=False, allow_null=True)
    labName = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class FileUploadSerializer(serializers.Serializer):
    file = serializers.FileField(allow_empty_file=False)
