from rest_framework import serializers


class ExamTemplateWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    definition = serializers.JSONField()
    isActive = serializers.BooleanField(required=False)


class ExamTemplateUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False)
    definition = serializers.JSONField(required=False)
    isActive = serializers.BooleanField(required=False)
