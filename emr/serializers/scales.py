from rest_framework import serializers


class ScaleAnswersSerializer(serializers.Serializer):
    answers = serializers.DictField(required=False)
    score = serializers.FloatField(required=False, allow_null=True)
    severity = serializers.CharField(max_length=32, required=False, allow_blank=True, allow_null=True)


class ScaleAssessmentSerializer(ScaleAnswersSerializer):
    scaleId = serializers.CharField(max_length=64)
    consultationId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    interpretation = serializers.DictField(required=False, allow_null=True)


class ScaleQuerySerializer(serializers.Serializer):
    scaleId = serializers.CharField(max_length=64, required=False, allow_blank=True)
