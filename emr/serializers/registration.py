from rest_framework import serializers

from emr.serializers.scales import ScaleAnswersSerializer

SECTIONS = ['personal', 'pathological', 'non_pathological', 'hereditary']


class TokenCreateSerializer(serializers.Serializer):
    scaleIds = serializers.ListField(child=serializers.CharField(max_length=64), required=False)
    allowedSections = serializers.ListField(child=serializers.ChoiceField(choices=SECTIONS), required=False)
    expiresInHours = serializers.IntegerField(min_value=1, max_value=24 * 30, required=False)


class RegistrationCompleteSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=64)
    personal = serializers.DictField()
    pathological = serializers.DictField(required=False)
    nonPathological = serializers.DictField(required=False)
    hereditary = serializers.ListField(child=serializers.CharField(allow_blank=True), required=False)
    scales = serializers.DictField(child=ScaleAnswersSerializer(), required=False)

    def validate_personal(self, v):
        if not (v.get('fullName') or '').strip():
            raise serializers.ValidationError('El nombre completo es obligatorio')
        return v
