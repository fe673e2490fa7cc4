from rest_framework import serializers

from emr.models import PrintSettings


class _OpenSerializer(serializers.Serializer):
    """Validates the declared keys and keeps any extra editor keys as sent."""

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        return {**data, **value}


class PositionSerializer(_OpenSerializer):
    x = serializers.FloatField(required=False)
    y = serializers.FloatField(required=False)


class SizeSerializer(_OpenSerializer):
    width = serializers.FloatField(required=False)
    height = serializers.FloatField(required=False)


class ElementStyleSerializer(_OpenSerializer):
    fontSize = serializers.FloatField(required=False, allow_null=True)
    fontFamily = serializers.CharField(max_length=128, required=False, allow_blank=True)
    color = serializers.CharField(max_length=64, required=False, allow_blank=True)
    fontWeight = serializers.CharField(max_length=32, required=False, allow_blank=True)
    fontStyle = serializers.CharField(max_length=32, required=False, allow_blank=True)
    textDecoration = serializers.CharField(max_length=64, required=False, allow_blank=True)
    textAlign = serializers.CharField(max_length=16, required=False, allow_blank=True)
    lineHeight = serializers.FloatField(required=False, allow_null=True)


class LayoutElementSerializer(_OpenSerializer):
    id = serializers.CharField(max_length=128)
    type = serializers.CharField(max_length=32)
    position = PositionSerializer(required=False)
    size = SizeSerializer(required=False)
    content = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)
    style = ElementStyleSerializer(required=False, allow_null=True)
    zIndex = serializers.IntegerField(required=False)
    isVisible = serializers.BooleanField(required=False)
    isLocked = serializers.BooleanField(required=False)
    borderColor = serializers.CharField(max_length=64, required=False, allow_blank=True)
    backgroundColor = serializers.CharField(max_length=64, required=False, allow_blank=True)


class CanvasSettingsSerializer(_OpenSerializer):
    backgroundColor = serializers.CharField(max_length=64, required=False, allow_blank=True)
    canvasSize = SizeSerializer(required=False, allow_null=True)


class LayoutWriteSerializer(serializers.Serializer):
    templateName = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    templateElements = serializers.ListField(child=LayoutElementSerializer(), required=False)
    canvasSettings = CanvasSettingsSerializer(required=False)
    category = serializers.CharField(max_length=64, required=False, allow_blank=True)
    isDefault = serializers.BooleanField(required=False)
    isPublic = serializers.BooleanField(required=False)


class LayoutValidateSerializer(serializers.Serializer):
    templateElements = serializers.ListField(child=LayoutElementSerializer())
    canvasSettings = CanvasSettingsSerializer(required=False)


class PrintSettingsSerializer(serializers.Serializer):
    pageSize = serializers.ChoiceField(choices=[c[0] for c in PrintSettings.PAGE_SIZE_CHOICES], required=False)
    orientation = serializers.ChoiceField(choices=[c[0] for c in PrintSettings.ORIENTATION_CHOICES], required=False)
    margins = serializers.DictField(child=serializers.CharField(max_length=16), required=False)
    quality = serializers.ChoiceField(choices=[c[0] for c in PrintSettings.QUALITY_CHOICES], required=False)
    colorMode = serializers.ChoiceField(choices=[c[0] for c in PrintSettings.COLOR_MODE_CHOICES], required=False)
    scaleFactor = serializers.FloatField(min_value=0.1, max_value=3.0, required=False)
    includeQRCode = serializers.BooleanField(required=False)
    includeDigitalSignature = serializers.BooleanField(required=False)
    watermarkText = serializers.CharField(max_length=128, required=False, allow_blank=True)
    defaultLayoutId = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class PrintOptionsSerializer(PrintSettingsSerializer):
    autoPrint = serializers.BooleanField(required=False)


class LayoutPreviewSerializer(serializers.Serializer):
    templateElements = serializers.ListField(child=LayoutElementSerializer())
    canvasSettings = CanvasSettingsSerializer(required=False)
    data = serializers.DictField(required=False)
    options = PrintOptionsSerializer(required=False)
