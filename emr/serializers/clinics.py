from rest_framework import serializers

from emr.models import Clinic, ClinicMembership

MEMBER_ROLES = [ClinicMembership.ROLE_DOCTOR, ClinicMembership.ROLE_ADMIN_STAFF]


class ClinicCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    type = serializers.ChoiceField(choices=[c[0] for c in Clinic.TYPE_CHOICES], required=False)
    address = serializers.CharField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    website = serializers.URLField(required=False, allow_blank=True)
    licenseNumber = serializers.CharField(max_length=64, required=False, allow_blank=True)
    directorName = serializers.CharField(max_length=255, required=False, allow_blank=True)
    directorLicense = serializers.CharField(max_length=64, required=False, allow_blank=True)
    settings = serializers.DictField(required=False)

    def validate_name(self, v):
        v = v.strip()
        if len(v) < 2:
            raise serializers.ValidationError('El nombre debe tener al menos 2 caracteres')
        return v


class ClinicSearchSerializer(serializers.Serializer):
    q = serializers.CharField(max_length=100, required=False, allow_blank=True)


class AccessRequestSerializer(serializers.Serializer):
    clinicId = serializers.IntegerField(min_value=1)
    role = serializers.ChoiceField(choices=MEMBER_ROLES, default=ClinicMembership.ROLE_DOCTOR)


class InviteSerializer(serializers.Serializer):
    user = serializers.CharField(max_length=254, help_text='username or email')
    role = serializers.ChoiceField(choices=MEMBER_ROLES, default=ClinicMembership.ROLE_DOCTOR)


class RejectSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)


class SwitchClinicSerializer(serializers.Serializer):
    clinicId = serializers.IntegerField(min_value=1)


class AuditQuerySerializer(serializers.Serializer):
    action = serializers.CharField(max_length=64, required=False, allow_blank=True)
    objectType = serializers.CharField(max_length=64, required=False, allow_blank=True)
    objectId = serializers.IntegerField(min_value=1, required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=100, required=False)

    def validate(self, attrs):
        if attrs.get('dateFrom') and attrs.get('dateTo') and attrs['dateFrom'] > attrs['dateTo']:
            raise serializers.ValidationError({'dateTo': 'La fecha final debe ser posterior a la inicial'})
        return attrs
