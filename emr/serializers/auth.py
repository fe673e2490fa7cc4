from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from emr.models import User


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()

    def validate_username(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('El usuario no puede estar vacío')
        return v

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('La contraseña no puede estar vacía')
        return v


class LogoutSerializer(serializers.Serializer):
    refresh = serializers.CharField(required=False, allow_blank=True)
    all = serializers.BooleanField(required=False, default=False)


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    fullName = serializers.CharField(max_length=255)
    role = serializers.ChoiceField(choices=[User.ROLE_DOCTOR, User.ROLE_ADMIN_STAFF], default=User.ROLE_DOCTOR)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    specialty = serializers.CharField(max_length=128, required=False, allow_blank=True)
    professionalLicense = serializers.CharField(max_length=64, required=False, allow_blank=True)

    def validate_username(self, v):
        v = v.strip()
        if User.objects.filter(username__iexact=v).exists():
            raise serializers.ValidationError('El usuario ya existe')
        return v

    def validate_password(self, v):
        validate_password(v)
        return v
