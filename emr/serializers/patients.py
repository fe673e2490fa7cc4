from rest_framework import serializers

GENDERS = ['male', 'female', 'other']


class PatientListQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=100, required=False, allow_blank=True)
    clinicId = serializers.IntegerField(min_value=1, required=False)
    includeInactive = serializers.BooleanField(required=False, default=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=100, required=False)


class PatientWriteSerializer(serializers.Serializer):
    fullName = serializers.CharField(max_length=255)
    birthDate = serializers.DateField(required=False, allow_null=True)
    gender = serializers.ChoiceField(choices=GENDERS, required=False, allow_blank=True)
    email = serializers.CharField(max_length=254, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    curp = serializers.CharField(max_length=18, required=False, allow_blank=True)
    cityOfBirth = serializers.CharField(max_length=128, required=False, allow_blank=True)
    cityOfResidence = serializers.CharField(max_length=128, required=False, allow_blank=True)
    socialSecurityNumber = serializers.CharField(max_length=32, required=False, allow_blank=True)
    insuranceInfo = serializers.DictField(required=False)
    emergencyContact = serializers.DictField(required=False)
    pathologicalHistory = serializers.DictField(required=False)
    nonPathologicalHistory = serializers.DictField(required=False)
    hereditaryBackground = serializers.ListField(child=serializers.CharField(allow_blank=True), required=False)
    clinicId = serializers.IntegerField(min_value=1, required=False)

    def validate_curp(self, v):
        return v.strip().upper()
