from rest_framework import serializers

from emr.models import Appointment

STATUSES = [s[0] for s in Appointment.STATUS_CHOICES]
TYPES = [t[0] for t in Appointment.TYPE_CHOICES]


class CommaListField(serializers.Field):
    """``a,b,c`` query value -> ``['a', 'b', 'c']``."""

    def __init__(self, choices, **kwargs):
        self.choices = choices
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        values = [v.strip() for v in str(data).split(',') if v.strip()]
        bad = [v for v in values if v not in self.choices]
        if bad:
            raise serializers.ValidationError(f"Valores no válidos: {', '.join(bad)}")
        return values


class AppointmentListQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1, required=False)
    patientId = serializers.IntegerField(min_value=1, required=False)
    dateFrom = serializers.DateField(required=False)
    dateTo = serializers.DateField(required=False)
    status = CommaListField(STATUSES, required=False)
    type = CommaListField(TYPES, required=False)


class AppointmentCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    doctorId = serializers.IntegerField(min_value=1, required=False)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    appointmentDate = serializers.DateField()
    appointmentTime = serializers.TimeField()
    duration = serializers.IntegerField(min_value=5, max_value=480, required=False)
    type = serializers.ChoiceField(choices=TYPES, required=False)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    confirmationRequired = serializers.BooleanField(required=False)


class AppointmentUpdateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    appointmentDate = serializers.DateField(required=False)
    appointmentTime = serializers.TimeField(required=False)
    duration = serializers.IntegerField(min_value=5, max_value=480, required=False)
    type = serializers.ChoiceField(choices=TYPES, required=False)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    confirmationRequired = serializers.BooleanField(required=False)


class StatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=STATUSES)


class AvailabilityQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1, required=False)
    date = serializers.DateField()
    time = serializers.TimeField()
    duration = serializers.IntegerField(min_value=5, max_value=480, required=False, default=30)
    excludeId = serializers.IntegerField(min_value=1, required=False)


class ScheduleSerializer(serializers.Serializer):
    weekdayStart = serializers.TimeField(required=False, allow_null=True)
    weekdayEnd = serializers.TimeField(required=False, allow_null=True)
    saturdayStart = serializers.TimeField(required=False, allow_null=True)
    saturdayEnd = serializers.TimeField(required=False, allow_null=True)
    sundayEnabled = serializers.BooleanField(required=False)
    sundayStart = serializers.TimeField(required=False, allow_null=True)
    sundayEnd = serializers.TimeField(required=False, allow_null=True)
    defaultDuration = serializers.IntegerField(min_value=5, max_value=480, required=False)

    def validate(self, attrs):
        for prefix in ('weekday', 'saturday', 'sunday'):
            start, end = attrs.get(f'{prefix}Start'), attrs.get(f'{prefix}End')
            if start and end and start >= end:
                raise serializers.ValidationError({f'{prefix}End': 'La hora de cierre debe ser posterior a la de apertura'})
        return attrs
