from rest_framework import serializers

from practice.models import Appointment, Patient, User
from practice.serializers.base import ClinicModelSerializer, UserBriefSerializer
from practice.serializers.patient import PatientBriefSerializer


class AppointmentSerializer(ClinicModelSerializer):
    clinic_fields = ('patient',)
    member_fields = ('doctor', 'nurse')
    text_fields = ('reason', 'notes')

    patient_detail = PatientBriefSerializer(source='patient', read_only=True)
    doctor_detail = UserBriefSerializer(source='doctor', read_only=True)

    class Meta:
        model = Appointment
        fields = [
            'id', 'patient', 'patient_detail', 'doctor', 'doctor_detail', 'nurse', 'appointment_date',
            'duration', 'status', 'type', 'reason', 'notes', 'is_walk_in', 'checked_in_at',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'is_walk_in', 'checked_in_at', 'created_at', 'updated_at']

    def validate_doctor(self, v):
        if v.role not in (User.ROLE_DOCTOR, User.ROLE_ADMIN):
            raise serializers.ValidationError('Assigned user is not a doctor')
        return v

    def validate_nurse(self, v):
        if v is not None and v.role != User.ROLE_NURSE:
            raise serializers.ValidationError('Assigned user is not a nurse')
        return v


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s for s, _ in Appointment.STATUS_CHOICES])
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class WalkInSerializer(serializers.Serializer):
    """Walk-in registration: either an existing ``patient`` or new patient fields."""
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all(), required=False)
    first_name = serializers.CharField(max_length=50, required=False)
    last_name = serializers.CharField(max_length=50, required=False)
    phone = serializers.CharField(max_length=20, required=False)
    email = serializers.EmailField(required=False, allow_blank=True)
    date_of_birth = serializers.DateField(required=False)
    gender = serializers.ChoiceField(choices=[g for g, _ in Patient.GENDER_CHOICES], required=False)
    doctor = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True))
    type = serializers.ChoiceField(choices=[t for t, _ in Appointment.TYPE_CHOICES], default='consultation')
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)
    duration = serializers.IntegerField(min_value=15, max_value=480, default=30)

    def validate(self, attrs):
        if attrs.get('patient') is None:
            missing = [f for f in ('first_name', 'last_name', 'phone', 'date_of_birth', 'gender') if not attrs.get(f)]
            if missing:
                raise serializers.ValidationError({f: ['This field is required for a new patient.'] for f in missing})
        return attrs
