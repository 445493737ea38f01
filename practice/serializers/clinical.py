from rest_framework import serializers

from practice.models import MedicalRecord, Prescription
from practice.serializers.base import ClinicModelSerializer, UserBriefSerializer, validate_items
from practice.serializers.patient import PatientBriefSerializer


class MedicationSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200)
    dosage = serializers.CharField(max_length=100)
    frequency = serializers.CharField(max_length=100)
    duration = serializers.CharField(max_length=100)
    instructions = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')
    quantity = serializers.IntegerField(min_value=1)


class PrescriptionSerializer(ClinicModelSerializer):
    clinic_fields = ('patient', 'appointment')
    member_fields = ('doctor',)
    text_fields = ('diagnosis', 'notes')

    patient_detail = PatientBriefSerializer(source='patient', read_only=True)
    doctor_detail = UserBriefSerializer(source='doctor', read_only=True)

    class Meta:
        model = Prescription
        fields = [
            'id', 'prescription_id', 'patient', 'patient_detail', 'doctor', 'doctor_detail', 'appointment',
            'diagnosis', 'medications', 'status', 'notes', 'follow_up_date', 'pharmacy_dispensed',
            'dispensed_date', 'created_at', 'updated_at',
        ]
        read_only_fields = [
            'id', 'prescription_id', 'pharmacy_dispensed', 'dispensed_date', 'created_at', 'updated_at',
        ]
        extra_kwargs = {'doctor': {'required': False}}

    def validate_medications(self, v):
        if not isinstance(v, list) or not v:
            raise serializers.ValidationError('At least one medication is required')
        return validate_items(MedicationSerializer, v)


class PrescriptionStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s for s, _ in Prescription.STATUS_CHOICES])


class MedicalRecordSerializer(ClinicModelSerializer):
    clinic_fields = ('patient',)
    member_fields = ('doctor',)
    text_fields = ('chief_complaint', 'diagnosis', 'treatment', 'notes')

    doctor_detail = UserBriefSerializer(source='doctor', read_only=True)

    class Meta:
        model = MedicalRecord
        fields = [
            'id', 'patient', 'doctor', 'doctor_detail', 'visit_date', 'chief_complaint', 'diagnosis', 'treatment',
            'vital_signs', 'medications', 'allergies', 'notes', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'doctor': {'required': False}}

    def validate_vital_signs(self, v):
        if not isinstance(v, dict):
            raise serializers.ValidationError('Vital signs must be an object')
        return v

    def validate_allergies(self, v):
        if not isinstance(v, list):
            raise serializers.ValidationError('Allergies must be a list')
        return v
