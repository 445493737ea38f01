from rest_framework import serializers

from practice.models import TestReport
from practice.serializers.base import ClinicModelSerializer
from practice.serializers.odontogram import AttachmentSerializer


class TestReportSerializer(ClinicModelSerializer):
    clinic_fields = ('patient',)
    text_fields = ('notes', 'interpretation', 'normal_range')

    class Meta:
        model = TestReport
        fields = [
            'id', 'report_number', 'patient', 'patient_name', 'patient_age', 'patient_gender', 'test_name',
            'test_code', 'category', 'external_vendor', 'test_date', 'recorded_date', 'recorded_by', 'status',
            'results', 'normal_range', 'units', 'notes', 'attachments', 'interpretation', 'verified_by',
            'verified_date', 'created_at', 'updated_at',
        ]
        read_only_fields = [
            'id', 'report_number', 'status', 'verified_by', 'verified_date', 'attachments', 'created_at', 'updated_at',
        ]
        extra_kwargs = {
            'patient_name': {'required': False},
            'patient_age': {'required': False},
            'patient_gender': {'required': False},
            'recorded_by': {'required': False},
        }

    def validate_test_code(self, v):
        return v.strip().upper()

    def validate(self, attrs):
        attrs = super().validate(attrs)
        patient = attrs.get('patient')
        if patient is not None and self.instance is None:
            attrs.setdefault('patient_name', patient.full_name)
            attrs.setdefault('patient_age', patient.age or 0)
            attrs.setdefault('patient_gender', patient.gender)
        return attrs


class ReportStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s for s, _ in TestReport.STATUS_CHOICES])
    verified_by = serializers.CharField(max_length=100, required=False, allow_blank=True)


class ReportAttachmentSerializer(AttachmentSerializer):
    file_type = serializers.ChoiceField(choices=['image', 'document', 'pdf'], default='document')
