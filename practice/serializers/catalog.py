import re

from rest_framework import serializers

from practice.models import LabVendor, Service
from practice.serializers.base import ClinicModelSerializer, clean_text

VENDOR_CODE_RE = re.compile(r'^[A-Z0-9]+$')


class ServiceSerializer(ClinicModelSerializer):
    text_fields = ('name', 'category', 'description', 'department', 'prerequisites', 'special_instructions')

    class Meta:
        model = Service
        fields = [
            'id', 'name', 'category', 'description', 'duration', 'price', 'department', 'is_active',
            'prerequisites', 'follow_up_required', 'max_bookings_per_day', 'special_instructions',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'price': {'min_value': 0}}


class LabVendorSerializer(ClinicModelSerializer):
    text_fields = ('name', 'contact_person', 'address', 'city', 'state', 'average_turnaround', 'notes')

    class Meta:
        model = LabVendor
        fields = [
            'id', 'name', 'code', 'type', 'status', 'contact_person', 'email', 'phone', 'address', 'city',
            'state', 'zip_code', 'website', 'license', 'accreditation', 'specialties', 'rating', 'total_tests',
            'average_turnaround', 'pricing', 'contract_start', 'contract_end', 'last_test_date', 'notes',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'total_tests', 'last_test_date', 'created_at', 'updated_at']
        extra_kwargs = {'code': {'validators': []}}

    def validate_code(self, v):
        v = v.strip().upper()
        if not VENDOR_CODE_RE.match(v):
            raise serializers.ValidationError('Vendor code must contain only uppercase letters and numbers')
        clinic = self.clinic
        if clinic is not None:
            qs = LabVendor.objects.filter(clinic=clinic, code=v)
            if self.instance is not None:
                qs = qs.exclude(pk=self.instance.pk)
            if qs.exists():
                raise serializers.ValidationError('Vendor code already exists')
        return v

    def _labels(self, v, name):
        if not isinstance(v, list) or not all(isinstance(item, str) for item in v):
            raise serializers.ValidationError(f'{name} must be a list of strings')
        return [clean_text(item) for item in v if item.strip()]

    def validate_accreditation(self, v):
        return self._labels(v, 'Accreditation')

    def validate_specialties(self, v):
        return self._labels(v, 'Specialties')

    def validate(self, attrs):
        attrs = super().validate(attrs)
        start = attrs.get('contract_start') or getattr(self.instance, 'contract_start', None)
        end = attrs.get('contract_end') or getattr(self.instance, 'contract_end', None)
        if start and end and end <= start:
            raise serializers.ValidationError({'contract_end': ['Contract end date must be after start date.']})
        return attrs


class LabVendorStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s for s, _ in LabVendor.STATUS_CHOICES])


class TestCountSerializer(serializers.Serializer):
    increment = serializers.IntegerField(min_value=1, default=1)
