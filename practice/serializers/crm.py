from rest_framework import serializers

from practice.models import Department, Lead
from practice.serializers.base import ClinicModelSerializer


class LeadSerializer(ClinicModelSerializer):
    member_fields = ('assigned_to',)
    text_fields = ('first_name', 'last_name', 'service_interest', 'notes')

    class Meta:
        model = Lead
        fields = [
            'id', 'first_name', 'last_name', 'email', 'phone', 'source', 'service_interest', 'status',
            'assigned_to', 'notes', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class LeadStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[s for s, _ in Lead.STATUS_CHOICES])


class LeadConvertSerializer(serializers.Serializer):
    date_of_birth = serializers.DateField()
    gender = serializers.ChoiceField(choices=['male', 'female', 'other'])
    address = serializers.CharField(max_length=255, required=False, allow_blank=True)


class DepartmentSerializer(ClinicModelSerializer):
    text_fields = ('name', 'description', 'head', 'location')

    class Meta:
        model = Department
        fields = [
            'id', 'code', 'name', 'description', 'head', 'location', 'phone', 'email', 'staff_count', 'budget',
            'status', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'budget': {'min_value': 0}}

    def validate_code(self, v):
        v = v.strip().upper()
        clinic = self.clinic
        if clinic is not None:
            qs = Department.objects.filter(clinic=clinic, code=v)
            if self.instance is not None:
                qs = qs.exclude(pk=self.instance.pk)
            if qs.exists():
                raise serializers.ValidationError('Department code already exists')
        return v
