from datetime import date

from rest_framework import serializers

from practice.models import Patient
from practice.serializers.base import ClinicModelSerializer


class PatientSerializer(ClinicModelSerializer):
    full_name = serializers.CharField(read_only=True)
    age = serializers.IntegerField(read_only=True)

    text_fields = ('first_name', 'last_name', 'address')

    class Meta:
        model = Patient
        fields = [
            'id', 'first_name', 'last_name', 'full_name', 'date_of_birth', 'age', 'gender', 'phone', 'email',
            'address', 'emergency_contact', 'insurance_info', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_date_of_birth(self, v):
        if v > date.today():
            raise serializers.ValidationError('Date of birth cannot be in the future')
        return v

    def validate_emergency_contact(self, v):
        if not isinstance(v, dict):
            raise serializers.ValidationError('Emergency contact must be an object')
        return {k: v.get(k, '') for k in ('name', 'relationship', 'phone') if k in v}

    def validate_insurance_info(self, v):
        if not isinstance(v, dict):
            raise serializers.ValidationError('Insurance info must be an object')
        return {k: v.get(k) for k in ('provider', 'policy_number', 'group_number') if k in v}


class PatientBriefSerializer(serializers.ModelSerializer):
    class Meta:
        model = Patient
        fields = ['id', 'first_name', 'last_name', 'phone', 'email']
