import re

from rest_framework import serializers

from practice.models import Clinic, User, UserClinic
from practice.serializers.base import clean_text

CODE_RE = re.compile(r'^[A-Z0-9]{3,20}$')


class ClinicSerializer(serializers.ModelSerializer):
    full_address = serializers.CharField(read_only=True)

    class Meta:
        model = Clinic
        fields = [
            'id', 'name', 'code', 'description', 'address', 'full_address', 'phone', 'email', 'website',
            'timezone', 'currency', 'language', 'working_hours', 'is_active', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'is_active', 'created_at', 'updated_at']
        extra_kwargs = {'code': {'required': False, 'validators': []}}

    def validate_name(self, v):
        v = clean_text(v)
        if len(v) < 2:
            raise serializers.ValidationError('Clinic name must be at least 2 characters')
        return v

    def validate_code(self, v):
        if not v:
            return v
        v = v.strip().upper()
        if not CODE_RE.match(v):
            raise serializers.ValidationError('Clinic code must contain only uppercase letters and numbers')
        qs = Clinic.objects.filter(code=v)
        if self.instance is not None:
            qs = qs.exclude(pk=self.instance.pk)
        if qs.exists():
            raise serializers.ValidationError('Clinic code already exists')
        return v

    def validate_address(self, v):
        if not isinstance(v, dict):
            raise serializers.ValidationError('Address must be an object')
        allowed = {'street', 'city', 'state', 'zipCode', 'country'}
        return {k: clean_text(val) for k, val in v.items() if k in allowed}


class MembershipSerializer(serializers.ModelSerializer):
    """A membership seen from the user's side (``my clinics``)."""
    clinic = ClinicSerializer(read_only=True)

    class Meta:
        model = UserClinic
        fields = ['id', 'clinic', 'role', 'permissions', 'is_active', 'joined_at', 'last_login']


class ClinicUserSerializer(serializers.ModelSerializer):
    """A membership seen from the clinic's side (``clinic users``)."""
    user = serializers.SerializerMethodField()

    class Meta:
        model = UserClinic
        fields = ['id', 'user', 'role', 'permissions', 'is_active', 'joined_at', 'last_login']

    def get_user(self, obj):
        u = obj.user
        return {'id': u.id, 'email': u.email, 'first_name': u.first_name, 'last_name': u.last_name, 'role': u.role}


class ClinicUserWriteSerializer(serializers.Serializer):
    user_id = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(is_active=True), required=False)
    role = serializers.ChoiceField(choices=[r for r, _ in User.ROLE_CHOICES], required=False)
    permissions = serializers.ListField(child=serializers.CharField(max_length=64), required=False)
    is_active = serializers.BooleanField(required=False)
