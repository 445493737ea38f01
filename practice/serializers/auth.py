from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from practice.models import User
from practice.serializers.base import clean_text


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name', 'role', 'phone',
            'specialization', 'license_number', 'department', 'base_currency',
            'address', 'bio', 'date_of_birth', 'is_active', 'last_login', 'created_at',
        ]
        read_only_fields = ['id', 'email', 'role', 'is_active', 'last_login', 'created_at']

    def validate_first_name(self, v):
        return clean_text(v)

    def validate_last_name(self, v):
        return clean_text(v)


class RegisterSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=6)
    first_name = serializers.CharField(max_length=150)
    last_name = serializers.CharField(max_length=150)
    role = serializers.ChoiceField(choices=[r for r, _ in User.ROLE_CHOICES], default=User.ROLE_STAFF)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True)

    def validate_email(self, v):
        return v.strip().lower()

    def validate_first_name(self, v):
        v = clean_text(v)
        if len(v) < 2:
            raise serializers.ValidationError('First name must be at least 2 characters')
        return v

    def validate_last_name(self, v):
        v = clean_text(v)
        if len(v) < 2:
            raise serializers.ValidationError('Last name must be at least 2 characters')
        return v


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField()

    def validate_email(self, v):
        return (v or '').strip().lower()


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField()
    new_password = serializers.CharField(min_length=8)

    def validate_new_password(self, v):
        user = self.context['request'].user
        try:
            validate_password(v, user=user)
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.messages)
        return v


class ClinicSelectSerializer(serializers.Serializer):
    clinic_id = serializers.UUIDField()
