import datetime
import decimal

import bleach
from rest_framework import serializers

from practice.models import UserClinic


def clean_text(value):
    """Strip markup from user supplied free text."""
    if value is None:
        return value
    return bleach.clean(str(value).strip(), tags=[], strip=True)


class ClinicModelSerializer(serializers.ModelSerializer):
    """Model serializer whose relations must live in the request's clinic.

    ``clinic_fields`` name foreign keys to tenant-owned rows,
    ``member_fields`` name user foreign keys that must be clinic members.
    """
    clinic_fields: tuple = ()
    member_fields: tuple = ()
    text_fields: tuple = ()

    @property
    def clinic(self):
        request = self.context.get('request')
        return getattr(request, 'clinic', None)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        for name in self.text_fields:
            if name in attrs:
                attrs[name] = clean_text(attrs[name])
        clinic = self.clinic
        if clinic is None:
            return attrs
        errors = {}
        for name in self.clinic_fields:
            obj = attrs.get(name)
            if obj is not None and obj.clinic_id != clinic.pk:
                errors[name] = ['Not found in this clinic.']
        for name in self.member_fields:
            user = attrs.get(name)
            if user is None:
                continue
            if not UserClinic.objects.filter(user=user, clinic=clinic, is_active=True).exists():
                errors[name] = ['User is not a member of this clinic.']
        if errors:
            raise serializers.ValidationError(errors)
        return attrs


class UserBriefSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    email = serializers.EmailField()
    first_name = serializers.CharField()
    last_name = serializers.CharField()
    role = serializers.CharField()


def validate_items(serializer_class, items, **kwargs):
    """Validate a JSON list column item by item; returns plain dicts."""
    s = serializer_class(data=items, many=True, **kwargs)
    s.is_valid(raise_exception=True)
    return [json_ready(item) for item in s.validated_data]


def json_ready(value):
    """Convert validated data to values a JSON column can store."""
    if isinstance(value, dict):
        return {k: json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_ready(v) for v in value]
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return float(value)
    return value
