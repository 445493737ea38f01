from __future__ import annotations

from django.db import transaction
from django.utils import timezone

from practice.exceptions import Conflict
from practice.models import Lead, Patient


def convert_lead(lead: Lead, *, date_of_birth, gender: str, address: str = '') -> Patient:
    """Turn ``lead`` into a patient of the same clinic."""
    if lead.status == 'converted':
        raise Conflict('Lead is already converted.')
    with transaction.atomic():
        patient = Patient.objects.create(
            clinic_id=lead.clinic_id,
            first_name=lead.first_name,
            last_name=lead.last_name,
            email=lead.email,
            phone=lead.phone,
            date_of_birth=date_of_birth,
            gender=gender,
            address=address,
        )
        note = f'Converted to patient #{patient.pk} on {timezone.now():%Y-%m-%d}'
        lead.notes = f'{lead.notes}\n{note}'.strip() if lead.notes else note
        lead.status = 'converted'
        lead.save(update_fields=['notes', 'status', 'updated_at'])
    return patient
