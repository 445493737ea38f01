"""
Per-clinic human readable document numbers.

Sequences are derived from the highest existing number; the clinic row is
locked while a number is allocated so concurrent creates do not collide.
"""
from __future__ import annotations

import re

from django.db import transaction

from practice.models import Clinic


def _next_sequence(queryset, field: str, prefix: str) -> int:
    pattern = re.compile(re.escape(prefix) + r'(\d+)$')
    highest = 0
    for value in queryset.filter(**{f'{field}__startswith': prefix}).values_list(field, flat=True):
        m = pattern.match(value or '')
        if m:
            highest = max(highest, int(m.group(1)))
    return highest + 1


def lock_clinic(clinic: Clinic) -> Clinic:
    return Clinic.objects.select_for_update().get(pk=clinic.pk)


def next_invoice_number(clinic: Clinic, year: int) -> str:
    from practice.models import Invoice
    prefix = f'INV-{year}-'
    seq = _next_sequence(Invoice.objects.filter(clinic=clinic), 'invoice_number', prefix)
    return f'{prefix}{seq:04d}'


def next_prescription_number(clinic: Clinic) -> str:
    from practice.models import Prescription
    seq = _next_sequence(Prescription.objects.filter(clinic=clinic), 'prescription_id', 'RX-')
    return f'RX-{seq:04d}'


def create_numbered(serializer, clinic: Clinic, field: str, allocate, **extra):
    """Save ``serializer`` with ``field`` set to ``allocate()`` under the clinic lock."""
    with transaction.atomic():
        lock_clinic(clinic)
        return serializer.save(clinic=clinic, **{field: allocate()}, **extra)


def next_report_number(clinic: Clinic, year: int) -> str:
    from practice.models import TestReport
    prefix = f'RPT{year}'
    seq = _next_sequence(TestReport.objects.filter(clinic=clinic), 'report_number', prefix)
    return f'{prefix}{seq:06d}'
