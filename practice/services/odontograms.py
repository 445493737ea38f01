"""
Dental chart versioning.

A patient has at most one active chart per clinic.  Creation and
activation lock the patient row, so concurrent writers serialise on it,
and the partial unique constraint on ``Odontogram`` rejects anything that
slips past.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import Max, Sum

from practice.models import Odontogram, Patient

logger = logging.getLogger(__name__)


def _lock_patient(patient: Patient) -> Patient:
    return Patient.objects.select_for_update().get(pk=patient.pk)


def create_odontogram(*, clinic, patient: Patient, doctor, activate: bool = True, **fields) -> Odontogram:
    """Store a new chart version for ``patient``; newest version is active by default."""
    with transaction.atomic():
        _lock_patient(patient)
        charts = Odontogram.objects.filter(clinic=clinic, patient=patient)
        latest = charts.aggregate(v=Max('version'))['v'] or 0
        if activate:
            charts.filter(is_active=True).update(is_active=False)
        chart = Odontogram(
            clinic=clinic,
            patient=patient,
            doctor=doctor,
            version=latest + 1,
            is_active=activate,
            **fields,
        )
        chart.calculate_treatment_summary()
        chart.save()
    logger.info('Odontogram v%s created clinic=%s patient=%s', chart.version, clinic.pk, patient.pk)
    return chart


def set_active(chart: Odontogram) -> Odontogram:
    with transaction.atomic():
        _lock_patient(chart.patient)
        Odontogram.objects.filter(
            clinic_id=chart.clinic_id, patient_id=chart.patient_id, is_active=True,
        ).exclude(pk=chart.pk).update(is_active=False)
        chart.is_active = True
        chart.save(update_fields=['is_active', 'updated_at'])
    return chart


def save_chart(chart: Odontogram, **changes) -> Odontogram:
    """Apply ``changes`` and recompute the treatment summary."""
    activate = changes.pop('is_active', None)
    for name, value in changes.items():
        setattr(chart, name, value)
    chart.calculate_treatment_summary()
    chart.save()
    if activate:
        set_active(chart)
    elif activate is False and chart.is_active:
        chart.is_active = False
        chart.save(update_fields=['is_active', 'updated_at'])
    return chart


def update_tooth(chart: Odontogram, tooth: dict) -> Odontogram:
    """Add ``tooth`` to the chart or merge it into the existing entry."""
    teeth = list(chart.teeth_conditions or [])
    for i, existing in enumerate(teeth):
        if existing.get('tooth_number') == tooth['tooth_number']:
            teeth[i] = {**existing, **tooth}
            break
    else:
        teeth.append(tooth)
    chart.teeth_conditions = teeth
    chart.calculate_treatment_summary()
    chart.save()
    return chart


def active_chart(clinic, patient) -> Optional[Odontogram]:
    return Odontogram.objects.filter(clinic=clinic, patient=patient, is_active=True).first()


def patient_summary(chart: Odontogram) -> dict:
    return {
        'odontogram_id': chart.pk,
        'version': chart.version,
        'treatment_summary': chart.treatment_summary,
        'treatment_progress': chart.treatment_progress,
        'pending_treatments': chart.pending_treatments,
    }


def clinic_summary(clinic) -> dict:
    """Aggregate over all active charts in ``clinic``."""
    totals = Odontogram.objects.filter(clinic=clinic, is_active=True).aggregate(
        planned=Sum('total_planned_treatments'),
        completed=Sum('completed_treatments'),
        in_progress=Sum('in_progress_treatments'),
        cost=Sum('estimated_total_cost'),
    )
    count = Odontogram.objects.filter(clinic=clinic, is_active=True).count()
    planned = totals['planned'] or 0
    completed = totals['completed'] or 0
    in_progress = totals['in_progress'] or 0
    return {
        'active_odontograms': count,
        'total_planned_treatments': planned,
        'completed_treatments': completed,
        'in_progress_treatments': in_progress,
        'pending_treatments': planned - completed - in_progress,
        'estimated_total_cost': totals['cost'] or Decimal('0'),
        'completion_rate': round(completed / planned * 100) if planned else 0,
    }


def recalculate_all(clinic) -> int:
    updated = 0
    for chart in Odontogram.objects.filter(clinic=clinic).iterator():
        chart.calculate_treatment_summary()
        chart.save(update_fields=[
            'total_planned_treatments', 'completed_treatments', 'in_progress_treatments',
            'estimated_total_cost', 'updated_at',
        ])
        updated += 1
    return updated
