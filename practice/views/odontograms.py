"""
Dental chart endpoints.

Each save produces or edits a versioned chart; only one chart per patient
is active at a time (see ``practice.services.odontograms``).
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated

from practice.models import Odontogram, Patient, User
from practice.permissions import HasClinicContext, IsAdmin, IsMedicalStaff, ensure_role
from practice.responses import created, ok
from practice.serializers.base import json_ready
from practice.serializers.odontogram import OdontogramListSerializer, OdontogramSerializer, ToothConditionSerializer
from practice.services import odontograms as charts
from practice.services.access import role_filter
from practice.services.common import paginate
from practice.services.tenancy import clinic_scoped, get_clinic_object

MEDICAL = [IsAuthenticated, HasClinicContext, IsMedicalStaff]
CHART_EDITORS = (User.ROLE_ADMIN, User.ROLE_DOCTOR)


def visible_charts(request):
    qs = Odontogram.objects.select_related('patient', 'doctor')
    return clinic_scoped(qs, request).filter(role_filter(request.user, 'odontogram'))


def _chart(request, pk):
    return get_clinic_object(Odontogram.objects.select_related('patient', 'doctor'), request, pk, entity='odontogram')


@api_view(['GET', 'POST'])
@permission_classes(MEDICAL)
def odontograms(request):
    if request.method == 'POST':
        ensure_role(request.user, CHART_EDITORS)
        s = OdontogramSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        fields = dict(s.validated_data)
        patient = fields.pop('patient')
        doctor = fields.pop('doctor', None) or request.user
        activate = fields.pop('is_active', True)
        chart = charts.create_odontogram(
            clinic=request.clinic, patient=patient, doctor=doctor, activate=activate, **fields,
        )
        return created(OdontogramSerializer(chart).data, message='Odontogram created successfully')

    qs = visible_charts(request)
    params = request.query_params
    if params.get('patient'):
        qs = qs.filter(patient_id=params['patient'])
    if params.get('doctor'):
        qs = qs.filter(doctor_id=params['doctor'])
    if params.get('is_active') in ('true', '1'):
        qs = qs.filter(is_active=True)
    elif params.get('is_active') in ('false', '0'):
        qs = qs.filter(is_active=False)
    items, meta = paginate(qs.order_by('-examination_date', '-version'), params)
    return ok(OdontogramListSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(MEDICAL)
def odontogram_detail(request, pk: int):
    chart = _chart(request, pk)
    if request.method == 'GET':
        return ok(OdontogramSerializer(chart).data)
    ensure_role(request.user, CHART_EDITORS)
    if request.method == 'DELETE':
        chart.delete()
        return ok(message='Odontogram deleted successfully')
    s = OdontogramSerializer(chart, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    changes = dict(s.validated_data)
    # charts never move between patients
    changes.pop('patient', None)
    chart = charts.save_chart(chart, **changes)
    return ok(OdontogramSerializer(chart).data, message='Odontogram updated successfully')


@api_view(['GET'])
@permission_classes(MEDICAL)
def active_for_patient(request, patient_id: int):
    patient = get_clinic_object(Patient.objects.all(), request, patient_id, entity='patient')
    chart = visible_charts(request).filter(patient=patient, is_active=True).first()
    if chart is None:
        raise NotFound('No active odontogram for this patient.')
    return ok(OdontogramSerializer(chart).data)


@api_view(['GET'])
@permission_classes(MEDICAL)
def patient_history(request, patient_id: int):
    patient = get_clinic_object(Patient.objects.all(), request, patient_id, entity='patient')
    qs = visible_charts(request).filter(patient=patient).order_by('-version')
    return ok(OdontogramListSerializer(qs, many=True).data)


@api_view(['PUT', 'PATCH'])
@permission_classes(MEDICAL)
def update_tooth(request, pk: int, tooth_number: int):
    ensure_role(request.user, CHART_EDITORS)
    chart = _chart(request, pk)
    existing = chart.find_tooth(tooth_number)
    payload = {**dict(request.data.items()), 'tooth_number': tooth_number}
    s = ToothConditionSerializer(data=payload, partial=existing is not None)
    s.is_valid(raise_exception=True)
    chart = charts.update_tooth(chart, json_ready(dict(s.validated_data)))
    return ok(OdontogramSerializer(chart).data, message='Tooth condition updated successfully')


@api_view(['POST', 'PATCH'])
@permission_classes(MEDICAL)
def set_active(request, pk: int):
    ensure_role(request.user, CHART_EDITORS)
    chart = charts.set_active(_chart(request, pk))
    return ok(OdontogramSerializer(chart).data, message='Odontogram set as active')


@api_view(['GET'])
@permission_classes(MEDICAL)
def patient_treatment_summary(request, patient_id: int):
    patient = get_clinic_object(Patient.objects.all(), request, patient_id, entity='patient')
    chart = visible_charts(request).filter(patient=patient, is_active=True).first()
    if chart is None:
        raise NotFound('No active odontogram for this patient.')
    return ok(charts.patient_summary(chart))


@api_view(['GET'])
@permission_classes(MEDICAL)
def clinic_treatment_summary(request):
    return ok(charts.clinic_summary(request.clinic))


@api_view(['POST'])
@permission_classes(MEDICAL + [IsAdmin])
def recalculate(request):
    updated = charts.recalculate_all(request.clinic)
    return ok({'updated': updated}, message=f'Recalculated {updated} odontograms')
