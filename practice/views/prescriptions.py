"""
Prescription views.  Numbers are allocated per clinic as ``RX-0001``.
"""
from __future__ import annotations

from django.db.models import Count
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated

from practice.exceptions import InvalidTransition
from practice.models import Patient, Prescription, User
from practice.permissions import HasClinicContext, IsClinicDoctor, IsStaff, ensure_role
from practice.responses import created, ok
from practice.serializers.clinical import PrescriptionSerializer, PrescriptionStatusSerializer
from practice.services.access import role_filter
from practice.services.common import paginate
from practice.services.numbering import create_numbered, next_prescription_number
from practice.services.tenancy import clinic_scoped, get_clinic_object

CLINIC_STAFF = [IsAuthenticated, HasClinicContext, IsStaff]
PRESCRIBERS = (User.ROLE_ADMIN, User.ROLE_DOCTOR)


def visible_prescriptions(request):
    qs = clinic_scoped(Prescription.objects.select_related('patient', 'doctor'), request)
    return qs.filter(role_filter(request.user, 'prescription'))


def prescribing_doctor(request, validated):
    doctor = validated.get('doctor')
    if doctor is None:
        if request.user.role != User.ROLE_DOCTOR:
            raise ValidationError({'doctor': ['This field is required.']})
        doctor = request.user
    return doctor


@api_view(['GET', 'POST'])
@permission_classes(CLINIC_STAFF)
def prescriptions(request):
    if request.method == 'POST':
        ensure_role(request.user, PRESCRIBERS)
        s = PrescriptionSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        clinic = request.clinic
        rx = create_numbered(
            s, clinic, 'prescription_id', lambda: next_prescription_number(clinic),
            doctor=prescribing_doctor(request, s.validated_data),
        )
        return created(PrescriptionSerializer(rx).data, message='Prescription created successfully')

    qs = visible_prescriptions(request)
    params = request.query_params
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    if params.get('patient'):
        qs = qs.filter(patient_id=params['patient'])
    if params.get('doctor'):
        qs = qs.filter(doctor_id=params['doctor'])
    items, meta = paginate(qs.order_by('-created_at'), params)
    return ok(PrescriptionSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(CLINIC_STAFF)
def prescription_detail(request, pk: int):
    rx = get_clinic_object(Prescription.objects.select_related('patient', 'doctor'), request, pk, entity='prescription')
    if request.method == 'GET':
        return ok(PrescriptionSerializer(rx).data)
    ensure_role(request.user, PRESCRIBERS)
    if request.method == 'DELETE':
        rx.delete()
        return ok(message='Prescription deleted successfully')
    s = PrescriptionSerializer(rx, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Prescription updated successfully')


@api_view(['PATCH', 'PUT'])
@permission_classes(CLINIC_STAFF)
def prescription_status(request, pk: int):
    ensure_role(request.user, PRESCRIBERS)
    rx = get_clinic_object(Prescription.objects.all(), request, pk, entity='prescription')
    s = PrescriptionStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    rx.status = s.validated_data['status']
    rx.save(update_fields=['status', 'updated_at'])
    return ok(PrescriptionSerializer(rx).data, message='Prescription status updated')


@api_view(['POST'])
@permission_classes(CLINIC_STAFF + [IsClinicDoctor])
def send_to_pharmacy(request, pk: int):
    rx = get_clinic_object(Prescription.objects.all(), request, pk, entity='prescription')
    if rx.status != 'active':
        raise InvalidTransition('Only active prescriptions can be sent to the pharmacy.')
    if rx.pharmacy_dispensed:
        raise InvalidTransition('Prescription already dispensed.')
    rx.pharmacy_dispensed = True
    rx.dispensed_date = timezone.now()
    rx.save(update_fields=['pharmacy_dispensed', 'dispensed_date', 'updated_at'])
    return ok(PrescriptionSerializer(rx).data, message='Prescription sent to pharmacy')


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def prescription_stats(request):
    qs = visible_prescriptions(request)
    return ok({
        'total': qs.count(),
        'dispensed': qs.filter(pharmacy_dispensed=True).count(),
        'by_status': {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))},
    })


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def patient_prescriptions(request, patient_id: int):
    patient = get_clinic_object(Patient.objects.all(), request, patient_id, entity='patient')
    qs = visible_prescriptions(request).filter(patient=patient).order_by('-created_at')
    return ok(PrescriptionSerializer(qs, many=True).data)
