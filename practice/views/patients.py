"""
Patient management views.

Listing and lookups are scoped to the current clinic and narrowed by the
caller's role (doctors and nurses only see their own patients).
"""
from __future__ import annotations

from datetime import date

from django.db.models import Count, Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.models import Appointment, MedicalRecord, Patient, Prescription
from practice.permissions import FRONT_DESK_ROLES, HasClinicContext, IsStaff, ensure_role
from practice.responses import created, ok
from practice.serializers.clinical import MedicalRecordSerializer, PrescriptionSerializer
from practice.serializers.patient import PatientSerializer
from practice.serializers.scheduling import AppointmentSerializer
from practice.services.access import role_filter
from practice.services.common import aware, month_start, paginate
from practice.services.tenancy import clinic_scoped, get_clinic_object

CLINIC_STAFF = [IsAuthenticated, HasClinicContext, IsStaff]


def visible_patients(request):
    return clinic_scoped(Patient.objects.all(), request).filter(role_filter(request.user, 'patient'))


@api_view(['GET', 'POST'])
@permission_classes(CLINIC_STAFF)
def patients(request):
    if request.method == 'POST':
        s = PatientSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        patient = s.save(clinic=request.clinic)
        return created(PatientSerializer(patient).data, message='Patient created successfully')

    qs = visible_patients(request)
    search = (request.query_params.get('search') or '').strip()
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search) | Q(last_name__icontains=search)
            | Q(email__icontains=search) | Q(phone__icontains=search)
        )
    gender = request.query_params.get('gender')
    if gender:
        qs = qs.filter(gender=gender)
    items, meta = paginate(qs.order_by('-created_at'), request.query_params)
    return ok(PatientSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(CLINIC_STAFF)
def patient_detail(request, pk: int):
    patient = get_clinic_object(Patient.objects.all(), request, pk, entity='patient')
    if request.method == 'GET':
        return ok(PatientSerializer(patient).data)
    if request.method == 'DELETE':
        ensure_role(request.user, FRONT_DESK_ROLES)
        patient.delete()
        return ok(message='Patient deleted successfully')
    s = PatientSerializer(patient, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Patient updated successfully')


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def patient_stats(request):
    qs = visible_patients(request)
    today = date.today()
    return ok({
        'total_patients': qs.count(),
        'new_this_month': qs.filter(created_at__gte=aware(month_start(today))).count(),
        'by_gender': {row['gender']: row['n'] for row in qs.values('gender').annotate(n=Count('id'))},
    })


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def patient_history(request, pk: int):
    """Records, prescriptions and appointments of one patient, newest first."""
    patient = get_clinic_object(Patient.objects.all(), request, pk, entity='patient')
    records = MedicalRecord.objects.filter(clinic=request.clinic, patient=patient).select_related('doctor').order_by('-visit_date')
    prescriptions = Prescription.objects.filter(clinic=request.clinic, patient=patient).select_related('patient', 'doctor').order_by('-created_at')
    appointments = Appointment.objects.filter(clinic=request.clinic, patient=patient).select_related('patient', 'doctor').order_by('-appointment_date')
    return ok({
        'patient': PatientSerializer(patient).data,
        'medical_records': MedicalRecordSerializer(records, many=True).data,
        'prescriptions': PrescriptionSerializer(prescriptions, many=True).data,
        'appointments': AppointmentSerializer(appointments, many=True).data,
    })
