from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated

from practice.models import MedicalRecord, Patient, User
from practice.permissions import HasClinicContext, IsMedicalStaff, clinic_permission, ensure_role
from practice.responses import created, ok
from practice.serializers.clinical import MedicalRecordSerializer
from practice.services.access import role_filter
from practice.services.common import paginate
from practice.services.tenancy import clinic_scoped, get_clinic_object

CLINICIANS = [IsAuthenticated, HasClinicContext, IsMedicalStaff, clinic_permission('read_medical_records')]


def visible_records(request):
    qs = clinic_scoped(MedicalRecord.objects.select_related('patient', 'doctor'), request)
    patients = Patient.objects.filter(clinic=request.clinic).filter(role_filter(request.user, 'patient'))
    return qs.filter(patient__in=patients)


@api_view(['GET', 'POST'])
@permission_classes(CLINICIANS)
def medical_records(request):
    if request.method == 'POST':
        s = MedicalRecordSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        doctor = s.validated_data.get('doctor')
        if doctor is None:
            if request.user.role != User.ROLE_DOCTOR:
                raise ValidationError({'doctor': ['This field is required.']})
            doctor = request.user
        record = s.save(clinic=request.clinic, doctor=doctor)
        return created(MedicalRecordSerializer(record).data, message='Medical record created successfully')

    qs = visible_records(request)
    if request.query_params.get('patient'):
        qs = qs.filter(patient_id=request.query_params['patient'])
    items, meta = paginate(qs.order_by('-visit_date'), request.query_params)
    return ok(MedicalRecordSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(CLINICIANS)
def medical_record_detail(request, pk: int):
    record = get_clinic_object(visible_records(request), request, pk)
    if request.method == 'GET':
        return ok(MedicalRecordSerializer(record).data)
    if request.method == 'DELETE':
        ensure_role(request.user, (User.ROLE_ADMIN, User.ROLE_DOCTOR))
        record.delete()
        return ok(message='Medical record deleted successfully')
    s = MedicalRecordSerializer(record, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Medical record updated successfully')


@api_view(['GET'])
@permission_classes(CLINICIANS)
def patient_records(request, patient_id: int):
    patient = get_clinic_object(Patient.objects.all(), request, patient_id, entity='patient')
    qs = visible_records(request).filter(patient=patient).order_by('-visit_date')
    return ok(MedicalRecordSerializer(qs, many=True).data)
