"""
Appointment scheduling and front-desk operations.
"""
from __future__ import annotations

from datetime import date, timedelta

from django.db import transaction
from django.db.models import Count
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated

from practice.exceptions import InvalidTransition
from practice.models import Appointment, Patient
from practice.permissions import FRONT_DESK_ROLES, HasClinicContext, IsFrontDesk, IsStaff, ensure_role
from practice.responses import created, ok
from practice.serializers.base import clean_text
from practice.serializers.scheduling import AppointmentSerializer, AppointmentStatusSerializer, WalkInSerializer
from practice.services.access import role_filter
from practice.services.common import day_bounds, paginate, query_date
from practice.services.tenancy import clinic_scoped, get_clinic_object

CLINIC_STAFF = [IsAuthenticated, HasClinicContext, IsStaff]
FRONT_DESK = [IsAuthenticated, HasClinicContext, IsFrontDesk]
OPEN_STATUSES = [Appointment.STATUS_SCHEDULED, Appointment.STATUS_CONFIRMED]


def visible_appointments(request):
    qs = clinic_scoped(Appointment.objects.select_related('patient', 'doctor'), request)
    return qs.filter(role_filter(request.user, 'appointment'))


@api_view(['GET', 'POST'])
@permission_classes(CLINIC_STAFF)
def appointments(request):
    if request.method == 'POST':
        s = AppointmentSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        appointment = s.save(clinic=request.clinic)
        return created(AppointmentSerializer(appointment).data, message='Appointment created successfully')

    qs = visible_appointments(request)
    params = request.query_params
    for name in ('status', 'type'):
        if params.get(name):
            qs = qs.filter(**{name: params[name]})
    if params.get('doctor'):
        qs = qs.filter(doctor_id=params['doctor'])
    if params.get('patient'):
        qs = qs.filter(patient_id=params['patient'])
    day = query_date(params, 'date')
    if day:
        start, end = day_bounds(day)
        qs = qs.filter(appointment_date__gte=start, appointment_date__lt=end)
    items, meta = paginate(qs.order_by('-appointment_date'), params)
    return ok(AppointmentSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(CLINIC_STAFF)
def appointment_detail(request, pk: int):
    appointment = get_clinic_object(Appointment.objects.select_related('patient', 'doctor'), request, pk, entity='appointment')
    if request.method == 'GET':
        return ok(AppointmentSerializer(appointment).data)
    if request.method == 'DELETE':
        ensure_role(request.user, FRONT_DESK_ROLES)
        appointment.delete()
        return ok(message='Appointment deleted successfully')
    s = AppointmentSerializer(appointment, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Appointment updated successfully')


@api_view(['POST'])
@permission_classes(CLINIC_STAFF)
def cancel_appointment(request, pk: int):
    appointment = get_clinic_object(Appointment.objects.all(), request, pk, entity='appointment')
    if appointment.status in (Appointment.STATUS_COMPLETED, Appointment.STATUS_CANCELLED):
        raise InvalidTransition(f'Cannot cancel a {appointment.status} appointment.')
    appointment.status = Appointment.STATUS_CANCELLED
    reason = clean_text(request.data.get('reason') or '')
    if reason:
        appointment.notes = f'{appointment.notes}\nCancelled: {reason}'.strip()
    appointment.save(update_fields=['status', 'notes', 'updated_at'])
    return ok(AppointmentSerializer(appointment).data, message='Appointment cancelled')


@api_view(['PATCH', 'PUT'])
@permission_classes(CLINIC_STAFF)
def appointment_status(request, pk: int):
    appointment = get_clinic_object(Appointment.objects.all(), request, pk, entity='appointment')
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment.status = s.validated_data['status']
    note = clean_text(s.validated_data.get('notes') or '')
    if note:
        appointment.notes = f'{appointment.notes}\n{note}'.strip()
    appointment.save(update_fields=['status', 'notes', 'updated_at'])
    return ok(AppointmentSerializer(appointment).data, message='Appointment status updated')


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def upcoming_appointments(request):
    now = timezone.now()
    qs = visible_appointments(request).filter(
        appointment_date__gte=now,
        appointment_date__lt=now + timedelta(days=7),
        status__in=OPEN_STATUSES,
    ).order_by('appointment_date')
    return ok(AppointmentSerializer(qs, many=True).data)


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def doctor_schedule(request):
    params = request.query_params
    doctor_id = params.get('doctor') or (request.user.pk if request.user.role == 'doctor' else None)
    if not doctor_id:
        raise ValidationError({'doctor': ['This field is required.']})
    day = query_date(params, 'date') or date.today()
    start, end = day_bounds(day)
    qs = clinic_scoped(Appointment.objects.select_related('patient', 'doctor'), request).filter(
        doctor_id=doctor_id, appointment_date__gte=start, appointment_date__lt=end,
    ).exclude(status=Appointment.STATUS_CANCELLED).order_by('appointment_date')
    return ok({'date': day.isoformat(), 'doctor': int(doctor_id), 'appointments': AppointmentSerializer(qs, many=True).data})


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def appointment_stats(request):
    qs = visible_appointments(request)
    start, end = day_bounds(date.today())
    return ok({
        'total': qs.count(),
        'today': qs.filter(appointment_date__gte=start, appointment_date__lt=end).count(),
        'upcoming': qs.filter(appointment_date__gte=timezone.now(), status__in=OPEN_STATUSES).count(),
        'by_status': {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))},
        'by_type': {row['type']: row['n'] for row in qs.values('type').annotate(n=Count('id'))},
    })


# ---------------------------------------------------------------------
# Front desk
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes(FRONT_DESK)
def check_in(request, pk: int):
    appointment = get_clinic_object(Appointment.objects.select_related('patient', 'doctor'), request, pk)
    if appointment.status not in OPEN_STATUSES:
        raise InvalidTransition(f'Cannot check in a {appointment.status} appointment.')
    now = timezone.now()
    appointment.status = Appointment.STATUS_CONFIRMED
    appointment.checked_in_at = now
    note = f'Checked in at {timezone.localtime(now):%H:%M}'
    appointment.notes = f'{appointment.notes}\n{note}'.strip()
    appointment.save(update_fields=['status', 'checked_in_at', 'notes', 'updated_at'])
    return ok(AppointmentSerializer(appointment).data, message='Patient checked in successfully')


@api_view(['GET'])
@permission_classes(FRONT_DESK)
def today_queue(request):
    start, end = day_bounds(date.today())
    qs = clinic_scoped(Appointment.objects.select_related('patient', 'doctor'), request).filter(
        appointment_date__gte=start,
        appointment_date__lt=end,
        status__in=OPEN_STATUSES + [Appointment.STATUS_IN_PROGRESS],
    ).order_by('appointment_date')
    rows = AppointmentSerializer(qs, many=True).data
    return ok({
        'queue': rows,
        'waiting': sum(1 for a in qs if a.checked_in_at and a.status == Appointment.STATUS_CONFIRMED),
        'in_progress': sum(1 for a in qs if a.status == Appointment.STATUS_IN_PROGRESS),
    })


@api_view(['POST'])
@permission_classes(FRONT_DESK)
def walk_in(request):
    """Register a walk-in visit, creating the patient when needed."""
    s = WalkInSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    clinic = request.clinic
    with transaction.atomic():
        patient = vd.get('patient')
        if patient is None:
            patient = Patient.objects.create(
                clinic=clinic,
                first_name=clean_text(vd['first_name']),
                last_name=clean_text(vd['last_name']),
                phone=vd['phone'],
                email=vd.get('email', ''),
                date_of_birth=vd['date_of_birth'],
                gender=vd['gender'],
            )
        now = timezone.now()
        # tenant and doctor-role checks come from the appointment serializer
        appt = AppointmentSerializer(data={
            'patient': patient.pk,
            'doctor': vd['doctor'].pk,
            'appointment_date': now,
            'duration': vd['duration'],
            'type': vd['type'],
            'reason': vd.get('reason', ''),
            'status': Appointment.STATUS_CONFIRMED,
        }, context={'request': request})
        appt.is_valid(raise_exception=True)
        appointment = appt.save(clinic=clinic, is_walk_in=True, checked_in_at=now)
    return created(AppointmentSerializer(appointment).data, message='Walk-in registered')
