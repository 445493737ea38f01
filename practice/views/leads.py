from __future__ import annotations

from datetime import date

from django.db.models import Count, Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.models import Lead
from practice.permissions import HasClinicContext, IsFrontDesk
from practice.responses import created, ok
from practice.serializers.crm import LeadConvertSerializer, LeadSerializer, LeadStatusSerializer
from practice.serializers.patient import PatientSerializer
from practice.services.common import aware, month_start, paginate
from practice.services.leads import convert_lead
from practice.services.tenancy import clinic_scoped, get_clinic_object

FRONT_DESK = [IsAuthenticated, HasClinicContext, IsFrontDesk]


@api_view(['GET', 'POST'])
@permission_classes(FRONT_DESK)
def leads(request):
    if request.method == 'POST':
        s = LeadSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        lead = s.save(clinic=request.clinic)
        return created(LeadSerializer(lead).data, message='Lead created successfully')

    qs = clinic_scoped(Lead.objects.all(), request)
    params = request.query_params
    for name in ('status', 'source'):
        if params.get(name):
            qs = qs.filter(**{name: params[name]})
    if params.get('assigned_to'):
        qs = qs.filter(assigned_to_id=params['assigned_to'])
    search = (params.get('search') or '').strip()
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search) | Q(last_name__icontains=search)
            | Q(email__icontains=search) | Q(phone__icontains=search)
        )
    items, meta = paginate(qs.order_by('-created_at'), params)
    return ok(LeadSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(FRONT_DESK)
def lead_detail(request, pk: int):
    lead = get_clinic_object(Lead.objects.all(), request, pk)
    if request.method == 'GET':
        return ok(LeadSerializer(lead).data)
    if request.method == 'DELETE':
        lead.delete()
        return ok(message='Lead deleted successfully')
    s = LeadSerializer(lead, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Lead updated successfully')


@api_view(['PATCH', 'PUT'])
@permission_classes(FRONT_DESK)
def lead_status(request, pk: int):
    lead = get_clinic_object(Lead.objects.all(), request, pk)
    s = LeadStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    lead.status = s.validated_data['status']
    lead.save(update_fields=['status', 'updated_at'])
    return ok(LeadSerializer(lead).data, message='Lead status updated')


@api_view(['POST'])
@permission_classes(FRONT_DESK)
def convert(request, pk: int):
    lead = get_clinic_object(Lead.objects.all(), request, pk)
    s = LeadConvertSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    patient = convert_lead(lead, **s.validated_data)
    return created(
        {'patient': PatientSerializer(patient).data, 'lead': LeadSerializer(lead).data},
        message='Lead converted to patient successfully',
    )


@api_view(['GET'])
@permission_classes(FRONT_DESK)
def lead_stats(request):
    qs = clinic_scoped(Lead.objects.all(), request)
    total = qs.count()
    converted = qs.filter(status='converted').count()
    return ok({
        'total_leads': total,
        'new_this_month': qs.filter(created_at__gte=aware(month_start(date.today()))).count(),
        'conversion_rate': round(converted / total * 100, 1) if total else 0,
        'by_status': {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))},
        'by_source': {row['source']: row['n'] for row in qs.values('source').annotate(n=Count('id'))},
    })
