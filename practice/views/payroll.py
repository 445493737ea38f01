from __future__ import annotations

from datetime import date

from django.db.models import Count, Sum
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.exceptions import Conflict
from practice.models import Payroll
from practice.permissions import HasClinicContext, IsAnalytics
from practice.responses import created, ok
from practice.serializers.billing import PayrollGenerateSerializer, PayrollSerializer, PayrollStatusSerializer
from practice.services.common import paginate
from practice.services.payroll import generate_payroll
from practice.services.tenancy import clinic_scoped, get_clinic_object

PAYROLL_STAFF = [IsAuthenticated, HasClinicContext, IsAnalytics]


def _ensure_unique_period(clinic, employee, month, year, exclude=None):
    qs = Payroll.objects.filter(clinic=clinic, employee=employee, month=month, year=year)
    if exclude is not None:
        qs = qs.exclude(pk=exclude.pk)
    if qs.exists():
        raise Conflict('Payroll already exists for this employee and period.')


@api_view(['GET', 'POST'])
@permission_classes(PAYROLL_STAFF)
def payrolls(request):
    if request.method == 'POST':
        s = PayrollSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        v = s.validated_data
        _ensure_unique_period(request.clinic, v['employee'], v['month'], v['year'])
        payroll = s.save(clinic=request.clinic)
        return created(PayrollSerializer(payroll).data, message='Payroll created successfully')

    qs = clinic_scoped(Payroll.objects.select_related('employee'), request)
    params = request.query_params
    for name in ('month', 'status'):
        if params.get(name):
            qs = qs.filter(**{name: params[name]})
    if params.get('year'):
        qs = qs.filter(year=params['year'])
    if params.get('employee'):
        qs = qs.filter(employee_id=params['employee'])
    items, meta = paginate(qs.order_by('-year', '-created_at'), params)
    return ok(PayrollSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(PAYROLL_STAFF)
def payroll_detail(request, pk: int):
    payroll = get_clinic_object(Payroll.objects.select_related('employee'), request, pk)
    if request.method == 'GET':
        return ok(PayrollSerializer(payroll).data)
    if request.method == 'DELETE':
        payroll.delete()
        return ok(message='Payroll deleted successfully')
    s = PayrollSerializer(payroll, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    v = s.validated_data
    _ensure_unique_period(
        request.clinic,
        v.get('employee', payroll.employee),
        v.get('month', payroll.month),
        v.get('year', payroll.year),
        exclude=payroll,
    )
    s.save()
    return ok(s.data, message='Payroll updated successfully')


@api_view(['POST'])
@permission_classes(PAYROLL_STAFF)
def generate(request):
    s = PayrollGenerateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    rows, skipped = generate_payroll(request.clinic, s.validated_data['month'], s.validated_data['year'])
    return created(
        PayrollSerializer(rows, many=True).data,
        message=f'Generated payroll for {len(rows)} employees',
        skipped=skipped,
    )


@api_view(['PATCH', 'PUT'])
@permission_classes(PAYROLL_STAFF)
def payroll_status(request, pk: int):
    payroll = get_clinic_object(Payroll.objects.all(), request, pk)
    s = PayrollStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    payroll.status = s.validated_data['status']
    if payroll.status == 'paid' and payroll.pay_date is None:
        payroll.pay_date = date.today()
    payroll.save()
    return ok(PayrollSerializer(payroll).data, message='Payroll status updated')


@api_view(['GET'])
@permission_classes(PAYROLL_STAFF)
def payroll_stats(request):
    qs = clinic_scoped(Payroll.objects.all(), request)
    params = request.query_params
    if params.get('month'):
        qs = qs.filter(month=params['month'])
    if params.get('year'):
        qs = qs.filter(year=params['year'])
    totals = qs.aggregate(net=Sum('net_salary'), tax=Sum('tax'), base=Sum('base_salary'))
    return ok({
        'total_records': qs.count(),
        'total_net_salary': totals['net'] or 0,
        'total_tax': totals['tax'] or 0,
        'total_base_salary': totals['base'] or 0,
        'employees': qs.values('employee').distinct().count(),
        'by_status': {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))},
    })
