from __future__ import annotations

from django.db import transaction
from django.db.models import Count, Sum
from django.db.models.functions import TruncMonth
from rest_framework import serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.models import Expense
from practice.permissions import HasClinicContext, IsFinance
from practice.responses import created, ok
from practice.serializers.billing import ExpenseSerializer
from practice.services.common import paginate, query_date
from practice.services.tenancy import clinic_scoped, get_clinic_object

FINANCE = [IsAuthenticated, HasClinicContext, IsFinance]
BULK_LIMIT = 100


@api_view(['GET', 'POST'])
@permission_classes(FINANCE)
def expenses(request):
    if request.method == 'POST':
        s = ExpenseSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        expense = s.save(clinic=request.clinic, created_by=request.user)
        return created(ExpenseSerializer(expense).data, message='Expense created successfully')

    qs = clinic_scoped(Expense.objects.select_related('created_by'), request)
    params = request.query_params
    for name in ('category', 'status', 'payment_method'):
        if params.get(name):
            qs = qs.filter(**{name: params[name]})
    start, end = query_date(params, 'start_date'), query_date(params, 'end_date')
    if start:
        qs = qs.filter(date__gte=start)
    if end:
        qs = qs.filter(date__lte=end)
    search = (params.get('search') or '').strip()
    if search:
        qs = qs.filter(title__icontains=search)
    items, meta = paginate(qs.order_by('-date', '-created_at'), params)
    return ok(ExpenseSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(FINANCE)
def expense_detail(request, pk: int):
    expense = get_clinic_object(Expense.objects.select_related('created_by'), request, pk)
    if request.method == 'GET':
        return ok(ExpenseSerializer(expense).data)
    if request.method == 'DELETE':
        expense.delete()
        return ok(message='Expense deleted successfully')
    s = ExpenseSerializer(expense, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Expense updated successfully')


@api_view(['POST'])
@permission_classes(FINANCE)
def bulk_create(request):
    """Create many expenses at once; all rows validate or none are stored."""
    rows = request.data.get('expenses') if isinstance(request.data, dict) else request.data
    if not isinstance(rows, list) or not rows:
        raise serializers.ValidationError({'expenses': ['Provide a non-empty list of expenses.']})
    if len(rows) > BULK_LIMIT:
        raise serializers.ValidationError({'expenses': [f'At most {BULK_LIMIT} expenses per request.']})
    s = ExpenseSerializer(data=rows, many=True, context={'request': request})
    s.is_valid(raise_exception=True)
    with transaction.atomic():
        items = s.save(clinic=request.clinic, created_by=request.user)
    return created(ExpenseSerializer(items, many=True).data, message=f'{len(items)} expenses created')


@api_view(['GET'])
@permission_classes(FINANCE)
def expense_stats(request):
    qs = clinic_scoped(Expense.objects.all(), request)
    params = request.query_params
    start, end = query_date(params, 'start_date'), query_date(params, 'end_date')
    if start:
        qs = qs.filter(date__gte=start)
    if end:
        qs = qs.filter(date__lte=end)
    by_category = [
        {'category': row['category'], 'total': row['total'] or 0, 'count': row['n']}
        for row in qs.values('category').annotate(total=Sum('amount'), n=Count('id')).order_by('-total')
    ]
    by_month = [
        {'month': row['month'].strftime('%Y-%m'), 'total': row['total'] or 0, 'count': row['n']}
        for row in qs.annotate(month=TruncMonth('date')).values('month')
        .annotate(total=Sum('amount'), n=Count('id')).order_by('month')
    ]
    return ok({
        'total_expenses': qs.count(),
        'total_amount': qs.aggregate(s=Sum('amount'))['s'] or 0,
        'paid_amount': qs.filter(status='paid').aggregate(s=Sum('amount'))['s'] or 0,
        'pending_amount': qs.filter(status='pending').aggregate(s=Sum('amount'))['s'] or 0,
        'by_category': by_category,
        'by_month': by_month,
    })
