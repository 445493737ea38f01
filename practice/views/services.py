from __future__ import annotations

from django.db.models import Avg, Count, Q, Sum
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.models import Service, User
from practice.permissions import HasClinicContext, IsStaff, ensure_role
from practice.responses import created, ok
from practice.serializers.catalog import ServiceSerializer
from practice.services.common import paginate, query_number
from practice.services.tenancy import clinic_scoped, get_clinic_object

CLINIC_STAFF = [IsAuthenticated, HasClinicContext, IsStaff]
ADMIN_ONLY = (User.ROLE_ADMIN,)
PRICE_BUCKETS = (0, 50, 100, 200, 500, 1000)


@api_view(['GET', 'POST'])
@permission_classes(CLINIC_STAFF)
def services(request):
    if request.method == 'POST':
        ensure_role(request.user, ADMIN_ONLY)
        s = ServiceSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        service = s.save(clinic=request.clinic)
        return created(ServiceSerializer(service).data, message='Service created successfully')

    qs = clinic_scoped(Service.objects.all(), request)
    params = request.query_params
    for name in ('category', 'department'):
        if params.get(name) and params[name] != 'all':
            qs = qs.filter(**{name: params[name]})
    if params.get('is_active') in ('true', 'false'):
        qs = qs.filter(is_active=params['is_active'] == 'true')
    search = (params.get('search') or '').strip()
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(description__icontains=search) | Q(department__icontains=search))
    bounds = {
        'price__gte': query_number(params, 'min_price', float),
        'price__lte': query_number(params, 'max_price', float),
        'duration__gte': query_number(params, 'min_duration', int),
        'duration__lte': query_number(params, 'max_duration', int),
    }
    qs = qs.filter(**{k: v for k, v in bounds.items() if v is not None})
    items, meta = paginate(qs.order_by('-created_at'), params)
    return ok(ServiceSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(CLINIC_STAFF)
def service_detail(request, pk: int):
    service = get_clinic_object(Service.objects.all(), request, pk)
    if request.method == 'GET':
        return ok(ServiceSerializer(service).data)
    ensure_role(request.user, ADMIN_ONLY)
    if request.method == 'DELETE':
        service.delete()
        return ok(message='Service deleted successfully')
    s = ServiceSerializer(service, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Service updated successfully')


@api_view(['PATCH', 'POST'])
@permission_classes(CLINIC_STAFF)
def toggle_status(request, pk: int):
    ensure_role(request.user, ADMIN_ONLY)
    service = get_clinic_object(Service.objects.all(), request, pk)
    service.is_active = not service.is_active
    service.save(update_fields=['is_active', 'updated_at'])
    state = 'activated' if service.is_active else 'deactivated'
    return ok(ServiceSerializer(service).data, message=f'Service {state} successfully')


def _breakdown(qs, field):
    rows = qs.values(field).annotate(
        count=Count('id'),
        active_count=Count('id', filter=Q(is_active=True)),
        total_price=Sum('price'),
        avg_price=Avg('price'),
    ).order_by('-count')
    return [
        {
            field: row[field],
            'count': row['count'],
            'active_count': row['active_count'],
            'total_price': row['total_price'] or 0,
            'avg_price': round(float(row['avg_price'] or 0), 2),
        }
        for row in rows
    ]


def _price_ranges(qs):
    ranges = []
    for i, low in enumerate(PRICE_BUCKETS):
        high = PRICE_BUCKETS[i + 1] if i + 1 < len(PRICE_BUCKETS) else None
        bucket = qs.filter(price__gte=low) if high is None else qs.filter(price__gte=low, price__lt=high)
        agg = bucket.aggregate(count=Count('id'), avg_duration=Avg('duration'))
        if agg['count']:
            ranges.append({
                'min': low,
                'max': high,
                'count': agg['count'],
                'avg_duration': round(float(agg['avg_duration'] or 0), 1),
            })
    return ranges


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def service_stats(request):
    qs = clinic_scoped(Service.objects.all(), request)
    active = qs.filter(is_active=True).count()
    total = qs.count()
    return ok({
        'total_services': total,
        'active_services': active,
        'inactive_services': total - active,
        'by_category': _breakdown(qs, 'category'),
        'by_department': _breakdown(qs, 'department'),
        'price_ranges': _price_ranges(qs),
    })
