from __future__ import annotations

from django.db.models import Count, DecimalField, ExpressionWrapper, F, Q, Sum
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.models import InventoryItem, User
from practice.permissions import HasClinicContext, IsStaff, ensure_role
from practice.responses import created, ok
from practice.serializers.inventory import InventoryItemSerializer, StockAdjustSerializer
from practice.services import inventory as stock
from practice.services.common import positive_int, paginate
from practice.services.tenancy import clinic_scoped, get_clinic_object

CLINIC_STAFF = [IsAuthenticated, HasClinicContext, IsStaff]
STOCK_MANAGERS = (User.ROLE_ADMIN, User.ROLE_RECEPTIONIST, User.ROLE_STAFF, User.ROLE_NURSE)


def _items(request):
    return clinic_scoped(InventoryItem.objects.all(), request)


@api_view(['GET', 'POST'])
@permission_classes(CLINIC_STAFF)
def inventory(request):
    if request.method == 'POST':
        ensure_role(request.user, STOCK_MANAGERS)
        s = InventoryItemSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        item = s.save(clinic=request.clinic)
        return created(InventoryItemSerializer(item).data, message='Inventory item created successfully')

    qs = _items(request)
    params = request.query_params
    if params.get('category'):
        qs = qs.filter(category=params['category'])
    if params.get('low_stock') in ('1', 'true'):
        qs = stock.low_stock(qs)
    search = (params.get('search') or '').strip()
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(sku__icontains=search) | Q(supplier__icontains=search))
    items, meta = paginate(qs.order_by('name'), params)
    return ok(InventoryItemSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(CLINIC_STAFF)
def inventory_detail(request, pk: int):
    item = get_clinic_object(InventoryItem.objects.all(), request, pk)
    if request.method == 'GET':
        return ok(InventoryItemSerializer(item).data)
    ensure_role(request.user, STOCK_MANAGERS)
    if request.method == 'DELETE':
        item.delete()
        return ok(message='Inventory item deleted successfully')
    s = InventoryItemSerializer(item, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Inventory item updated successfully')


@api_view(['POST', 'PATCH'])
@permission_classes(CLINIC_STAFF)
def adjust_stock(request, pk: int):
    ensure_role(request.user, STOCK_MANAGERS)
    item = get_clinic_object(InventoryItem.objects.all(), request, pk)
    s = StockAdjustSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    item = stock.adjust_stock(item, s.validated_data['quantity'], s.validated_data['operation'])
    return ok(InventoryItemSerializer(item).data, message='Stock updated successfully')


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def low_stock(request):
    qs = stock.low_stock(_items(request)).order_by('current_stock')
    return ok(InventoryItemSerializer(qs, many=True).data)


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def expired(request):
    qs = stock.expired(_items(request)).order_by('expiry_date')
    return ok(InventoryItemSerializer(qs, many=True).data)


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def expiring(request):
    days = positive_int(request.query_params.get('days'), stock.EXPIRY_WINDOW_DAYS)
    qs = stock.expiring(_items(request), days).order_by('expiry_date')
    return ok(InventoryItemSerializer(qs, many=True).data, days=days)


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def inventory_stats(request):
    qs = _items(request)
    line_value = ExpressionWrapper(F('current_stock') * F('unit_price'), output_field=DecimalField(max_digits=14, decimal_places=2))
    value = qs.aggregate(v=Sum(line_value))['v'] or 0
    return ok({
        'total_items': qs.count(),
        'total_value': value,
        'low_stock_count': stock.low_stock(qs).count(),
        'expired_count': stock.expired(qs).count(),
        'expiring_count': stock.expiring(qs).count(),
        'by_category': {row['category']: row['n'] for row in qs.values('category').annotate(n=Count('id'))},
    })
