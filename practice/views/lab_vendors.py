"""
External laboratory vendors: directory, contract tracking and test volume.
"""
from __future__ import annotations

from collections import Counter
from datetime import timedelta

from django.db.models import Avg, Count, F, Q, Sum
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.models import LabVendor, TestReport, User
from practice.permissions import HasClinicContext, IsStaff, ensure_role
from practice.responses import created, ok
from practice.serializers.catalog import LabVendorSerializer, LabVendorStatusSerializer, TestCountSerializer
from practice.serializers.lab import TestReportSerializer
from practice.services.common import paginate, positive_int, query_date, query_number
from practice.services.tenancy import clinic_scoped, get_clinic_object

CLINIC_STAFF = [IsAuthenticated, HasClinicContext, IsStaff]
ADMIN_ONLY = (User.ROLE_ADMIN,)
CONTRACT_WINDOW_DAYS = 30


def _vendors(request):
    return clinic_scoped(LabVendor.objects.all(), request)


def _expiring(qs, days: int):
    until = timezone.localdate() + timedelta(days=days)
    return qs.filter(status='active', contract_end__lte=until)


@api_view(['GET', 'POST'])
@permission_classes(CLINIC_STAFF)
def lab_vendors(request):
    if request.method == 'POST':
        ensure_role(request.user, ADMIN_ONLY)
        s = LabVendorSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        vendor = s.save(clinic=request.clinic)
        return created(LabVendorSerializer(vendor).data, message='Lab vendor created successfully')

    qs = _vendors(request)
    params = request.query_params
    for name in ('type', 'status', 'pricing'):
        if params.get(name) and params[name] != 'all':
            qs = qs.filter(**{name: params[name]})
    if params.get('specialty') and params['specialty'] != 'all':
        qs = qs.filter(specialties__icontains=params['specialty'])
    min_rating = query_number(params, 'min_rating')
    if min_rating is not None:
        qs = qs.filter(rating__gte=min_rating)
    search = (params.get('search') or '').strip()
    if search:
        qs = qs.filter(
            Q(name__icontains=search) | Q(code__icontains=search) | Q(contact_person__icontains=search)
            | Q(specialties__icontains=search) | Q(city__icontains=search) | Q(state__icontains=search)
        )
    items, meta = paginate(qs.order_by('-created_at'), params)
    return ok(LabVendorSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(CLINIC_STAFF)
def lab_vendor_detail(request, pk: int):
    vendor = get_clinic_object(LabVendor.objects.all(), request, pk)
    if request.method == 'GET':
        return ok(LabVendorSerializer(vendor).data)
    ensure_role(request.user, ADMIN_ONLY)
    if request.method == 'DELETE':
        vendor.delete()
        return ok(message='Lab vendor deleted successfully')
    s = LabVendorSerializer(vendor, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Lab vendor updated successfully')


@api_view(['PATCH'])
@permission_classes(CLINIC_STAFF)
def lab_vendor_status(request, pk: int):
    ensure_role(request.user, ADMIN_ONLY)
    vendor = get_clinic_object(LabVendor.objects.all(), request, pk)
    s = LabVendorStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vendor.status = s.validated_data['status']
    vendor.save(update_fields=['status', 'updated_at'])
    return ok(LabVendorSerializer(vendor).data, message='Lab vendor status updated successfully')


@api_view(['PATCH'])
@permission_classes(CLINIC_STAFF)
def test_count(request, pk: int):
    vendor = get_clinic_object(LabVendor.objects.all(), request, pk)
    s = TestCountSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    LabVendor.objects.filter(pk=vendor.pk).update(
        total_tests=F('total_tests') + s.validated_data['increment'],
        last_test_date=timezone.now(),
        updated_at=timezone.now(),
    )
    vendor.refresh_from_db()
    return ok(LabVendorSerializer(vendor).data, message='Test count updated successfully')


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def contract_expiring(request):
    days = positive_int(request.query_params.get('days'), CONTRACT_WINDOW_DAYS)
    qs = _expiring(_vendors(request), days).order_by('contract_end')
    return ok(LabVendorSerializer(qs, many=True).data, days=days)


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def lab_vendor_stats(request):
    qs = _vendors(request)
    totals = qs.aggregate(tests=Sum('total_tests'), rating=Avg('rating'))
    specialties = Counter(s for row in qs.values_list('specialties', flat=True) for s in (row or []))
    return ok({
        'total_vendors': qs.count(),
        'by_status': {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))},
        'by_type': {row['type']: row['n'] for row in qs.values('type').annotate(n=Count('id'))},
        'by_pricing': {row['pricing']: row['n'] for row in qs.values('pricing').annotate(n=Count('id'))},
        'top_specialties': [{'specialty': name, 'count': n} for name, n in specialties.most_common(10)],
        'total_tests': totals['tests'] or 0,
        'average_rating': round(float(totals['rating'] or 0), 1),
        'expiring_contracts': _expiring(qs, CONTRACT_WINDOW_DAYS).count(),
    })


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def test_history(request, pk: int):
    """Test reports sent to this vendor, matched on the vendor name or code."""
    vendor = get_clinic_object(LabVendor.objects.all(), request, pk)
    qs = clinic_scoped(TestReport.objects.all(), request).filter(
        Q(external_vendor__iexact=vendor.name) | Q(external_vendor__iexact=vendor.code)
    )
    params = request.query_params
    start, end = query_date(params, 'start_date'), query_date(params, 'end_date')
    if start:
        qs = qs.filter(test_date__date__gte=start)
    if end:
        qs = qs.filter(test_date__date__lte=end)
    items, meta = paginate(qs.order_by('-test_date'), params)
    return ok(TestReportSerializer(items, many=True).data, pagination=meta, vendor=LabVendorSerializer(vendor).data)
