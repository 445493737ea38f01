"""
Role specific dashboards.

Each payload is cached per clinic for ``DASHBOARD_CACHE_SECONDS``; the
``refresh_dashboards`` command rewrites the same keys.
"""
from __future__ import annotations

from django.conf import settings
from django.core.cache import cache
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.permissions import HasClinicContext, IsAdminOrDoctor, IsAnalytics, IsFrontDesk, IsStaff
from practice.responses import ok
from practice.services import dashboards as boards


def cached(key: str, build):
    payload = cache.get(key)
    if payload is None:
        payload = build()
        cache.set(key, payload, settings.DASHBOARD_CACHE_SECONDS)
    return payload


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasClinicContext, IsAnalytics])
def admin_stats(request):
    clinic = request.clinic
    data = cached(boards.cache_key(clinic.pk, 'admin'), lambda: boards.admin_stats(clinic))
    return ok(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasClinicContext, IsAnalytics])
def revenue_analytics(request):
    clinic = request.clinic
    period = request.query_params.get('period') or '6months'
    if period not in boards.PERIOD_MONTHS:
        period = '6months'
    data = cached(boards.cache_key(clinic.pk, 'revenue', period), lambda: boards.revenue_analytics(clinic, period))
    return ok(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasClinicContext, IsStaff])
def operational_metrics(request):
    clinic = request.clinic
    data = cached(boards.cache_key(clinic.pk, 'operational'), lambda: boards.operational_metrics(clinic))
    return ok(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasClinicContext, IsAdminOrDoctor])
def doctor_dashboard(request):
    clinic, doctor = request.clinic, request.user
    data = cached(boards.cache_key(clinic.pk, 'doctor', doctor.pk), lambda: boards.doctor_dashboard(clinic, doctor))
    return ok(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasClinicContext, IsFrontDesk])
def receptionist_dashboard(request):
    clinic = request.clinic
    data = cached(boards.cache_key(clinic.pk, 'receptionist'), lambda: boards.receptionist_dashboard(clinic))
    return ok(data)
