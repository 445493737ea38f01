"""
Lab test reports sent out to external vendors.
"""
from __future__ import annotations

from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated

from practice.models import Patient, TestReport
from practice.permissions import HasClinicContext, IsStaff
from practice.responses import created, ok
from practice.serializers.base import json_ready
from practice.serializers.lab import ReportAttachmentSerializer, ReportStatusSerializer, TestReportSerializer
from practice.services import lab as lab_service
from practice.services.common import paginate, query_date
from practice.services.numbering import create_numbered, next_report_number
from practice.services.tenancy import clinic_scoped, get_clinic_object

CLINIC_STAFF = [IsAuthenticated, HasClinicContext, IsStaff]


@api_view(['GET', 'POST'])
@permission_classes(CLINIC_STAFF)
def reports(request):
    if request.method == 'POST':
        s = TestReportSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        clinic = request.clinic
        report = create_numbered(
            s, clinic, 'report_number', lambda: next_report_number(clinic, timezone.now().year),
            recorded_by=s.validated_data.get('recorded_by') or request.user.full_name,
        )
        return created(TestReportSerializer(report).data, message='Test report created successfully')

    qs = clinic_scoped(TestReport.objects.all(), request)
    params = request.query_params
    for name in ('status', 'category'):
        if params.get(name):
            qs = qs.filter(**{name: params[name]})
    if params.get('patient'):
        qs = qs.filter(patient_id=params['patient'])
    start, end = query_date(params, 'start_date'), query_date(params, 'end_date')
    if start:
        qs = qs.filter(test_date__date__gte=start)
    if end:
        qs = qs.filter(test_date__date__lte=end)
    search = (params.get('search') or '').strip()
    if search:
        qs = qs.filter(
            Q(report_number__icontains=search) | Q(patient_name__icontains=search)
            | Q(test_name__icontains=search) | Q(test_code__icontains=search)
        )
    items, meta = paginate(qs.order_by('-test_date'), params)
    return ok(TestReportSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(CLINIC_STAFF)
def report_detail(request, pk: int):
    report = get_clinic_object(TestReport.objects.all(), request, pk)
    if request.method == 'GET':
        return ok(TestReportSerializer(report).data)
    if request.method == 'DELETE':
        report.delete()
        return ok(message='Test report deleted successfully')
    s = TestReportSerializer(report, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    s.save()
    return ok(s.data, message='Test report updated successfully')


@api_view(['PATCH', 'PUT'])
@permission_classes(CLINIC_STAFF)
def report_status(request, pk: int):
    report = get_clinic_object(TestReport.objects.all(), request, pk)
    s = ReportStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    report = lab_service.transition(
        report,
        s.validated_data['status'],
        verified_by=s.validated_data.get('verified_by') or request.user.full_name,
    )
    return ok(TestReportSerializer(report).data, message=f'Report marked as {report.status}')


@api_view(['POST'])
@permission_classes(CLINIC_STAFF)
def add_attachment(request, pk: int):
    report = get_clinic_object(TestReport.objects.all(), request, pk)
    s = ReportAttachmentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    report = lab_service.add_attachment(report, json_ready(dict(s.validated_data)))
    return created(TestReportSerializer(report).data, message='Attachment added')


@api_view(['DELETE'])
@permission_classes(CLINIC_STAFF)
def remove_attachment(request, pk: int, index: int):
    report = get_clinic_object(TestReport.objects.all(), request, pk)
    try:
        report = lab_service.remove_attachment(report, index)
    except IndexError:
        raise NotFound('Attachment not found.')
    return ok(TestReportSerializer(report).data, message='Attachment removed')


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def report_stats(request):
    qs = clinic_scoped(TestReport.objects.all(), request)
    return ok({
        'total_reports': qs.count(),
        'by_status': {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))},
        'by_category': {row['category']: row['n'] for row in qs.values('category').annotate(n=Count('id'))},
        'by_vendor': {
            row['external_vendor']: row['n'] for row in qs.values('external_vendor').annotate(n=Count('id'))
        },
    })


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def patient_reports(request, patient_id: int):
    patient = get_clinic_object(Patient.objects.all(), request, patient_id, entity='patient')
    qs = clinic_scoped(TestReport.objects.all(), request).filter(patient=patient).order_by('-test_date')
    return ok(TestReportSerializer(qs, many=True).data)
