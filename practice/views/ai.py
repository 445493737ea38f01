"""
AI analysis proxies.

The upload is stored first, then forwarded to the inference API; the row
keeps the answer, or the failure when the API errors out.
"""
from __future__ import annotations

import logging

from django.db.models import Count, Q
from django.utils import timezone
from rest_framework.decorators import api_view, parser_classes, permission_classes, throttle_classes
from rest_framework.exceptions import APIException
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.throttling import UserRateThrottle

from practice.models import AITestAnalysis, AITestComparison, User, XrayAnalysis
from practice.permissions import HasClinicContext, IsMedicalStaff, IsStaff, ensure_role
from practice.responses import created, ok
from practice.serializers.ai import (
    AITestAnalysisSerializer,
    AITestComparisonSerializer,
    AnalysisUploadSerializer,
    ComparisonUploadSerializer,
    XrayAnalysisSerializer,
    XrayUploadSerializer,
)
from practice.services import ai as inference
from practice.services import comparisons
from practice.services.common import aware, month_start, paginate
from practice.services.tenancy import clinic_scoped, get_clinic_object

logger = logging.getLogger(__name__)

CLINIC_STAFF = [IsAuthenticated, HasClinicContext, IsStaff]
MEDICAL = [IsAuthenticated, HasClinicContext, IsMedicalStaff]


class AIAnalysisThrottle(UserRateThrottle):
    scope = 'ai_analysis'


def _fail(row, exc: Exception):
    message = str(exc.detail) if isinstance(exc, APIException) else 'Analysis failed unexpectedly'
    row.status = 'failed'
    fields = ['status', 'updated_at']
    if isinstance(row, (AITestAnalysis, AITestComparison)):
        row.error_message = message[:500]
        fields.append('error_message')
    row.save(update_fields=fields)
    logger.warning('%s %s failed: %s', type(row).__name__, row.pk, message)


# ---------------------------------------------------------------------
# Lab report analysis
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes(CLINIC_STAFF)
@parser_classes([MultiPartParser, FormParser])
@throttle_classes([AIAnalysisThrottle])
def analyze_report(request):
    s = AnalysisUploadSerializer(data=request.data, context={'request': request})
    s.is_valid(raise_exception=True)
    upload = s.validated_data['file']
    custom = s.validated_data.get('custom_prompt', '')
    row = AITestAnalysis.objects.create(
        clinic=request.clinic,
        patient=s.validated_data.get('patient'),
        requested_by=request.user,
        file=upload,
        file_name=upload.name,
        content_type=getattr(upload, 'content_type', '') or '',
        custom_prompt=custom,
    )
    try:
        answer = inference.analyze_upload(upload, inference.build_prompt(inference.REPORT_PROMPT, custom))
    except Exception as exc:
        _fail(row, exc)
        raise
    row.analysis_result = answer
    row.findings = inference.parse_report_findings(answer)
    row.status = 'completed'
    row.save(update_fields=['analysis_result', 'findings', 'status', 'updated_at'])
    return created(AITestAnalysisSerializer(row).data, message='Analysis completed successfully')


@api_view(['GET'])
@permission_classes(CLINIC_STAFF)
def report_analyses(request):
    qs = clinic_scoped(AITestAnalysis.objects.all(), request)
    params = request.query_params
    if params.get('patient'):
        qs = qs.filter(patient_id=params['patient'])
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    items, meta = paginate(qs.order_by('-created_at'), params)
    return ok(AITestAnalysisSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'DELETE'])
@permission_classes(CLINIC_STAFF)
def report_analysis_detail(request, pk: int):
    row = get_clinic_object(AITestAnalysis.objects.all(), request, pk)
    if request.method == 'DELETE':
        row.file.delete(save=False)
        row.delete()
        return ok(message='Analysis deleted successfully')
    return ok(AITestAnalysisSerializer(row).data)


# ---------------------------------------------------------------------
# Dental X-ray analysis
# ---------------------------------------------------------------------
@api_view(['POST'])
@permission_classes(MEDICAL)
@parser_classes([MultiPartParser, FormParser])
@throttle_classes([AIAnalysisThrottle])
def analyze_xray(request):
    s = XrayUploadSerializer(data=request.data, context={'request': request})
    s.is_valid(raise_exception=True)
    upload = s.validated_data['file']
    custom = s.validated_data.get('custom_prompt', '')
    row = XrayAnalysis.objects.create(
        clinic=request.clinic,
        patient=s.validated_data['patient'],
        doctor=request.user,
        image=upload,
        image_filename=upload.name,
        custom_prompt=custom,
    )
    try:
        answer = inference.analyze_upload(upload, inference.build_prompt(inference.XRAY_PROMPT, custom))
    except Exception as exc:
        _fail(row, exc)
        raise
    row.analysis_result = answer
    row.findings = inference.parse_xray_findings(answer)
    row.recommendations = inference.answer_section(answer, 'Suggested Medications')
    row.status = 'completed'
    row.save(update_fields=['analysis_result', 'findings', 'recommendations', 'status', 'updated_at'])
    return created(XrayAnalysisSerializer(row).data, message='X-ray analysis completed successfully')


@api_view(['GET'])
@permission_classes(MEDICAL)
def xray_analyses(request):
    qs = clinic_scoped(XrayAnalysis.objects.all(), request)
    params = request.query_params
    if params.get('patient'):
        qs = qs.filter(patient_id=params['patient'])
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    items, meta = paginate(qs.order_by('-analysis_date'), params)
    return ok(XrayAnalysisSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'DELETE'])
@permission_classes(MEDICAL)
def xray_analysis_detail(request, pk: int):
    row = get_clinic_object(XrayAnalysis.objects.all(), request, pk)
    if request.method == 'DELETE':
        row.image.delete(save=False)
        row.delete()
        return ok(message='X-ray analysis deleted successfully')
    return ok(XrayAnalysisSerializer(row).data)


@api_view(['GET'])
@permission_classes(MEDICAL)
def xray_stats(request):
    qs = clinic_scoped(XrayAnalysis.objects.all(), request)
    totals = qs.aggregate(
        total=Count('id'),
        completed=Count('id', filter=Q(status='completed')),
        failed=Count('id', filter=Q(status='failed')),
        pending=Count('id', filter=Q(status='pending')),
    )
    with_cavities = sum(1 for f in qs.filter(status='completed').values_list('findings', flat=True) if (f or {}).get('cavities'))
    return ok({
        'total_analyses': totals['total'],
        'completed': totals['completed'],
        'failed': totals['failed'],
        'pending': totals['pending'],
        'with_cavities': with_cavities,
        'patients_analyzed': qs.values('patient').distinct().count(),
    })


# ---------------------------------------------------------------------
# Lab report comparison
# ---------------------------------------------------------------------
COMPARISON_DELETERS = (User.ROLE_ADMIN, User.ROLE_DOCTOR)


@api_view(['POST'])
@permission_classes(MEDICAL)
@parser_classes([MultiPartParser, FormParser])
@throttle_classes([AIAnalysisThrottle])
def compare_reports(request):
    s = ComparisonUploadSerializer(data=request.data, context={'request': request})
    s.is_valid(raise_exception=True)
    uploads = s.validated_data['test_reports']
    name = s.validated_data.get('comparison_name') or f'Test Comparison - {timezone.localdate():%Y-%m-%d}'
    row = AITestComparison.objects.create(
        clinic=request.clinic,
        patient=s.validated_data['patient'],
        requested_by=request.user,
        comparison_name=name,
        report_count=len(uploads),
        uploaded_files=comparisons.store_uploads(uploads, request.clinic.pk),
        custom_prompt=s.validated_data.get('custom_prompt', ''),
    )
    try:
        comparisons.run_comparison(row, uploads)
    except Exception as exc:
        _fail(row, exc)
        raise
    return created(AITestComparisonSerializer(row).data, message='Test comparison completed successfully')


@api_view(['GET'])
@permission_classes(MEDICAL)
def comparison_history(request):
    qs = clinic_scoped(AITestComparison.objects.select_related('patient'), request)
    params = request.query_params
    if params.get('patient'):
        qs = qs.filter(patient_id=params['patient'])
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    items, meta = paginate(qs.order_by('-comparison_date'), params)
    return ok(AITestComparisonSerializer(items, many=True).data, pagination=meta)


@api_view(['GET'])
@permission_classes(MEDICAL)
def comparison_stats(request):
    qs = clinic_scoped(AITestComparison.objects.all(), request)
    first_of_month = aware(month_start(timezone.localdate()))
    by_status = {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))}
    return ok({
        'total_comparisons': qs.count(),
        'this_month': qs.filter(comparison_date__gte=first_of_month).count(),
        'pending': by_status.get('pending', 0),
        'completed': by_status.get('completed', 0),
        'failed': by_status.get('failed', 0),
    })


@api_view(['GET', 'DELETE'])
@permission_classes(MEDICAL)
def comparison_detail(request, pk: int):
    row = get_clinic_object(AITestComparison.objects.select_related('patient'), request, pk)
    if request.method == 'DELETE':
        ensure_role(request.user, COMPARISON_DELETERS)
        comparisons.delete_uploads(row.uploaded_files)
        row.delete()
        return ok(message='Comparison deleted successfully')
    return ok(AITestComparisonSerializer(row).data)
