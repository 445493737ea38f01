"""
Invoices and payments.
"""
from __future__ import annotations

from datetime import date

from django.db.models import Count, Q, Sum
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from practice.models import Invoice, Patient, Payment, User
from practice.permissions import HasClinicContext, IsFinance, ensure_role
from practice.responses import created, ok
from practice.serializers.billing import (
    InvoicePaySerializer,
    InvoiceSerializer,
    PaymentSerializer,
    PaymentStatusSerializer,
)
from practice.services import billing as billing_service
from practice.services.common import aware, month_start, paginate, query_date
from practice.services.tenancy import clinic_scoped, get_clinic_object

FINANCE = [IsAuthenticated, HasClinicContext, IsFinance]
ZERO = 0


def _sum(qs, field: str):
    return qs.aggregate(s=Sum(field))['s'] or ZERO


# ---------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes(FINANCE)
def invoices(request):
    if request.method == 'POST':
        s = InvoiceSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        invoice = billing_service.create_invoice(s, request.clinic)
        return created(InvoiceSerializer(invoice).data, message='Invoice created successfully')

    qs = clinic_scoped(Invoice.objects.select_related('patient'), request)
    params = request.query_params
    if params.get('status'):
        qs = qs.filter(status=params['status'])
    if params.get('patient'):
        qs = qs.filter(patient_id=params['patient'])
    start, end = query_date(params, 'start_date'), query_date(params, 'end_date')
    if start:
        qs = qs.filter(issue_date__gte=start)
    if end:
        qs = qs.filter(issue_date__lte=end)
    search = (params.get('search') or '').strip()
    if search:
        qs = qs.filter(
            Q(invoice_number__icontains=search) | Q(patient__first_name__icontains=search)
            | Q(patient__last_name__icontains=search)
        )
    items, meta = paginate(qs.order_by('-created_at'), params)
    return ok(InvoiceSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(FINANCE)
def invoice_detail(request, pk: int):
    invoice = get_clinic_object(Invoice.objects.select_related('patient'), request, pk)
    if request.method == 'GET':
        return ok(InvoiceSerializer(invoice).data)
    if request.method == 'DELETE':
        ensure_role(request.user, (User.ROLE_ADMIN,))
        if invoice.payments.exists():
            invoice.status = Invoice.STATUS_CANCELLED
            invoice.save(update_fields=['status', 'updated_at'])
            return ok(InvoiceSerializer(invoice).data, message='Invoice has payments and was cancelled instead')
        invoice.delete()
        return ok(message='Invoice deleted successfully')
    s = InvoiceSerializer(invoice, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    invoice = billing_service.update_invoice(s)
    return ok(InvoiceSerializer(invoice).data, message='Invoice updated successfully')


@api_view(['POST'])
@permission_classes(FINANCE)
def invoice_mark_paid(request, pk: int):
    invoice = get_clinic_object(Invoice.objects.all(), request, pk)
    s = InvoicePaySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    billing_service.mark_paid(invoice, s.validated_data.get('payment_method', ''))
    return ok(InvoiceSerializer(invoice).data, message='Invoice marked as paid')


@api_view(['GET'])
@permission_classes(FINANCE)
def overdue_invoices(request):
    flagged = billing_service.sweep_overdue(request.clinic)
    qs = clinic_scoped(Invoice.objects.select_related('patient'), request).filter(
        status=Invoice.STATUS_OVERDUE,
    ).order_by('due_date')
    return ok(InvoiceSerializer(qs, many=True).data, flagged=flagged)


@api_view(['GET'])
@permission_classes(FINANCE)
def invoice_stats(request):
    qs = clinic_scoped(Invoice.objects.all(), request)
    paid = qs.filter(status=Invoice.STATUS_PAID)
    outstanding = qs.filter(status__in=[Invoice.STATUS_PENDING, Invoice.STATUS_SENT, Invoice.STATUS_OVERDUE])
    this_month = aware(month_start(date.today()))
    return ok({
        'total_invoices': qs.count(),
        'total_revenue': _sum(paid, 'total_amount'),
        'monthly_revenue': _sum(paid.filter(paid_at__gte=this_month), 'total_amount'),
        'outstanding_amount': _sum(outstanding, 'total_amount'),
        'overdue_count': qs.filter(status=Invoice.STATUS_OVERDUE).count(),
        'by_status': {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))},
    })


@api_view(['GET'])
@permission_classes(FINANCE)
def patient_invoices(request, patient_id: int):
    patient = get_clinic_object(Patient.objects.all(), request, patient_id)
    qs = clinic_scoped(Invoice.objects.select_related('patient'), request).filter(patient=patient).order_by('-created_at')
    return ok(InvoiceSerializer(qs, many=True).data)


# ---------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------
@api_view(['GET', 'POST'])
@permission_classes(FINANCE)
def payments(request):
    if request.method == 'POST':
        s = PaymentSerializer(data=request.data, context={'request': request})
        s.is_valid(raise_exception=True)
        payment = billing_service.record_payment(s, request.clinic)
        return created(PaymentSerializer(payment).data, message='Payment recorded successfully')

    qs = clinic_scoped(Payment.objects.select_related('invoice', 'patient'), request)
    params = request.query_params
    for name in ('status', 'method'):
        if params.get(name):
            qs = qs.filter(**{name: params[name]})
    if params.get('invoice'):
        qs = qs.filter(invoice_id=params['invoice'])
    if params.get('patient'):
        qs = qs.filter(patient_id=params['patient'])
    items, meta = paginate(qs.order_by('-payment_date'), params)
    return ok(PaymentSerializer(items, many=True).data, pagination=meta)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(FINANCE)
def payment_detail(request, pk: int):
    payment = get_clinic_object(Payment.objects.select_related('invoice', 'patient'), request, pk)
    if request.method == 'GET':
        return ok(PaymentSerializer(payment).data)
    if request.method == 'DELETE':
        ensure_role(request.user, (User.ROLE_ADMIN,))
        payment.delete()
        return ok(message='Payment deleted successfully')
    s = PaymentSerializer(payment, data=request.data, partial=request.method == 'PATCH', context={'request': request})
    s.is_valid(raise_exception=True)
    payment = billing_service.update_payment(s)
    return ok(PaymentSerializer(payment).data, message='Payment updated successfully')


@api_view(['PATCH', 'PUT'])
@permission_classes(FINANCE)
def payment_status(request, pk: int):
    payment = get_clinic_object(Payment.objects.select_related('invoice'), request, pk)
    s = PaymentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    billing_service.set_payment_status(payment, s.validated_data['status'], s.validated_data.get('failure_reason'))
    return ok(PaymentSerializer(payment).data, message='Payment status updated')


@api_view(['POST'])
@permission_classes(FINANCE)
def refund_payment(request, pk: int):
    payment = get_clinic_object(Payment.objects.select_related('invoice'), request, pk)
    billing_service.refund_payment(payment, str(request.data.get('reason') or ''))
    return ok(PaymentSerializer(payment).data, message='Payment refunded')


@api_view(['GET'])
@permission_classes(FINANCE)
def payment_stats(request):
    qs = clinic_scoped(Payment.objects.all(), request)
    completed = qs.filter(status=Payment.STATUS_COMPLETED)
    return ok({
        'total_payments': qs.count(),
        'total_amount': _sum(completed, 'amount'),
        'total_fees': _sum(completed, 'processing_fee'),
        'net_amount': _sum(completed, 'net_amount'),
        'refunded_amount': _sum(qs.filter(status=Payment.STATUS_REFUNDED), 'amount'),
        'by_method': {row['method']: row['n'] for row in qs.values('method').annotate(n=Count('id'))},
        'by_status': {row['status']: row['n'] for row in qs.values('status').annotate(n=Count('id'))},
    })
