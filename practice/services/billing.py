"""
Invoice totals and payment side effects.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from practice.exceptions import InvalidTransition
from practice.models import Invoice, Payment
from practice.services.numbering import lock_clinic, next_invoice_number

logger = logging.getLogger(__name__)


def create_invoice(serializer, clinic) -> Invoice:
    with transaction.atomic():
        lock_clinic(clinic)
        issue = serializer.validated_data.get('issue_date') or date.today()
        invoice = serializer.save(clinic=clinic, invoice_number=next_invoice_number(clinic, issue.year))
        invoice.calculate_totals()
        invoice.save(update_fields=['subtotal', 'total_amount', 'updated_at'])
    return invoice


def update_invoice(serializer) -> Invoice:
    invoice = serializer.save()
    invoice.calculate_totals()
    if invoice.status == Invoice.STATUS_PAID and invoice.paid_at is None:
        invoice.paid_at = timezone.now()
    invoice.save(update_fields=['subtotal', 'total_amount', 'paid_at', 'updated_at'])
    return invoice


def mark_paid(invoice: Invoice, payment_method: str = '') -> Invoice:
    if invoice.status in (Invoice.STATUS_CANCELLED, Invoice.STATUS_REFUNDED):
        raise InvalidTransition(f'Cannot mark a {invoice.status} invoice as paid.')
    invoice.status = Invoice.STATUS_PAID
    invoice.paid_at = timezone.now()
    if payment_method:
        invoice.payment_method = payment_method
    invoice.save(update_fields=['status', 'paid_at', 'payment_method', 'updated_at'])
    return invoice


def sweep_overdue(clinic) -> int:
    """Flag unpaid invoices whose due date has passed."""
    return Invoice.objects.filter(
        clinic=clinic,
        due_date__lt=date.today(),
        status__in=[Invoice.STATUS_PENDING, Invoice.STATUS_SENT, Invoice.STATUS_DRAFT],
    ).update(status=Invoice.STATUS_OVERDUE, updated_at=timezone.now())


def apply_payment(payment: Payment) -> Payment:
    """A completed payment settles its invoice."""
    if payment.status == Payment.STATUS_COMPLETED:
        invoice = payment.invoice
        if invoice.status != Invoice.STATUS_PAID:
            mark_paid(invoice, payment.method)
            logger.info('Invoice %s paid by payment %s', invoice.invoice_number, payment.pk)
    return payment


def refund_payment(payment: Payment, reason: str = '') -> Payment:
    if payment.status != Payment.STATUS_COMPLETED:
        raise InvalidTransition('Only completed payments can be refunded.')
    with transaction.atomic():
        payment.status = Payment.STATUS_REFUNDED
        if reason:
            payment.failure_reason = reason
        payment.save()
        invoice = payment.invoice
        still_paid = invoice.payments.filter(status=Payment.STATUS_COMPLETED).aggregate(s=Sum('amount'))['s'] or Decimal('0')
        if still_paid <= 0:
            invoice.status = Invoice.STATUS_REFUNDED
            invoice.save(update_fields=['status', 'updated_at'])
    logger.info('Payment %s refunded', payment.pk)
    return payment


def record_payment(serializer, clinic) -> Payment:
    with transaction.atomic():
        payment = serializer.save(clinic=clinic)
        apply_payment(payment)
    return payment


def update_payment(serializer) -> Payment:
    with transaction.atomic():
        payment = serializer.save()
        apply_payment(payment)
    return payment


def set_payment_status(payment: Payment, status: str, reason: str | None = None) -> Payment:
    """Status moves other than refunds; a refunded payment stays refunded."""
    if status == Payment.STATUS_REFUNDED:
        return refund_payment(payment, reason or '')
    if payment.status == Payment.STATUS_REFUNDED:
        raise InvalidTransition('A refunded payment cannot change status.')
    with transaction.atomic():
        payment.status = status
        if reason is not None:
            payment.failure_reason = reason
        payment.save()
        apply_payment(payment)
    return payment
