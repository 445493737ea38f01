from __future__ import annotations

from django.utils import timezone

from practice.exceptions import InvalidTransition
from practice.models import TestReport


def transition(report: TestReport, new_status: str, *, verified_by: str = '') -> TestReport:
    """Move a report along pending -> recorded -> verified -> delivered."""
    if not report.can_transition(new_status):
        raise InvalidTransition(f'Cannot change status from {report.status} to {new_status}.')
    report.status = new_status
    fields = ['status', 'updated_at']
    if new_status == TestReport.STATUS_RECORDED:
        report.recorded_date = timezone.now()
        fields.append('recorded_date')
    if new_status == TestReport.STATUS_VERIFIED:
        report.verified_by = verified_by
        report.verified_date = timezone.now()
        fields += ['verified_by', 'verified_date']
    report.save(update_fields=fields)
    return report


def add_attachment(report: TestReport, attachment: dict) -> TestReport:
    attachments = list(report.attachments or [])
    attachments.append({**attachment, 'uploaded_date': attachment.get('uploaded_date') or timezone.now().isoformat()})
    report.attachments = attachments
    report.save(update_fields=['attachments', 'updated_at'])
    return report


def remove_attachment(report: TestReport, index: int) -> TestReport:
    attachments = list(report.attachments or [])
    if index < 0 or index >= len(attachments):
        raise IndexError(index)
    attachments.pop(index)
    report.attachments = attachments
    report.save(update_fields=['attachments', 'updated_at'])
    return report
