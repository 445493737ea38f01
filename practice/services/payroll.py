"""
Monthly payroll generation.
"""
from __future__ import annotations

import calendar
import logging
import math
from decimal import ROUND_HALF_UP, Decimal

from practice.models import Payroll, User, UserClinic

logger = logging.getLogger(__name__)

BASE_SALARIES = {
    User.ROLE_DOCTOR: Decimal('15000'),
    User.ROLE_NURSE: Decimal('6500'),
    User.ROLE_ADMIN: Decimal('8000'),
    User.ROLE_RECEPTIONIST: Decimal('4500'),
    User.ROLE_ACCOUNTANT: Decimal('8000'),
    User.ROLE_STAFF: Decimal('5000'),
}
TAX_RATE = Decimal('0.15')
ATTENDANCE_RATE = 0.95


def generate_payroll(clinic, month: str, year: int) -> tuple[list[Payroll], int]:
    """Create draft payroll rows for every active member without one.

    Returns the created rows and the number of members skipped because a
    row already exists for the period.
    """
    total_days = calendar.monthrange(year, Payroll.MONTHS.index(month) + 1)[1]
    working_days = math.floor(total_days * ATTENDANCE_RATE)
    existing = set(
        Payroll.objects.filter(clinic=clinic, month=month, year=year).values_list('employee_id', flat=True)
    )
    created, skipped = [], 0
    memberships = UserClinic.objects.filter(clinic=clinic, is_active=True, user__is_active=True).select_related('user')
    for membership in memberships:
        employee = membership.user
        if employee.pk in existing:
            skipped += 1
            continue
        base = BASE_SALARIES.get(employee.role, BASE_SALARIES[User.ROLE_STAFF])
        tax = (base * TAX_RATE).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        created.append(Payroll.objects.create(
            clinic=clinic,
            employee=employee,
            month=month,
            year=year,
            base_salary=base,
            tax=tax,
            status='draft',
            working_days=working_days,
            total_days=total_days,
        ))
    logger.info('Generated %d payroll rows for %s %s clinic=%s', len(created), month, year, clinic.pk)
    return created, skipped
