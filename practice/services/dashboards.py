"""
Read-only aggregations behind the dashboard endpoints.

Every builder returns plain dicts so the result can be cached as is.
"""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from django.db.models import Count, Q, Sum

from practice.models import Appointment, Expense, InventoryItem, Invoice, Lead, Patient, Prescription, User, UserClinic
from practice.services.common import add_months, aware, day_bounds, month_start, percent_change
from practice.services.inventory import EXPIRY_WINDOW_DAYS, expiring, low_stock

PERIOD_MONTHS = {'1month': 1, '3months': 3, '6months': 6, '1year': 12}


def cache_key(clinic_id, name: str, *parts) -> str:
    suffix = ':'.join(str(p) for p in parts)
    return f'dashboard:{clinic_id}:{name}' + (f':{suffix}' if suffix else '')


def _money(value) -> Decimal:
    return value if value is not None else Decimal('0')


def _revenue(clinic, start: date, end: date) -> Decimal:
    return _money(Invoice.objects.filter(
        clinic=clinic, status=Invoice.STATUS_PAID, paid_at__gte=aware(start), paid_at__lt=aware(end),
    ).aggregate(s=Sum('total_amount'))['s'])


def _expenses(clinic, start: date, end: date) -> Decimal:
    return _money(Expense.objects.filter(
        clinic=clinic, status='paid', date__gte=start, date__lt=end,
    ).aggregate(s=Sum('amount'))['s'])


def _appointment_row(a: Appointment) -> dict:
    return {
        'id': a.pk,
        'patient': {'id': a.patient_id, 'name': a.patient.full_name},
        'doctor': {'id': a.doctor_id, 'name': a.doctor.full_name},
        'appointment_date': a.appointment_date.isoformat(),
        'status': a.status,
        'type': a.type,
    }


def _status_counts(queryset) -> dict:
    return {row['status']: row['n'] for row in queryset.values('status').annotate(n=Count('id'))}


def admin_stats(clinic, today: date | None = None) -> dict:
    today = today or date.today()
    this_month = month_start(today)
    last_month = add_months(this_month, -1)
    next_month = add_months(this_month, 1)
    day_start, day_end = day_bounds(today)

    patients = Patient.objects.filter(clinic=clinic)
    appointments = Appointment.objects.filter(clinic=clinic)
    inventory = InventoryItem.objects.filter(clinic=clinic)
    members = UserClinic.objects.filter(clinic=clinic, is_active=True, user__is_active=True)

    month_revenue = _revenue(clinic, this_month, next_month)
    prev_revenue = _revenue(clinic, last_month, this_month)
    new_patients = patients.filter(created_at__gte=aware(this_month)).count()
    prev_new_patients = patients.filter(created_at__gte=aware(last_month), created_at__lt=aware(this_month)).count()
    month_appts = appointments.filter(appointment_date__gte=aware(this_month), appointment_date__lt=aware(next_month)).count()
    prev_appts = appointments.filter(appointment_date__gte=aware(last_month), appointment_date__lt=aware(this_month)).count()

    revenue_by_month = []
    for offset in range(5, -1, -1):
        start = add_months(this_month, -offset)
        revenue_by_month.append({'month': start.strftime('%Y-%m'), 'revenue': _revenue(clinic, start, add_months(start, 1))})

    return {
        'totals': {
            'total_patients': patients.count(),
            'today_appointments': appointments.filter(appointment_date__gte=day_start, appointment_date__lt=day_end).count(),
            'monthly_revenue': month_revenue,
            'low_stock_items': low_stock(inventory).count(),
            'total_doctors': members.filter(user__role=User.ROLE_DOCTOR).count(),
            'total_staff': members.count(),
        },
        'changes': {
            'patients': percent_change(new_patients, prev_new_patients),
            'appointments': percent_change(month_appts, prev_appts),
            'revenue': percent_change(month_revenue, prev_revenue),
        },
        'appointments_by_status': _status_counts(appointments),
        'revenue_by_month': revenue_by_month,
        'low_stock': [
            {'id': i.pk, 'name': i.name, 'sku': i.sku, 'current_stock': i.current_stock, 'minimum_stock': i.minimum_stock}
            for i in low_stock(inventory).order_by('current_stock')[:5]
        ],
        'recent_appointments': [
            _appointment_row(a)
            for a in appointments.select_related('patient', 'doctor').order_by('-created_at')[:5]
        ],
        'recent_leads': [
            {'id': l.pk, 'name': f'{l.first_name} {l.last_name}', 'source': l.source, 'status': l.status,
             'created_at': l.created_at.isoformat()}
            for l in Lead.objects.filter(clinic=clinic).order_by('-created_at')[:5]
        ],
    }


def revenue_analytics(clinic, period: str = '6months', today: date | None = None) -> dict:
    months = PERIOD_MONTHS.get(period, 6)
    this_month = month_start(today or date.today())
    rows = []
    for offset in range(months - 1, -1, -1):
        start = add_months(this_month, -offset)
        end = add_months(start, 1)
        revenue = _revenue(clinic, start, end)
        expenses = _expenses(clinic, start, end)
        rows.append({'month': start.strftime('%Y-%m'), 'revenue': revenue, 'expenses': expenses, 'profit': revenue - expenses})
    total_revenue = sum((r['revenue'] for r in rows), Decimal('0'))
    total_expenses = sum((r['expenses'] for r in rows), Decimal('0'))
    return {
        'period': period if period in PERIOD_MONTHS else '6months',
        'months': rows,
        'total_revenue': total_revenue,
        'total_expenses': total_expenses,
        'net_profit': total_revenue - total_expenses,
    }


def operational_metrics(clinic, today: date | None = None) -> dict:
    today = today or date.today()
    windows = {
        'today': aware(today),
        'this_week': aware(today - timedelta(days=today.weekday())),
        'this_month': aware(month_start(today)),
    }
    tomorrow = aware(today + timedelta(days=1))
    appointments = Appointment.objects.filter(clinic=clinic)
    patients = Patient.objects.filter(clinic=clinic)
    inventory = InventoryItem.objects.filter(clinic=clinic)
    alerts = inventory.filter(
        Q(pk__in=low_stock(inventory).values('pk')) | Q(pk__in=expiring(inventory).values('pk'))
    ).order_by('name')
    return {
        'appointments': {
            name: appointments.filter(appointment_date__gte=start, appointment_date__lt=tomorrow).count()
            for name, start in windows.items()
        },
        'new_patients': {
            name: patients.filter(created_at__gte=start).count() for name, start in windows.items()
        },
        'inventory_alerts': [
            {
                'id': i.pk, 'name': i.name, 'sku': i.sku, 'current_stock': i.current_stock,
                'minimum_stock': i.minimum_stock,
                'expiry_date': i.expiry_date.isoformat() if i.expiry_date else None,
                'low_stock': i.is_low_stock,
                'expiring_soon': bool(i.expiry_date and i.expiry_date <= today + timedelta(days=EXPIRY_WINDOW_DAYS)),
            }
            for i in alerts
        ],
    }


def doctor_dashboard(clinic, doctor, today: date | None = None) -> dict:
    today = today or date.today()
    day_start, day_end = day_bounds(today)
    mine = Appointment.objects.filter(clinic=clinic, doctor=doctor).select_related('patient', 'doctor')
    patient_ids = set(mine.values_list('patient_id', flat=True))
    patient_ids.update(Prescription.objects.filter(clinic=clinic, doctor=doctor).values_list('patient_id', flat=True))
    return {
        'today_appointments': [_appointment_row(a) for a in mine.filter(
            appointment_date__gte=day_start, appointment_date__lt=day_end).order_by('appointment_date')],
        'upcoming_appointments': [_appointment_row(a) for a in mine.filter(
            appointment_date__gte=day_end,
            status__in=[Appointment.STATUS_SCHEDULED, Appointment.STATUS_CONFIRMED],
        ).order_by('appointment_date')[:10]],
        'my_patients': len(patient_ids),
        'active_prescriptions': Prescription.objects.filter(clinic=clinic, doctor=doctor, status='active').count(),
    }


def receptionist_dashboard(clinic, today: date | None = None) -> dict:
    today = today or date.today()
    day_start, day_end = day_bounds(today)
    todays = Appointment.objects.filter(clinic=clinic, appointment_date__gte=day_start, appointment_date__lt=day_end)
    return {
        'today_total': todays.count(),
        'today_by_status': _status_counts(todays),
        'walk_ins': todays.filter(is_walk_in=True).count(),
        'checked_in': todays.filter(checked_in_at__isnull=False).count(),
        'new_patients_today': Patient.objects.filter(clinic=clinic, created_at__gte=day_start, created_at__lt=day_end).count(),
        'pending_invoices': Invoice.objects.filter(
            clinic=clinic, status__in=[Invoice.STATUS_PENDING, Invoice.STATUS_SENT, Invoice.STATUS_OVERDUE],
        ).count(),
    }
