"""
Small helpers shared by the list endpoints.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework.exceptions import ValidationError

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def positive_int(value, default: int) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    return n if n > 0 else default


def paginate(queryset, params, *, default_limit: int = DEFAULT_LIMIT) -> Tuple[list, dict]:
    """Slice ``queryset`` by ``page``/``limit`` query params (limit capped at 100)."""
    page = positive_int(params.get('page'), 1)
    limit = min(positive_int(params.get('limit'), default_limit), MAX_LIMIT)
    total = queryset.count()
    start = (page - 1) * limit
    items = list(queryset[start:start + limit])
    meta = {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if total else 0,
    }
    return items, meta


def query_date(params, name: str) -> Optional[date]:
    raw = params.get(name)
    if not raw:
        return None
    parsed = parse_date(raw)
    if parsed is None:
        dt = parse_datetime(raw)
        parsed = dt.date() if dt else None
    if parsed is None:
        raise ValidationError({name: ['Enter a valid date (YYYY-MM-DD).']})
    return parsed


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    tz = timezone.get_current_timezone()
    start = timezone.make_aware(datetime.combine(day, time.min), tz)
    return start, start + timedelta(days=1)


def month_start(day: date) -> date:
    return day.replace(day=1)


def add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    return date(year, month_index % 12 + 1, 1)


def aware(day: date) -> datetime:
    return day_bounds(day)[0]


def percent_change(current, previous) -> float:
    current = float(current or 0)
    previous = float(previous or 0)
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 1)


def query_number(params, name: str, cast=float):
    """Numeric query param, or None when missing or malformed."""
    try:
        return cast(params[name]) if params.get(name) else None
    except (TypeError, ValueError):
        return None
