from __future__ import annotations

from datetime import date, timedelta

from django.db import transaction
from django.db.models import F

from practice.models import InventoryItem

EXPIRY_WINDOW_DAYS = 30


def adjust_stock(item: InventoryItem, quantity: int, operation: str) -> InventoryItem:
    """Add to or subtract from stock; subtraction never goes below zero."""
    with transaction.atomic():
        item = InventoryItem.objects.select_for_update().get(pk=item.pk)
        if operation == 'add':
            item.current_stock += quantity
        else:
            item.current_stock = max(0, item.current_stock - quantity)
        item.save(update_fields=['current_stock', 'updated_at'])
    return item


def low_stock(queryset):
    return queryset.filter(current_stock__lte=F('minimum_stock'))


def expiring(queryset, days: int = EXPIRY_WINDOW_DAYS):
    today = date.today()
    return queryset.filter(expiry_date__gte=today, expiry_date__lte=today + timedelta(days=days))


def expired(queryset):
    return queryset.filter(expiry_date__lt=date.today())
