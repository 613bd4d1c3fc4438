"""
Inventory Queries

Snapshots of fridge stock and meal history used as generation input.
"""

from datetime import timedelta

from models import InventoryItem, MealHistory
from constants import HISTORY_PROMPT_LIMIT


def inventory_snapshot():
    """All stock items, soonest expiry first (items without expiry last)."""
    items = InventoryItem.query.all()
    return sorted(items, key=lambda item: (item.expiry is None, item.expiry, item.name))


def history_snapshot(limit=HISTORY_PROMPT_LIMIT):
    """Most recent meal history rows, newest first."""
    return MealHistory.query.order_by(MealHistory.date.desc()).limit(limit).all()


def expiring_items(settings, today):
    """
    Items expiring within the warning window, soonest first.

    Already expired items are included only when show_expired_items is set.
    """
    threshold = today + timedelta(days=settings.expiry_warning_days)
    items = []
    for item in inventory_snapshot():
        if item.expiry is None or item.expiry > threshold:
            continue
        if item.expiry < today and not settings.show_expired_items:
            continue
        items.append(item)
    return items
