"""Order status transition helpers."""

from __future__ import annotations

from datetime import datetime

from orderflow.models.order import Order, OrderTimelineEntry
from orderflow.utils.time import minutes_between

ORDER_STATUSES: list[str] = [
    "pending",
    "confirmed",
    "preparing",
    "ready",
    "picked_up",
    "out_for_delivery",
    "delivered",
    "completed",
    "cancelled",
    "refunded",
    "ordered",
    "cooking",
    "served",
    "dining",
]

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"preparing", "cancelled"},
    "preparing": {"ready", "cancelled"},
    "ready": {"out_for_delivery", "picked_up", "served"},
    "out_for_delivery": {"delivered"},
    "picked_up": {"out_for_delivery", "completed"},
    "ordered": {"cooking", "cancelled"},
    "cooking": {"served"},
    "served": {"dining", "completed"},
    "dining": {"completed"},
    "delivered": set(),
    "completed": set(),
    "cancelled": set(),
    "refunded": set(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset({"delivered", "completed", "cancelled", "refunded"})
COMPLETION_STATUSES: frozenset[str] = frozenset({"delivered", "completed"})
CANCELLABLE_STATUSES: frozenset[str] = frozenset({"pending", "confirmed"})
# Entering any of these consumes ingredients.
INVENTORY_TRIGGER_STATUSES: frozenset[str] = frozenset({"confirmed", "preparing", "cooking"})


def initial_status(delivery_type: str) -> str:
    """Dine-in orders go straight to the kitchen queue."""
    return "ordered" if delivery_type == "dine_in" else "pending"


def can_transition(current: str, new: str) -> bool:
    """Return whether order can move from current to new status."""
    return new in ALLOWED_TRANSITIONS.get(current, set())


def can_cancel(order: Order) -> bool:
    """Customer cancellation is allowed only before the kitchen starts."""
    return order.status in CANCELLABLE_STATUSES


def append_timeline(order: Order, status: str, now: datetime, note: str, updated_by: str) -> OrderTimelineEntry:
    entry = OrderTimelineEntry(status=status, timestamp=now, note=note, updated_by=updated_by)
    order.timeline.append(entry)
    return entry


def set_status(order: Order, new_status: str, now: datetime, note: str = "", updated_by: str = "system") -> None:
    """Set status, append one timeline entry and stamp completion times."""
    order.status = new_status
    append_timeline(order, new_status, now, note or f"Status changed to {new_status}", updated_by)

    if new_status in COMPLETION_STATUSES:
        order.actual_completion_time = now
        order.total_time = minutes_between(order.order_date, now)
