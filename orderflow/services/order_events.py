"""In-process fan-out of order status changes to notification listeners."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from orderflow.models.order import Order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderStatusEvent:
    order_id: int
    order_number: str
    status: str
    previous_status: str | None
    order: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[OrderStatusEvent], None]


class OrderEventBus:
    """Named listener registry; delivery is best-effort."""

    def __init__(self) -> None:
        self._listeners: dict[str, Listener] = {}

    def subscribe(self, name: str, listener: Listener) -> None:
        self._listeners[name] = listener

    def unsubscribe(self, name: str) -> None:
        self._listeners.pop(name, None)

    def publish(self, event: OrderStatusEvent) -> None:
        for name, listener in list(self._listeners.items()):
            try:
                listener(event)
            except Exception:
                logger.exception("[EVENTS] Listener %s failed for order %s", name, event.order_number)


def order_snapshot(order: Order) -> dict[str, Any]:
    """Small serialisable view of an order for notification channels."""
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "customer_id": order.customer_id,
        "session_id": order.session_id,
        "delivery_type": order.delivery_type,
        "payment_status": order.payment_status,
        "total": order.total,
        "items": [{"name": item.name, "quantity": item.quantity} for item in order.items],
    }


def _log_event(event: OrderStatusEvent) -> None:
    logger.info(
        "[EVENTS] Order %s: %s -> %s",
        event.order_number,
        event.previous_status,
        event.status,
    )


event_bus: OrderEventBus = OrderEventBus()
event_bus.subscribe("log", _log_event)
