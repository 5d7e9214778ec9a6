"""Actor identity and explicit permission predicates."""

from __future__ import annotations

from dataclasses import dataclass

from orderflow.core.errors import PermissionDeniedError

ORDERS_TRANSITION = "orders:transition"
ORDERS_REFUND = "orders:refund"
INVENTORY_REDUCE = "inventory:reduce"
PAYMENTS_RECONCILE = "payments:reconcile"

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": frozenset({ORDERS_TRANSITION, ORDERS_REFUND, INVENTORY_REDUCE, PAYMENTS_RECONCILE}),
    "manager": frozenset({ORDERS_TRANSITION, ORDERS_REFUND, INVENTORY_REDUCE, PAYMENTS_RECONCILE}),
    "cashier": frozenset({ORDERS_TRANSITION, PAYMENTS_RECONCILE}),
    "chef": frozenset({ORDERS_TRANSITION}),
    "waiter": frozenset({ORDERS_TRANSITION}),
    "delivery": frozenset({ORDERS_TRANSITION}),
    "system": frozenset({ORDERS_TRANSITION, ORDERS_REFUND, INVENTORY_REDUCE, PAYMENTS_RECONCILE}),
    "customer": frozenset(),
}


@dataclass(frozen=True)
class Actor:
    """Principal performing an operation, as asserted by the gateway."""

    identifier: str
    role: str

    def can(self, permission: str) -> bool:
        return permission in ROLE_PERMISSIONS.get(self.role.lower(), frozenset())


SYSTEM_ACTOR = Actor(identifier="system", role="system")


def ensure_permission(actor: Actor, permission: str) -> None:
    """Raise when actor lacks the permission."""
    if not actor.can(permission):
        raise PermissionDeniedError(permission)
