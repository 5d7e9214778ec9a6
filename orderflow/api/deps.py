"""Request-scoped collaborators and caller identity."""

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from orderflow.core.errors import ValidationError
from orderflow.core.permissions import Actor
from orderflow.db.session import get_db
from orderflow.services.cart_service import CartOwner
from orderflow.services.collaborators import registry
from orderflow.services.customer_directory import CustomerDirectory
from orderflow.services.inventory_reconciler import InventoryReconciler
from orderflow.services.menu_catalog import MenuCatalog


def get_cart_owner(
    x_customer_id: str | None = Header(default=None),
    x_session_id: str | None = Header(default=None),
) -> CartOwner:
    """Signed-in customer when the gateway names one, else the guest session."""
    if x_customer_id:
        return CartOwner.customer(x_customer_id)
    if x_session_id:
        return CartOwner.guest(x_session_id)
    raise ValidationError("X-Customer-Id or X-Session-Id header is required")


def get_session_id(x_session_id: str | None = Header(default=None)) -> str | None:
    return x_session_id or None


def get_actor(
    x_actor_id: str | None = Header(default=None),
    x_actor_role: str | None = Header(default=None),
    x_customer_id: str | None = Header(default=None),
) -> Actor:
    if x_actor_id:
        return Actor(identifier=x_actor_id, role=(x_actor_role or "customer").lower())
    if x_customer_id:
        return Actor(identifier=x_customer_id, role="customer")
    return Actor(identifier="anonymous", role="customer")


def get_customer_directory() -> CustomerDirectory:
    return registry.directory


def get_menu_catalog() -> MenuCatalog:
    return registry.catalog


def get_reconciler(db: Session = Depends(get_db)) -> InventoryReconciler:
    return registry.reconciler(db)
