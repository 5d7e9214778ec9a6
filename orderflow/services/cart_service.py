"""Cart mutations and checkout.

Each mutation follows the same cycle: read the cart, change its lines or
options, re-derive the summary and commit under the cart's version check. A
concurrent writer that committed first turns the commit into
``CartConflictError`` instead of a lost update.

A cart belongs to a signed-in customer or to a guest session. Guests are
priced as bronze and check out into session-owned orders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from orderflow.core.config import settings
from orderflow.core.errors import CartConflictError, CartItemNotFoundError, EmptyCartError, OrderflowError, ValidationError
from orderflow.models.cart import Cart, CartItem
from orderflow.models.order import DELIVERY_TYPES, Order
from orderflow.services.collaborators import registry
from orderflow.services.customer_directory import BRONZE_DEFAULT, CustomerDirectory, resolve_membership_level
from orderflow.services.menu_catalog import MenuCatalog
from orderflow.services.order_service import (
    CheckoutLine,
    CheckoutSnapshot,
    CustomerContact,
    PaymentRequest,
    create_from_checkout,
)
from orderflow.services.pricing import CartSummary, CouponTerms, compute_summary, lookup_coupon
from orderflow.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartOwner:
    """Signed-in customer or guest session; exactly one of the two is set."""

    customer_id: str | None = None
    session_id: str | None = None

    @classmethod
    def customer(cls, customer_id: str) -> CartOwner:
        return cls(customer_id=customer_id)

    @classmethod
    def guest(cls, session_id: str) -> CartOwner:
        return cls(session_id=session_id)

    @property
    def label(self) -> str:
        return self.customer_id or f"guest:{self.session_id}"

    def validate(self) -> None:
        if bool(self.customer_id) == bool(self.session_id):
            raise ValidationError("A cart needs exactly one of customer id or session id")


def _owned_by(owner: CartOwner):
    if owner.customer_id:
        return Cart.customer_id == owner.customer_id
    return Cart.session_id == owner.session_id


def _commit(db: Session) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise CartConflictError() from exc


def _coupon_terms(cart: Cart) -> CouponTerms | None:
    if not cart.coupon_code or cart.coupon_discount_type is None or cart.coupon_discount_value is None:
        return None
    return CouponTerms(
        code=cart.coupon_code,
        discount_type=cart.coupon_discount_type,
        discount_value=cart.coupon_discount_value,
    )


def _membership_level(directory: CustomerDirectory, cart: Cart) -> str:
    if not cart.customer_id:
        return BRONZE_DEFAULT.membership_level
    return resolve_membership_level(directory, cart.customer_id)


def _summarize(cart: Cart, membership_level: str) -> CartSummary:
    return compute_summary(
        [(item.quantity, item.price * item.quantity) for item in cart.items],
        coupon=_coupon_terms(cart),
        delivery_type=cart.delivery_type,
        membership_level=membership_level,
    )


def _validate_quantity(quantity: int) -> None:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    if quantity > settings.max_item_quantity:
        raise ValidationError(f"Quantity cannot exceed {settings.max_item_quantity}")


def recompute_summary(cart: Cart, directory: CustomerDirectory, now: datetime | None = None) -> CartSummary:
    """Re-derive every summary figure from the cart's lines and options.

    The membership tier is fetched once per recompute; a failed lookup and a
    guest cart both price as bronze. Also rolls the cart's expiry forward.
    """
    now = now or utcnow()
    level = _membership_level(directory, cart)
    for item in cart.items:
        item.subtotal = item.price * item.quantity
    summary = _summarize(cart, level)

    cart.membership_level = level
    cart.total_items = summary.total_items
    cart.subtotal = summary.subtotal
    cart.tax = summary.tax
    cart.delivery_fee = summary.delivery_fee
    cart.loyalty_discount = summary.loyalty_discount
    cart.coupon_discount = summary.coupon_discount
    cart.total = summary.total
    cart.coupon_applied_discount = summary.coupon_discount if cart.coupon_code else None
    cart.updated_at = now
    cart.expires_at = now + timedelta(hours=settings.cart_ttl_hours)
    return summary


def get_cart(db: Session, owner: CartOwner, now: datetime | None = None) -> Cart | None:
    """Return the owner's live cart; an expired cart is purged and reported absent."""
    owner.validate()
    cart: Cart | None = db.scalar(select(Cart).where(_owned_by(owner)))
    if cart is None:
        return None
    now = now or utcnow()
    if as_utc(cart.expires_at) <= now:
        logger.info("[CART] Cart for %s expired at %s; purging", owner.label, cart.expires_at)
        db.delete(cart)
        db.commit()
        return None
    return cart


def get_or_create_cart(db: Session, owner: CartOwner, now: datetime | None = None) -> Cart:
    now = now or utcnow()
    cart = get_cart(db, owner, now)
    if cart is not None:
        return cart

    cart = Cart(
        customer_id=owner.customer_id,
        session_id=owner.session_id,
        created_at=now,
        updated_at=now,
        expires_at=now + timedelta(hours=settings.cart_ttl_hours),
    )
    db.add(cart)
    try:
        db.commit()
    except IntegrityError:
        # Another request created the cart first.
        db.rollback()
        existing: Cart | None = db.scalar(select(Cart).where(_owned_by(owner)))
        if existing is None:
            raise
        return existing
    db.refresh(cart)
    return cart


def add_item(
    db: Session,
    owner: CartOwner,
    *,
    menu_item_id: str,
    quantity: int = 1,
    customizations: str = "",
    notes: str = "",
    catalog: MenuCatalog | None = None,
    directory: CustomerDirectory | None = None,
) -> Cart:
    """Add a line priced from the menu, merging into an existing one with the same item and customizations.

    Name, price and image always come from the menu; an unknown item is not
    found and an unavailable one is rejected.
    """
    if not menu_item_id:
        raise ValidationError("Menu item id is required")
    _validate_quantity(quantity)
    menu_item = (catalog or registry.catalog).get_menu_item(menu_item_id)
    if not menu_item.available:
        raise ValidationError(f"{menu_item.name} is currently unavailable")

    cart = get_or_create_cart(db, owner)
    existing = next(
        (item for item in cart.items if item.menu_item_id == menu_item_id and item.customizations == customizations),
        None,
    )
    if existing is not None:
        merged = existing.quantity + quantity
        if merged > settings.max_item_quantity:
            raise ValidationError(
                f"{menu_item.name} would reach {merged} units; the limit is {settings.max_item_quantity}"
            )
        existing.quantity = merged
        if notes:
            existing.notes = notes
    else:
        cart.items.append(
            CartItem(
                menu_item_id=menu_item_id,
                name=menu_item.name,
                price=menu_item.price,
                quantity=quantity,
                customizations=customizations,
                notes=notes,
                image=menu_item.image,
            )
        )

    recompute_summary(cart, directory or registry.directory)
    _commit(db)
    logger.info("[CART] %s added %s x%s at %s", owner.label, menu_item_id, quantity, menu_item.price)
    return cart


def _cart_line(db: Session, owner: CartOwner, item_id: int) -> tuple[Cart, CartItem]:
    cart = get_cart(db, owner)
    if cart is None:
        raise CartItemNotFoundError(item_id)
    for item in cart.items:
        if item.id == item_id:
            return cart, item
    raise CartItemNotFoundError(item_id)


def update_item_quantity(
    db: Session,
    owner: CartOwner,
    item_id: int,
    quantity: int,
    *,
    directory: CustomerDirectory | None = None,
) -> Cart:
    """Set a line's quantity; zero or less removes the line."""
    if quantity > settings.max_item_quantity:
        raise ValidationError(f"Quantity cannot exceed {settings.max_item_quantity}")
    cart, item = _cart_line(db, owner, item_id)

    if quantity <= 0:
        cart.items.remove(item)
    else:
        item.quantity = quantity

    recompute_summary(cart, directory or registry.directory)
    _commit(db)
    return cart


def remove_item(db: Session, owner: CartOwner, item_id: int, *, directory: CustomerDirectory | None = None) -> Cart:
    cart, item = _cart_line(db, owner, item_id)
    cart.items.remove(item)
    recompute_summary(cart, directory or registry.directory)
    _commit(db)
    return cart


def _reset_coupon(cart: Cart) -> None:
    cart.coupon_code = None
    cart.coupon_discount_type = None
    cart.coupon_discount_value = None
    cart.coupon_applied_discount = None


def clear_cart(db: Session, owner: CartOwner, *, directory: CustomerDirectory | None = None) -> Cart:
    """Drop all lines and the coupon; delivery options are kept."""
    cart = get_or_create_cart(db, owner)
    cart.items.clear()
    _reset_coupon(cart)
    recompute_summary(cart, directory or registry.directory)
    _commit(db)
    return cart


def apply_coupon(db: Session, owner: CartOwner, code: str, *, directory: CustomerDirectory | None = None) -> Cart:
    cart = get_cart(db, owner)
    if cart is None or cart.is_empty:
        raise ValidationError("Cannot apply a coupon to an empty cart")
    terms = lookup_coupon(code or "")
    if terms is None:
        raise ValidationError(f"Invalid coupon code: {code}")

    cart.coupon_code = terms.code
    cart.coupon_discount_type = terms.discount_type
    cart.coupon_discount_value = terms.discount_value
    recompute_summary(cart, directory or registry.directory)
    _commit(db)
    logger.info("[CART] %s applied coupon %s (%s off)", owner.label, terms.code, cart.coupon_discount)
    return cart


def remove_coupon(db: Session, owner: CartOwner, *, directory: CustomerDirectory | None = None) -> Cart:
    cart = get_or_create_cart(db, owner)
    _reset_coupon(cart)
    recompute_summary(cart, directory or registry.directory)
    _commit(db)
    return cart


def set_delivery(
    db: Session,
    owner: CartOwner,
    delivery_type: str,
    *,
    estimated_time: int | None = None,
    address: dict | None = None,
    directory: CustomerDirectory | None = None,
) -> Cart:
    if delivery_type not in DELIVERY_TYPES:
        raise ValidationError(f"Unsupported delivery type: {delivery_type}")
    if estimated_time is not None and estimated_time <= 0:
        raise ValidationError("Estimated time must be positive")

    cart = get_or_create_cart(db, owner)
    cart.delivery_type = delivery_type
    if estimated_time is not None:
        cart.delivery_estimated_time = estimated_time
    if address is not None:
        cart.delivery_address = address
    recompute_summary(cart, directory or registry.directory)
    _commit(db)
    return cart


def checkout(
    db: Session,
    owner: CartOwner,
    contact: CustomerContact,
    payment: PaymentRequest,
    *,
    notes: str | None = None,
    directory: CustomerDirectory | None = None,
    now: datetime | None = None,
) -> Order:
    """Turn the cart into an order, then empty the cart.

    The order is committed before the cart is touched. Clearing the cart is
    cleanup: if it fails the cart keeps its version, so retrying the checkout
    returns the same order.
    """
    now = now or utcnow()
    directory = directory or registry.directory
    cart = get_cart(db, owner, now)
    if cart is None or cart.is_empty:
        raise EmptyCartError()

    level = _membership_level(directory, cart)
    snapshot = CheckoutSnapshot(
        lines=tuple(
            CheckoutLine(
                menu_item_id=item.menu_item_id,
                name=item.name,
                price=item.price,
                quantity=item.quantity,
                customizations=item.customizations,
                notes=item.notes,
            )
            for item in cart.items
        ),
        summary=_summarize(cart, level),
        delivery_type=cart.delivery_type,
        estimated_time=cart.delivery_estimated_time,
        delivery_address=cart.delivery_address,
        membership_level=level,
        coupon=_coupon_terms(cart),
        checkout_key=f"{cart.id}:{cart.version}",
    )
    order = create_from_checkout(
        db,
        snapshot,
        contact,
        payment,
        customer_id=owner.customer_id,
        session_id=owner.session_id,
        notes=notes,
        now=now,
    )

    try:
        cart.items.clear()
        _reset_coupon(cart)
        recompute_summary(cart, directory, now)
        _commit(db)
    except (OrderflowError, SQLAlchemyError):
        db.rollback()
        logger.warning("[CART] Order %s created but cart %s was not cleared", order.order_number, cart.id, exc_info=True)
    return order


def purge_expired_carts(db: Session, now: datetime | None = None) -> int:
    now = now or utcnow()
    expired = db.scalars(select(Cart).where(Cart.expires_at <= now)).all()
    for cart in expired:
        db.delete(cart)
    db.commit()
    if expired:
        logger.info("[CART] Purged %s expired carts", len(expired))
    return len(expired)
