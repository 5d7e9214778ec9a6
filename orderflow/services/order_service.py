"""Order creation from checkout and guarded status changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from orderflow.core.config import settings
from orderflow.core.errors import ConflictError, InvalidTransitionError, OrderNotFoundError, ValidationError
from orderflow.core.permissions import ORDERS_REFUND, ORDERS_TRANSITION, Actor, ensure_permission
from orderflow.models.casso_transaction import CassoTransaction
from orderflow.models.order import DELIVERY_TYPES, PAYMENT_METHODS, Order, OrderItem, OrderTimelineEntry
from orderflow.models.reconcile_task import ReconcileTask
from orderflow.services.order_events import OrderStatusEvent, event_bus, order_snapshot
from orderflow.services.order_status import (
    INVENTORY_TRIGGER_STATUSES,
    ORDER_STATUSES,
    TERMINAL_STATUSES,
    append_timeline,
    can_cancel,
    can_transition,
    initial_status,
    set_status,
)
from orderflow.services.pricing import CartSummary, CouponTerms
from orderflow.utils.time import minutes_between, utcnow

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5


@dataclass(frozen=True)
class CheckoutLine:
    menu_item_id: str
    name: str
    price: int
    quantity: int
    customizations: str = ""
    notes: str = ""


@dataclass(frozen=True)
class CheckoutSnapshot:
    """Everything the order needs from the cart, frozen at checkout time."""

    lines: tuple[CheckoutLine, ...]
    summary: CartSummary
    delivery_type: str = "delivery"
    estimated_time: int = 30
    delivery_address: dict | None = None
    membership_level: str = "bronze"
    coupon: CouponTerms | None = None
    checkout_key: str | None = None


@dataclass(frozen=True)
class CustomerContact:
    name: str
    phone: str
    email: str | None = None


@dataclass(frozen=True)
class PaymentRequest:
    method: str = "none"


@dataclass(frozen=True)
class OrderPricing:
    subtotal: int
    tax: int
    delivery_fee: int
    loyalty_discount: int
    coupon_discount: int
    discount: int
    total: int


def order_pricing(summary: CartSummary) -> OrderPricing:
    """Freeze cart figures so that total == subtotal + tax + fee - discount."""
    gross = summary.subtotal + summary.tax + summary.delivery_fee
    discount = min(summary.loyalty_discount + summary.coupon_discount, gross)
    return OrderPricing(
        subtotal=summary.subtotal,
        tax=summary.tax,
        delivery_fee=summary.delivery_fee,
        loyalty_discount=summary.loyalty_discount,
        coupon_discount=summary.coupon_discount,
        discount=discount,
        total=gross - discount,
    )


def generate_order_number(order_day: date, seq: int) -> str:
    """Human-readable number that survives bank transfer notes (no dashes)."""
    return f"ORD{order_day:%Y%m%d}{seq:06d}"


def _next_order_seq(db: Session, order_day: date) -> int:
    current: int | None = db.scalar(select(func.max(Order.order_seq)).where(Order.order_day == order_day))
    return (current or 0) + 1


def _find_by_checkout_key(db: Session, checkout_key: str | None) -> Order | None:
    if not checkout_key:
        return None
    return db.scalar(select(Order).where(Order.checkout_key == checkout_key))


def _validate_checkout(
    snapshot: CheckoutSnapshot,
    contact: CustomerContact,
    payment: PaymentRequest,
    customer_id: str | None,
    session_id: str | None,
) -> None:
    if bool(customer_id) == bool(session_id):
        raise ValidationError("Exactly one of customer_id or session_id must be provided")
    if not snapshot.lines:
        raise ValidationError("Order must contain at least one item")
    if not contact.name.strip() or not contact.phone.strip():
        raise ValidationError("Customer name and phone are required")
    if payment.method not in PAYMENT_METHODS:
        raise ValidationError(f"Unsupported payment method: {payment.method}")
    if snapshot.delivery_type not in DELIVERY_TYPES:
        raise ValidationError(f"Unsupported delivery type: {snapshot.delivery_type}")
    for line in snapshot.lines:
        if line.quantity < 1 or line.price < 0:
            raise ValidationError(f"Invalid line for {line.name}")


def create_from_checkout(
    db: Session,
    snapshot: CheckoutSnapshot,
    contact: CustomerContact,
    payment: PaymentRequest,
    *,
    customer_id: str | None = None,
    session_id: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Order:
    """Persist an immutable order built from a checkout snapshot.

    Replaying a checkout with the same ``checkout_key`` returns the order
    created the first time.
    """
    _validate_checkout(snapshot, contact, payment, customer_id, session_id)
    existing = _find_by_checkout_key(db, snapshot.checkout_key)
    if existing is not None:
        logger.info("[ORDERS] Checkout %s already produced order %s", snapshot.checkout_key, existing.order_number)
        return existing

    now = now or utcnow()
    pricing = order_pricing(snapshot.summary)
    status = initial_status(snapshot.delivery_type)
    payment_status = "awaiting_payment" if payment.method == "banking" else "pending"
    estimated_time = snapshot.estimated_time or settings.default_estimated_time

    for _ in range(ORDER_NUMBER_ATTEMPTS):
        order_day = now.date()
        seq = _next_order_seq(db, order_day)
        order = Order(
            order_number=generate_order_number(order_day, seq),
            order_day=order_day,
            order_seq=seq,
            checkout_key=snapshot.checkout_key,
            customer_id=customer_id,
            session_id=session_id,
            customer_name=contact.name.strip(),
            customer_phone=contact.phone.strip(),
            customer_email=contact.email,
            subtotal=pricing.subtotal,
            tax=pricing.tax,
            delivery_fee=pricing.delivery_fee,
            loyalty_discount=pricing.loyalty_discount,
            coupon_discount=pricing.coupon_discount,
            discount=pricing.discount,
            total=pricing.total,
            payment_method=payment.method,
            payment_status=payment_status,
            delivery_type=snapshot.delivery_type,
            delivery_estimated_time=estimated_time,
            delivery_address=snapshot.delivery_address,
            status=status,
            membership_level=snapshot.membership_level,
            coupon_code=snapshot.coupon.code if snapshot.coupon else None,
            notes=notes,
            order_date=now,
            estimated_completion_time=now + timedelta(minutes=estimated_time),
        )
        for line in snapshot.lines:
            order.items.append(
                OrderItem(
                    menu_item_id=line.menu_item_id,
                    name=line.name,
                    price=line.price,
                    quantity=line.quantity,
                    customizations=line.customizations,
                    notes=line.notes,
                )
            )
        append_timeline(order, status, now, "Order created", "system")
        db.add(order)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = _find_by_checkout_key(db, snapshot.checkout_key)
            if existing is not None:
                return existing
            logger.warning("[ORDERS] Order number collision on %s seq %s; retrying", order_day, seq)
            continue

        db.refresh(order)
        logger.info("[ORDERS] Created order %s total=%s payment=%s", order.order_number, order.total, order.payment_status)
        event_bus.publish(
            OrderStatusEvent(
                order_id=order.id,
                order_number=order.order_number,
                status=order.status,
                previous_status=None,
                order=order_snapshot(order),
            )
        )
        return order

    raise ConflictError("Could not allocate a unique order number")


def get_order(db: Session, order_id: int) -> Order:
    order: Order | None = db.get(Order, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def get_order_by_number(db: Session, order_number: str) -> Order:
    order: Order | None = db.scalar(select(Order).where(Order.order_number == order_number.upper()))
    if order is None:
        raise OrderNotFoundError(order_number)
    return order


@dataclass(frozen=True)
class OrderPage:
    orders: list[Order]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit


def list_orders(
    db: Session,
    *,
    customer_id: str | None = None,
    session_id: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> OrderPage:
    """Orders placed by one customer or one guest session, newest first."""
    if bool(customer_id) == bool(session_id):
        raise ValidationError("Exactly one of customer_id or session_id must be provided")
    if page < 1 or not 1 <= limit <= 100:
        raise ValidationError("page must be >= 1 and limit between 1 and 100")
    if status is not None and status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status: {status}")

    conditions = [Order.customer_id == customer_id] if customer_id else [Order.session_id == session_id]
    if status is not None:
        conditions.append(Order.status == status)

    total: int = db.scalar(select(func.count()).select_from(Order).where(*conditions)) or 0
    orders = list(
        db.scalars(
            select(Order)
            .where(*conditions)
            .order_by(Order.order_date.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
    )
    return OrderPage(orders=orders, total=total, page=page, limit=limit)


@dataclass(frozen=True)
class OrderTracking:
    """Public progress view; carries no contact or payment details."""

    order_number: str
    status: str
    estimated_time: int
    time_remaining: int
    timeline: list[OrderTimelineEntry]


def track_order(db: Session, order_number: str, now: datetime | None = None) -> OrderTracking:
    order = get_order_by_number(db, order_number)
    remaining = 0
    if order.status not in TERMINAL_STATUSES and order.estimated_completion_time is not None:
        remaining = max(0, minutes_between(now or utcnow(), order.estimated_completion_time))
    return OrderTracking(
        order_number=order.order_number,
        status=order.status,
        estimated_time=order.delivery_estimated_time,
        time_remaining=remaining,
        timeline=list(order.timeline),
    )


def apply_transition(
    db: Session,
    order: Order,
    new_status: str,
    *,
    note: str = "",
    updated_by: str = "system",
    now: datetime | None = None,
) -> OrderStatusEvent:
    """Validate and stage a status change without committing.

    Entering a status that consumes ingredients stages a reconcile task in the
    same unit of work.
    """
    current = order.status
    if new_status not in ORDER_STATUSES:
        raise InvalidTransitionError(current, new_status, "unknown status")
    if not can_transition(current, new_status):
        raise InvalidTransitionError(current, new_status)

    now = now or utcnow()
    set_status(order, new_status, now, note, updated_by)
    if new_status in INVENTORY_TRIGGER_STATUSES:
        db.add(ReconcileTask(order_id=order.id, trigger_status=new_status, next_attempt_at=now))

    return OrderStatusEvent(
        order_id=order.id,
        order_number=order.order_number,
        status=new_status,
        previous_status=current,
        order=order_snapshot(order),
    )


def commit_order_change(db: Session) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConflictError("Order was modified concurrently, retry the request") from exc


def transition(
    db: Session,
    order: Order,
    new_status: str,
    *,
    actor: Actor,
    note: str = "",
    now: datetime | None = None,
) -> Order:
    """Move an order along the transition graph and notify listeners."""
    ensure_permission(actor, ORDERS_TRANSITION)
    event = apply_transition(db, order, new_status, note=note, updated_by=actor.identifier, now=now)
    commit_order_change(db)
    logger.info("[ORDERS] %s: %s -> %s by %s", order.order_number, event.previous_status, new_status, actor.identifier)
    event_bus.publish(event)
    return order


def cancel_order(db: Session, order: Order, *, actor: Actor, reason: str = "") -> Order:
    """Customer-facing cancellation, only before preparation starts."""
    if not can_cancel(order):
        raise InvalidTransitionError(order.status, "cancelled", "use the refund path once preparation has started")

    event = apply_transition(db, order, "cancelled", note=reason or "Cancelled by customer", updated_by=actor.identifier)
    if order.payment_status == "paid":
        order.payment_status = "refunded"

    reconcile_scheduled: int = db.scalar(
        select(func.count()).select_from(ReconcileTask).where(ReconcileTask.order_id == order.id)
    ) or 0
    if reconcile_scheduled:
        logger.warning(
            "[ORDERS] Order %s cancelled after inventory reconciliation was scheduled; stock is not restored",
            order.order_number,
        )
    commit_order_change(db)
    event_bus.publish(event)
    return order


def refund_order(db: Session, order: Order, *, actor: Actor, reason: str = "", now: datetime | None = None) -> Order:
    """Compensating path for orders that can no longer be cancelled."""
    ensure_permission(actor, ORDERS_REFUND)
    if order.status in {"cancelled", "refunded"}:
        raise InvalidTransitionError(order.status, "refunded", "order is already closed")

    previous = order.status
    now = now or utcnow()
    set_status(order, "refunded", now, reason or "Order refunded", actor.identifier)
    if order.payment_status == "paid":
        order.payment_status = "refunded"
        db.execute(
            update(CassoTransaction)
            .where(CassoTransaction.order_id == order.id, CassoTransaction.match_status == "matched")
            .values(match_status="refunded")
        )
    commit_order_change(db)
    logger.info("[ORDERS] %s refunded from %s by %s", order.order_number, previous, actor.identifier)
    event_bus.publish(
        OrderStatusEvent(
            order_id=order.id,
            order_number=order.order_number,
            status="refunded",
            previous_status=previous,
            order=order_snapshot(order),
        )
    )
    return order


def build_payment_instruction(order: Order) -> dict[str, str | int | None]:
    """Bank transfer details; the transfer note carries the order number."""
    transfer_content = f"{order.order_number} {order.customer_phone}"
    return {
        "order_number": order.order_number,
        "bank_name": settings.bank_name or None,
        "account_number": settings.bank_account_number or None,
        "account_name": settings.bank_account_name or None,
        "amount": order.total,
        "transfer_content": transfer_content,
        "instruction": (
            f"Transfer exactly {order.total} VND with the note '{transfer_content}' "
            "so the payment is confirmed automatically."
        ),
    }
