"""Order endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from orderflow.api.deps import get_actor, get_cart_owner, get_session_id
from orderflow.core.errors import OrderNotFoundError
from orderflow.core.permissions import ORDERS_TRANSITION, Actor
from orderflow.db.session import get_db
from orderflow.models.order import Order
from orderflow.schemas.order import (
    CancelRequest,
    CustomerInfoResponse,
    DeliveryInfoResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    OrderTrackingResponse,
    PaginationResponse,
    PaymentInstructionResponse,
    PaymentResponse,
    PricingResponse,
    RefundRequest,
    StatusUpdateRequest,
    TimelineEntryResponse,
)
from orderflow.services import order_service
from orderflow.services.cart_service import CartOwner

router: APIRouter = APIRouter()


def serialize_order(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        customer_id=order.customer_id,
        session_id=order.session_id,
        customer_info=CustomerInfoResponse(name=order.customer_name, phone=order.customer_phone, email=order.customer_email),
        items=[OrderItemResponse.model_validate(item) for item in order.items],
        pricing=PricingResponse(
            subtotal=order.subtotal,
            tax=order.tax,
            delivery_fee=order.delivery_fee,
            loyalty_discount=order.loyalty_discount,
            coupon_discount=order.coupon_discount,
            discount=order.discount,
            total=order.total,
        ),
        payment=PaymentResponse(
            method=order.payment_method,
            status=order.payment_status,
            transaction_id=order.payment_transaction_id,
            paid_at=order.paid_at,
        ),
        delivery=DeliveryInfoResponse(
            type=order.delivery_type,
            estimated_time=order.delivery_estimated_time,
            fee=order.delivery_fee,
            address=order.delivery_address,
        ),
        status=order.status,
        timeline=[TimelineEntryResponse.model_validate(entry) for entry in order.timeline],
        membership_level=order.membership_level,
        coupon_code=order.coupon_code,
        notes=order.notes,
        order_date=order.order_date,
        estimated_completion_time=order.estimated_completion_time,
        actual_completion_time=order.actual_completion_time,
        total_time=order.total_time,
    )


def _visible_order(order: Order, actor: Actor, session_id: str | None = None) -> Order:
    """Customers only see their own orders, guests those of their session; staff see all."""
    if actor.role != "customer":
        return order
    if order.customer_id is not None and order.customer_id == actor.identifier:
        return order
    if order.session_id is not None and order.session_id == session_id:
        return order
    raise OrderNotFoundError(order.id)


@router.get("", response_model=OrderListResponse)
def list_orders(
    status: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
) -> OrderListResponse:
    """Orders of the calling customer or guest session, newest first."""
    result = order_service.list_orders(
        db,
        customer_id=owner.customer_id,
        session_id=owner.session_id,
        status=status,
        page=page,
        limit=limit,
    )
    return OrderListResponse(
        orders=[serialize_order(order) for order in result.orders],
        pagination=PaginationResponse(page=result.page, limit=result.limit, total=result.total, pages=result.pages),
    )


@router.get("/track/{order_number}", response_model=OrderTrackingResponse)
def track_order(order_number: str, db: Session = Depends(get_db)) -> OrderTrackingResponse:
    """Public progress lookup by order number."""
    tracking = order_service.track_order(db, order_number)
    return OrderTrackingResponse(
        order_number=tracking.order_number,
        status=tracking.status,
        estimated_time=tracking.estimated_time,
        time_remaining=tracking.time_remaining,
        timeline=[TimelineEntryResponse.model_validate(entry) for entry in tracking.timeline],
    )


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    session_id: str | None = Depends(get_session_id),
) -> OrderResponse:
    return serialize_order(_visible_order(order_service.get_order(db, order_id), actor, session_id))


@router.get("/number/{order_number}", response_model=OrderResponse)
def get_order_by_number(
    order_number: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    session_id: str | None = Depends(get_session_id),
) -> OrderResponse:
    return serialize_order(_visible_order(order_service.get_order_by_number(db, order_number), actor, session_id))


@router.patch("/{order_id}/status", response_model=OrderResponse)
def update_status(
    order_id: int,
    payload: StatusUpdateRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> OrderResponse:
    """Move an order along the transition graph."""
    order = order_service.get_order(db, order_id)
    order_service.transition(db, order, payload.status, actor=actor, note=payload.note)
    return serialize_order(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: int,
    payload: CancelRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    session_id: str | None = Depends(get_session_id),
) -> OrderResponse:
    order = order_service.get_order(db, order_id)
    if not actor.can(ORDERS_TRANSITION):
        _visible_order(order, actor, session_id)
    order_service.cancel_order(db, order, actor=actor, reason=payload.reason)
    return serialize_order(order)


@router.post("/{order_id}/refund", response_model=OrderResponse)
def refund_order(
    order_id: int,
    payload: RefundRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> OrderResponse:
    order = order_service.get_order(db, order_id)
    order_service.refund_order(db, order, actor=actor, reason=payload.reason)
    return serialize_order(order)


@router.get("/{order_id}/payment-instruction", response_model=PaymentInstructionResponse)
def payment_instruction(
    order_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    session_id: str | None = Depends(get_session_id),
) -> PaymentInstructionResponse:
    order = _visible_order(order_service.get_order(db, order_id), actor, session_id)
    return PaymentInstructionResponse(**order_service.build_payment_instruction(order))
