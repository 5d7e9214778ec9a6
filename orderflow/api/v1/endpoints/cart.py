"""Cart endpoints for the calling customer or guest session."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from orderflow.api.deps import get_cart_owner, get_customer_directory, get_menu_catalog
from orderflow.api.v1.endpoints.orders import serialize_order
from orderflow.db.session import get_db
from orderflow.models.cart import Cart
from orderflow.schemas.cart import (
    AppliedCouponResponse,
    CartItemAdd,
    CartItemQuantityUpdate,
    CartItemResponse,
    CartResponse,
    CartSummaryResponse,
    CheckoutRequest,
    CouponApply,
    DeliveryResponse,
    DeliveryUpdate,
)
from orderflow.schemas.order import OrderResponse
from orderflow.services import cart_service
from orderflow.services.cart_service import CartOwner
from orderflow.services.customer_directory import CustomerDirectory
from orderflow.services.menu_catalog import MenuCatalog
from orderflow.services.order_service import CustomerContact, PaymentRequest

router: APIRouter = APIRouter()


def _serialize_cart(cart: Cart) -> CartResponse:
    coupon: AppliedCouponResponse | None = None
    if cart.coupon_code and cart.coupon_discount_type and cart.coupon_discount_value is not None:
        coupon = AppliedCouponResponse(
            code=cart.coupon_code,
            discount_type=cart.coupon_discount_type,
            discount_value=cart.coupon_discount_value,
            applied_discount=cart.coupon_applied_discount or 0,
        )
    return CartResponse(
        id=cart.id,
        customer_id=cart.customer_id,
        session_id=cart.session_id,
        items=[CartItemResponse.model_validate(item) for item in cart.items],
        applied_coupon=coupon,
        delivery=DeliveryResponse(
            type=cart.delivery_type,
            fee=cart.delivery_fee,
            estimated_time=cart.delivery_estimated_time,
            address=cart.delivery_address,
        ),
        summary=CartSummaryResponse(
            total_items=cart.total_items,
            subtotal=cart.subtotal,
            tax=cart.tax,
            delivery_fee=cart.delivery_fee,
            loyalty_discount=cart.loyalty_discount,
            coupon_discount=cart.coupon_discount,
            discount=cart.discount,
            total=cart.total,
        ),
        membership_level=cart.membership_level,
        expires_at=cart.expires_at,
    )


@router.get("", response_model=CartResponse)
def get_cart(owner: CartOwner = Depends(get_cart_owner), db: Session = Depends(get_db)) -> CartResponse:
    return _serialize_cart(cart_service.get_or_create_cart(db, owner))


@router.post("/items", response_model=CartResponse)
def add_item(
    payload: CartItemAdd,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
    directory: CustomerDirectory = Depends(get_customer_directory),
    catalog: MenuCatalog = Depends(get_menu_catalog),
) -> CartResponse:
    """Add a menu item; its name and price are read from the menu."""
    cart = cart_service.add_item(db, owner, catalog=catalog, directory=directory, **payload.model_dump())
    return _serialize_cart(cart)


@router.put("/items/{item_id}", response_model=CartResponse)
def update_item(
    item_id: int,
    payload: CartItemQuantityUpdate,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
    directory: CustomerDirectory = Depends(get_customer_directory),
) -> CartResponse:
    """Set a line's quantity; zero removes the line."""
    cart = cart_service.update_item_quantity(db, owner, item_id, payload.quantity, directory=directory)
    return _serialize_cart(cart)


@router.delete("/items/{item_id}", response_model=CartResponse)
def remove_item(
    item_id: int,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
    directory: CustomerDirectory = Depends(get_customer_directory),
) -> CartResponse:
    return _serialize_cart(cart_service.remove_item(db, owner, item_id, directory=directory))


@router.delete("", response_model=CartResponse)
def clear_cart(
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
    directory: CustomerDirectory = Depends(get_customer_directory),
) -> CartResponse:
    return _serialize_cart(cart_service.clear_cart(db, owner, directory=directory))


@router.post("/coupon", response_model=CartResponse)
def apply_coupon(
    payload: CouponApply,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
    directory: CustomerDirectory = Depends(get_customer_directory),
) -> CartResponse:
    return _serialize_cart(cart_service.apply_coupon(db, owner, payload.code, directory=directory))


@router.delete("/coupon", response_model=CartResponse)
def remove_coupon(
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
    directory: CustomerDirectory = Depends(get_customer_directory),
) -> CartResponse:
    return _serialize_cart(cart_service.remove_coupon(db, owner, directory=directory))


@router.put("/delivery", response_model=CartResponse)
def set_delivery(
    payload: DeliveryUpdate,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
    directory: CustomerDirectory = Depends(get_customer_directory),
) -> CartResponse:
    cart = cart_service.set_delivery(
        db,
        owner,
        payload.type,
        estimated_time=payload.estimated_time,
        address=payload.address,
        directory=directory,
    )
    return _serialize_cart(cart)


@router.post("/checkout", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def checkout(
    payload: CheckoutRequest,
    owner: CartOwner = Depends(get_cart_owner),
    db: Session = Depends(get_db),
    directory: CustomerDirectory = Depends(get_customer_directory),
) -> OrderResponse:
    """Create an order from the cart and empty it."""
    order = cart_service.checkout(
        db,
        owner,
        CustomerContact(name=payload.customer_name, phone=payload.customer_phone, email=payload.customer_email),
        PaymentRequest(method=payload.payment_method),
        notes=payload.notes,
        directory=directory,
    )
    return serialize_order(order)
