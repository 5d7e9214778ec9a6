"""Cart API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CartItemAdd(BaseModel):
    """Line to add; name and price are taken from the menu, never from the caller."""

    menu_item_id: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1)
    customizations: str = Field(default="", max_length=500)
    notes: str = Field(default="", max_length=300)


class CartItemQuantityUpdate(BaseModel):
    quantity: int


class CouponApply(BaseModel):
    code: str = Field(min_length=1)


class DeliveryUpdate(BaseModel):
    type: str
    estimated_time: int | None = Field(default=None, gt=0)
    address: dict | None = None


class CheckoutRequest(BaseModel):
    customer_name: str = Field(min_length=1)
    customer_phone: str = Field(min_length=1)
    customer_email: str | None = None
    payment_method: str = "none"
    notes: str | None = None


class CartItemResponse(BaseModel):
    id: int
    menu_item_id: str
    name: str
    price: int
    quantity: int
    customizations: str
    notes: str
    image: str
    subtotal: int

    model_config = ConfigDict(from_attributes=True)


class AppliedCouponResponse(BaseModel):
    code: str
    discount_type: str
    discount_value: int
    applied_discount: int


class DeliveryResponse(BaseModel):
    type: str
    fee: int
    estimated_time: int
    address: dict | None


class CartSummaryResponse(BaseModel):
    total_items: int
    subtotal: int
    tax: int
    delivery_fee: int
    loyalty_discount: int
    coupon_discount: int
    discount: int
    total: int


class CartResponse(BaseModel):
    """Serialized cart with its derived summary."""

    id: int
    customer_id: str | None
    session_id: str | None
    items: list[CartItemResponse]
    applied_coupon: AppliedCouponResponse | None
    delivery: DeliveryResponse
    summary: CartSummaryResponse
    membership_level: str
    expires_at: datetime
