"""Order API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class StatusUpdateRequest(BaseModel):
    status: str
    note: str = ""


class CancelRequest(BaseModel):
    reason: str = ""


class RefundRequest(BaseModel):
    reason: str = ""


class OrderItemResponse(BaseModel):
    menu_item_id: str
    name: str
    price: int
    quantity: int
    customizations: str
    notes: str

    model_config = ConfigDict(from_attributes=True)


class TimelineEntryResponse(BaseModel):
    status: str
    timestamp: datetime
    note: str
    updated_by: str

    model_config = ConfigDict(from_attributes=True)


class PricingResponse(BaseModel):
    subtotal: int
    tax: int
    delivery_fee: int
    loyalty_discount: int
    coupon_discount: int
    discount: int
    total: int


class PaymentResponse(BaseModel):
    method: str
    status: str
    transaction_id: str | None
    paid_at: datetime | None


class CustomerInfoResponse(BaseModel):
    name: str
    phone: str
    email: str | None


class DeliveryInfoResponse(BaseModel):
    type: str
    estimated_time: int
    fee: int
    address: dict | None


class OrderResponse(BaseModel):
    """Serialized order with pricing, payment and timeline."""

    id: int
    order_number: str
    customer_id: str | None
    session_id: str | None
    customer_info: CustomerInfoResponse
    items: list[OrderItemResponse]
    pricing: PricingResponse
    payment: PaymentResponse
    delivery: DeliveryInfoResponse
    status: str
    timeline: list[TimelineEntryResponse]
    membership_level: str
    coupon_code: str | None
    notes: str | None
    order_date: datetime
    estimated_completion_time: datetime | None
    actual_completion_time: datetime | None
    total_time: int | None


class PaymentInstructionResponse(BaseModel):
    order_number: str
    bank_name: str | None
    account_number: str | None
    account_name: str | None
    amount: int
    transfer_content: str
    instruction: str


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    pagination: PaginationResponse


class OrderTrackingResponse(BaseModel):
    """Public tracking view; no contact or payment details."""

    order_number: str
    status: str
    estimated_time: int
    time_remaining: int
    timeline: list[TimelineEntryResponse]
