"""Schema exports."""

from orderflow.schemas.cart import CartItemAdd, CartResponse, CheckoutRequest, CouponApply, DeliveryUpdate
from orderflow.schemas.casso import (
    CassoTransactionResponse,
    ManualMatchRequest,
    PaymentStatusResponse,
    TransactionListResponse,
    WebhookResponse,
)
from orderflow.schemas.inventory import AvailabilityResponse, CheckStockRequest, ReduceStockRequest, ReductionResponse
from orderflow.schemas.order import (
    OrderListResponse,
    OrderResponse,
    OrderTrackingResponse,
    PaymentInstructionResponse,
    StatusUpdateRequest,
)

__all__ = [
    "CartItemAdd",
    "CartResponse",
    "CheckoutRequest",
    "CouponApply",
    "DeliveryUpdate",
    "CassoTransactionResponse",
    "ManualMatchRequest",
    "PaymentStatusResponse",
    "TransactionListResponse",
    "WebhookResponse",
    "AvailabilityResponse",
    "CheckStockRequest",
    "ReduceStockRequest",
    "ReductionResponse",
    "OrderListResponse",
    "OrderResponse",
    "OrderTrackingResponse",
    "PaymentInstructionResponse",
    "StatusUpdateRequest",
]
