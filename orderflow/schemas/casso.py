"""Bank transfer and reconciliation schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from orderflow.schemas.order import PaginationResponse


class MatchResultResponse(BaseModel):
    casso_id: str
    status: str
    order_number: str | None
    message: str


class WebhookResponse(BaseModel):
    success: bool = True
    results: list[MatchResultResponse]


class ManualMatchRequest(BaseModel):
    casso_id: str = Field(min_length=1)
    order_number: str = Field(min_length=1)


class CassoTransactionResponse(BaseModel):
    casso_id: str
    tid: str | None
    amount: int
    description: str
    when: datetime
    match_status: str
    match_note: str | None
    order_number: str | None
    matched_at: datetime | None
    processed: bool
    processed_by: str | None
    duplicate_deliveries: int

    model_config = ConfigDict(from_attributes=True)


class ReconcileTaskResponse(BaseModel):
    id: int
    order_id: int
    trigger_status: str
    status: str
    attempts: int
    next_attempt_at: datetime
    last_error: str | None
    completed_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class WorkerRunResponse(BaseModel):
    processed: int
    done: int
    retried: int
    dead: int


class TransactionListResponse(BaseModel):
    transactions: list[CassoTransactionResponse]
    pagination: PaginationResponse


class SettlingTransactionResponse(BaseModel):
    casso_id: str
    amount: int
    when: datetime
    matched_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class PaymentStatusResponse(BaseModel):
    order_number: str
    order_status: str
    payment_method: str
    payment_status: str
    amount: int
    paid_at: datetime | None
    is_paid: bool
    transaction: SettlingTransactionResponse | None
