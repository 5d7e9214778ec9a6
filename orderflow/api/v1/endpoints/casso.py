"""Casso bank webhook and operator reconciliation endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Query
from sqlalchemy.orm import Session

from orderflow.api.deps import get_actor
from orderflow.core.permissions import PAYMENTS_RECONCILE, Actor, ensure_permission
from orderflow.db.session import get_db
from orderflow.schemas.casso import (
    CassoTransactionResponse,
    ManualMatchRequest,
    MatchResultResponse,
    PaymentStatusResponse,
    SettlingTransactionResponse,
    TransactionListResponse,
    WebhookResponse,
)
from orderflow.schemas.order import PaginationResponse
from orderflow.services import payment_matcher
from orderflow.services.casso_service import verify_webhook_token

router: APIRouter = APIRouter()


@router.post("/webhook", response_model=WebhookResponse)
def webhook(
    payload: dict[str, Any] | list[Any] = Body(...),
    secure_token: str | None = Header(default=None),
    x_casso_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> WebhookResponse:
    """Store and match incoming transfers; redeliveries are acknowledged as duplicates."""
    verify_webhook_token(secure_token or x_casso_signature)
    results = payment_matcher.ingest(db, payload)
    return WebhookResponse(
        results=[
            MatchResultResponse(
                casso_id=result.casso_id,
                status=result.status,
                order_number=result.order_number,
                message=result.message,
            )
            for result in results
        ]
    )


@router.get("/unmatched", response_model=list[CassoTransactionResponse])
def list_unmatched(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> list[CassoTransactionResponse]:
    ensure_permission(actor, PAYMENTS_RECONCILE)
    return [CassoTransactionResponse.model_validate(row) for row in payment_matcher.find_unmatched(db)]


@router.post("/manual-match", response_model=CassoTransactionResponse)
def manual_match(
    payload: ManualMatchRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> CassoTransactionResponse:
    row = payment_matcher.manual_match(db, payload.casso_id, payload.order_number, actor=actor)
    return CassoTransactionResponse.model_validate(row)


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    match_status: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> TransactionListResponse:
    ensure_permission(actor, PAYMENTS_RECONCILE)
    result = payment_matcher.list_transactions(
        db,
        match_status=match_status,
        start=start_date,
        end=end_date,
        page=page,
        limit=limit,
    )
    return TransactionListResponse(
        transactions=[CassoTransactionResponse.model_validate(row) for row in result.transactions],
        pagination=PaginationResponse(page=result.page, limit=result.limit, total=result.total, pages=result.pages),
    )


@router.get("/payment-status/{order_number}", response_model=PaymentStatusResponse)
def payment_status(order_number: str, db: Session = Depends(get_db)) -> PaymentStatusResponse:
    """Polled by checkout pages after a transfer; exposes no contact details."""
    status = payment_matcher.payment_status(db, order_number)
    order = status.order
    return PaymentStatusResponse(
        order_number=order.order_number,
        order_status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        amount=order.total,
        paid_at=order.paid_at,
        is_paid=status.is_paid,
        transaction=SettlingTransactionResponse.model_validate(status.transaction) if status.transaction else None,
    )
