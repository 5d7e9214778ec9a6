"""Reconcile inbound bank transfers against orders awaiting bank payment."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderflow.core.config import settings
from orderflow.core.errors import AlreadyMatchedError, ConflictError, TransactionNotFoundError, ValidationError
from orderflow.core.permissions import PAYMENTS_RECONCILE, Actor, ensure_permission
from orderflow.models.casso_transaction import MATCH_STATUSES, CassoTransaction
from orderflow.models.order import Order
from orderflow.services.casso_service import IncomingTransaction, extract_order_number, parse_payload
from orderflow.services.order_events import OrderStatusEvent, event_bus
from orderflow.services.order_service import apply_transition, commit_order_change, get_order_by_number
from orderflow.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    casso_id: str
    status: str
    order_number: str | None = None
    message: str = ""


def get_transaction(db: Session, casso_id: str) -> CassoTransaction:
    row: CassoTransaction | None = db.scalar(select(CassoTransaction).where(CassoTransaction.casso_id == casso_id))
    if row is None:
        raise TransactionNotFoundError(casso_id)
    return row


def _find(db: Session, casso_id: str) -> CassoTransaction | None:
    return db.scalar(select(CassoTransaction).where(CassoTransaction.casso_id == casso_id))


def _redelivered(db: Session, row: CassoTransaction) -> MatchResult:
    row.duplicate_deliveries += 1
    db.commit()
    logger.info("[CASSO] Transaction %s delivered again (%s repeats)", row.casso_id, row.duplicate_deliveries)
    return MatchResult(row.casso_id, "duplicate", row.order_number, "Transaction already received")


def _record(db: Session, txn: IncomingTransaction) -> CassoTransaction | None:
    """Persist the transaction; None when another delivery stored it first."""
    row = CassoTransaction(
        casso_id=txn.casso_id,
        tid=txn.tid,
        amount=txn.amount,
        description=txn.description,
        when=txn.when,
        bank_account_id=txn.bank_account_id,
        bank_sub_acc_id=txn.bank_sub_acc_id,
        cusum_balance=txn.cusum_balance,
        raw_data=txn.raw,
        match_status="pending",
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return None
    return row


def _close_unmatched(db: Session, row: CassoTransaction, note: str, *, status: str = "unmatched", order_number: str | None = None) -> MatchResult:
    row.match_status = status
    row.match_note = note
    row.order_number = order_number
    db.commit()
    logger.warning("[CASSO] Transaction %s %s: %s", row.casso_id, status, note)
    return MatchResult(row.casso_id, status, order_number, note)


def _settle(db: Session, row: CassoTransaction, order: Order, *, processed_by: str, note: str, now: datetime) -> bool:
    """Claim the order's payment and mark the transaction matched in one commit.

    Returns False when another transaction claimed the order first.
    """
    claimed = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.payment_status == "awaiting_payment")
        .values(
            payment_status="paid",
            payment_transaction_id=row.casso_id,
            paid_at=row.when,
            version=Order.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        db.rollback()
        return False
    db.refresh(order)

    event: OrderStatusEvent | None = None
    if order.status == "pending":
        event = apply_transition(db, order, "confirmed", note="Payment confirmed by bank transfer", updated_by="system", now=now)

    row.match_status = "matched"
    row.match_note = note
    row.order_id = order.id
    row.order_number = order.order_number
    row.matched_at = now
    row.processed = True
    row.processed_at = now
    row.processed_by = processed_by
    try:
        commit_order_change(db)
    except ConflictError:
        logger.warning("[CASSO] Order %s changed while settling %s", order.order_number, row.casso_id)
        return False

    logger.info("[CASSO] Transaction %s paid order %s (%s VND)", row.casso_id, order.order_number, row.amount)
    if event is not None:
        event_bus.publish(event)
    return True


def _awaiting_with_amount(db: Session, amount: int) -> list[Order]:
    return list(
        db.scalars(
            select(Order)
            .where(Order.payment_status == "awaiting_payment", Order.total == amount)
            .order_by(Order.order_date.asc(), Order.id.asc())
        ).all()
    )


def _match(db: Session, row: CassoTransaction, now: datetime) -> MatchResult:
    token = extract_order_number(row.description)
    for _ in range(settings.payment_claim_attempts):
        candidates = _awaiting_with_amount(db, row.amount)
        if token:
            named = [order for order in candidates if order.order_number == token]
            if not named:
                target: Order | None = db.scalar(select(Order).where(Order.order_number == token))
                if target is not None and target.payment_status == "paid":
                    return _close_unmatched(
                        db, row, f"Order {token} is already paid", status="duplicate", order_number=token
                    )
                return _close_unmatched(db, row, f"Order {token} is not awaiting a payment of {row.amount} VND")
            candidates = named
        elif len(candidates) > 1:
            return _close_unmatched(
                db,
                row,
                f"{len(candidates)} orders await {row.amount} VND and the transfer note names none of them",
            )

        if not candidates:
            return _close_unmatched(db, row, f"No order is awaiting {row.amount} VND")

        order = candidates[0]
        how = "order number and amount" if token else "unique amount"
        if _settle(db, row, order, processed_by="system", note=f"Matched by {how}", now=now):
            return MatchResult(row.casso_id, "matched", order.order_number, f"Matched by {how}")
        logger.info("[CASSO] Lost claim on order %s for %s; searching again", order.order_number, row.casso_id)

    return _close_unmatched(db, row, "Every candidate order was claimed by another transaction")


def ingest(db: Session, payload: dict[str, Any] | list[Any], now: datetime | None = None) -> list[MatchResult]:
    """Store and match every transaction of a webhook delivery.

    Redelivered transactions are acknowledged as duplicates and never matched
    twice.
    """
    results: list[MatchResult] = []
    for txn in parse_payload(payload):
        existing = _find(db, txn.casso_id)
        if existing is not None:
            results.append(_redelivered(db, existing))
            continue
        row = _record(db, txn)
        if row is None:
            results.append(_redelivered(db, get_transaction(db, txn.casso_id)))
            continue
        results.append(_match(db, row, now or utcnow()))
    return results


def find_unmatched(db: Session) -> list[CassoTransaction]:
    """Transactions an operator still has to look at, newest first."""
    return list(
        db.scalars(
            select(CassoTransaction)
            .where(CassoTransaction.match_status.in_(("unmatched", "duplicate")), CassoTransaction.processed.is_(False))
            .order_by(CassoTransaction.when.desc(), CassoTransaction.id.desc())
        ).all()
    )


def manual_match(db: Session, casso_id: str, order_number: str, *, actor: Actor, now: datetime | None = None) -> CassoTransaction:
    ensure_permission(actor, PAYMENTS_RECONCILE)
    row = get_transaction(db, casso_id)
    if row.match_status in {"matched", "refunded"}:
        raise AlreadyMatchedError(casso_id, row.order_number)

    order = get_order_by_number(db, order_number)
    if order.payment_status != "awaiting_payment":
        raise ConflictError(f"Order {order.order_number} is not awaiting payment (payment is {order.payment_status})")
    if order.total != row.amount:
        logger.warning(
            "[CASSO] Manual match of %s (%s VND) to %s (%s VND) by %s",
            casso_id,
            row.amount,
            order.order_number,
            order.total,
            actor.identifier,
        )

    if not _settle(db, row, order, processed_by=actor.identifier, note=f"Matched manually by {actor.identifier}", now=now or utcnow()):
        raise ConflictError(f"Order {order_number} was paid by another transaction")
    return row


@dataclass(frozen=True)
class TransactionPage:
    transactions: list[CassoTransaction]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit


def list_transactions(
    db: Session,
    *,
    match_status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> TransactionPage:
    """Received transfers, newest first, optionally narrowed by match status and time."""
    if page < 1 or not 1 <= limit <= 100:
        raise ValidationError("page must be >= 1 and limit between 1 and 100")
    if match_status is not None and match_status not in MATCH_STATUSES:
        raise ValidationError(f"Unknown match status: {match_status}")

    conditions = []
    if match_status is not None:
        conditions.append(CassoTransaction.match_status == match_status)
    if start is not None:
        conditions.append(CassoTransaction.when >= as_utc(start))
    if end is not None:
        conditions.append(CassoTransaction.when <= as_utc(end))

    total: int = db.scalar(select(func.count()).select_from(CassoTransaction).where(*conditions)) or 0
    rows = list(
        db.scalars(
            select(CassoTransaction)
            .where(*conditions)
            .order_by(CassoTransaction.when.desc(), CassoTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
    )
    return TransactionPage(transactions=rows, total=total, page=page, limit=limit)


@dataclass(frozen=True)
class PaymentStatus:
    order: Order
    transaction: CassoTransaction | None

    @property
    def is_paid(self) -> bool:
        return self.order.payment_status == "paid"


def payment_status(db: Session, order_number: str) -> PaymentStatus:
    """Payment state of an order and the transfer that settled it, if any."""
    order = get_order_by_number(db, order_number)
    transaction: CassoTransaction | None = db.scalar(
        select(CassoTransaction)
        .where(CassoTransaction.order_id == order.id, CassoTransaction.match_status.in_(("matched", "refunded")))
        .order_by(CassoTransaction.matched_at.desc())
        .limit(1)
    )
    return PaymentStatus(order=order, transaction=transaction)
