"""Casso webhook parsing: payload shape, transfer-note tokens and the secure token."""

from __future__ import annotations

import hmac
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from orderflow.core.config import settings
from orderflow.core.errors import ValidationError, WebhookAuthError
from orderflow.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)

# Banks strip or keep dashes and sometimes prefix "DAT MON"; all map to ORDyyyymmddNNNNNN.
ORDER_NUMBER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"ORD(\d{8})(\d{6})", re.IGNORECASE),
    re.compile(r"ORD-(\d{8})-(\d{6})", re.IGNORECASE),
    re.compile(r"ORD\s+(\d{8})\s*(\d{6})", re.IGNORECASE),
)


@dataclass(frozen=True)
class IncomingTransaction:
    casso_id: str
    amount: int
    description: str
    when: datetime
    tid: str | None = None
    bank_account_id: str | None = None
    bank_sub_acc_id: str | None = None
    cusum_balance: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def extract_order_number(description: str | None) -> str | None:
    """Return the order number named in a transfer note, normalised, or None."""
    if not description:
        return None
    for pattern in ORDER_NUMBER_PATTERNS:
        match = pattern.search(description)
        if match:
            day, seq = match.groups()
            return f"ORD{day}{seq}"
    return None


def verify_webhook_token(provided: str | None) -> None:
    """Reject the call unless it carries the configured secure token.

    With no token configured every call is accepted and a warning is logged.
    """
    expected = settings.casso_webhook_token
    if not expected:
        logger.warning("[CASSO] No CASSO_WEBHOOK_TOKEN configured; webhook is not secured")
        return
    if not provided or not hmac.compare_digest(provided, expected):
        logger.error("[CASSO] Rejected webhook with invalid secure token")
        raise WebhookAuthError()


def _parse_when(value: Any) -> datetime:
    if not value:
        return utcnow()
    try:
        return as_utc(datetime.fromisoformat(str(value)))
    except ValueError as exc:
        raise ValidationError(f"Invalid transaction time: {value}") from exc


def _optional_str(value: Any) -> str | None:
    return None if value is None or value == "" else str(value)


def parse_transaction(raw: dict[str, Any]) -> IncomingTransaction:
    if raw.get("id") in (None, ""):
        raise ValidationError("Transaction id is required")
    try:
        amount = int(raw.get("amount"))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid amount for transaction {raw.get('id')}") from exc
    cusum = raw.get("cusum_balance")
    return IncomingTransaction(
        casso_id=str(raw["id"]),
        amount=amount,
        description=str(raw.get("description") or ""),
        when=_parse_when(raw.get("when")),
        tid=_optional_str(raw.get("tid")),
        bank_account_id=_optional_str(raw.get("bank_account_id")),
        bank_sub_acc_id=_optional_str(raw.get("bank_sub_acc_id")),
        cusum_balance=int(cusum) if cusum not in (None, "") else None,
        raw=raw,
    )


def parse_payload(payload: dict[str, Any] | list[Any]) -> list[IncomingTransaction]:
    """Accept a single transaction or Casso's ``{"error": 0, "data": [...]}`` envelope."""
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload.get("data"), list):
        rows = payload["data"]
    elif isinstance(payload.get("data"), dict):
        rows = [payload["data"]]
    else:
        rows = [payload]
    if not all(isinstance(row, dict) for row in rows):
        raise ValidationError("Webhook transactions must be objects")
    return [parse_transaction(row) for row in rows]
