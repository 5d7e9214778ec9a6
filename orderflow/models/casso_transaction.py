"""Inbound bank transaction delivered by the Casso webhook."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.db.base import Base

MATCH_STATUSES = ("pending", "matched", "unmatched", "duplicate", "refunded")


class CassoTransaction(Base):
    """One bank transfer notification; ``casso_id`` is the dedup key."""

    __tablename__ = "casso_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    casso_id: Mapped[str] = mapped_column(String(64), nullable=False)
    tid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    when: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    bank_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bank_sub_acc_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cusum_balance: Mapped[int | None] = mapped_column(Integer, nullable=True)
    raw_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    order_id: Mapped[int | None] = mapped_column(ForeignKey("orders.id"), nullable=True, index=True)
    order_number: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    match_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    match_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    duplicate_deliveries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("uq_casso_transactions_casso_id", "casso_id", unique=True),
        Index("ix_casso_transactions_match_processed", "match_status", "processed"),
    )
