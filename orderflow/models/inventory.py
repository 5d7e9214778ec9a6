"""Inventory models: local stock, stock movements and the decrement ledger."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.db.base import Base

STOCK_STATUSES = ("in-stock", "low-stock", "out-of-stock")
DECREMENT_STATUSES = ("pending", "applied", "failed")


class InventoryItem(Base):
    """Raw ingredient stock, keyed by ingredient name."""

    __tablename__ = "inventory_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    unit: Mapped[str] = mapped_column(String(16), nullable=False)
    minimum_stock: Mapped[float] = mapped_column(Float, nullable=False, default=10.0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="in-stock")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("uq_inventory_items_name", "name", unique=True),)


class StockMovement(Base):
    """Applied stock decrement, unique per idempotency key."""

    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(primary_key=True)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)
    ingredient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity_requested: Mapped[float] = mapped_column(Float, nullable=False)
    quantity_before: Mapped[float] = mapped_column(Float, nullable=False)
    quantity_after: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (Index("uq_stock_movements_key", "idempotency_key", unique=True),)


class InventoryDecrement(Base):
    """Reconciler ledger row for one (order, ingredient) decrement."""

    __tablename__ = "inventory_decrements"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False)
    ingredient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("uq_inventory_decrements_order_ingredient", "order_id", "ingredient_name", unique=True),
    )
