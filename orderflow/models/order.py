"""Order models: immutable snapshot, status and audit timeline."""

from datetime import date, datetime, timezone

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.db.base import Base

PAYMENT_METHODS = ("none", "cash", "card", "momo", "banking", "zalopay")
PAYMENT_STATUSES = ("pending", "awaiting_payment", "paid", "failed", "refunded")
DELIVERY_TYPES = ("delivery", "pickup", "dine_in")


class Order(Base):
    """Order created from a checked-out cart."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False)
    order_day: Mapped[date] = mapped_column(Date, nullable=False, default=lambda: datetime.now(timezone.utc).date())
    order_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    checkout_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    session_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    tax: Mapped[int] = mapped_column(Integer, nullable=False)
    delivery_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    loyalty_discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coupon_discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total: Mapped[int] = mapped_column(Integer, nullable=False)

    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    payment_status: Mapped[str] = mapped_column(String(24), nullable=False, default="pending", index=True)
    payment_transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    delivery_type: Mapped[str] = mapped_column(String(16), nullable=False, default="delivery")
    delivery_estimated_time: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    delivery_address: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending", index=True)
    membership_level: Mapped[str] = mapped_column(String(16), nullable=False, default="bronze")
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    order_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    estimated_completion_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_completion_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_time: Mapped[int | None] = mapped_column(Integer, nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    timeline: Mapped[list["OrderTimelineEntry"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderTimelineEntry.id",
    )

    __table_args__ = (
        Index("uq_orders_order_number", "order_number", unique=True),
        Index("uq_orders_order_day_seq", "order_day", "order_seq", unique=True),
        Index("uq_orders_checkout_key", "checkout_key", unique=True),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_delivered(self) -> bool:
        return self.status in {"delivered", "completed"}


class OrderItem(Base):
    """Snapshot of an order line at checkout time."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    customizations: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    order: Mapped[Order] = relationship(back_populates="items")


class OrderTimelineEntry(Base):
    """Append-only status history row."""

    __tablename__ = "order_timeline"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    updated_by: Mapped[str] = mapped_column(String(128), nullable=False, default="system")

    order: Mapped[Order] = relationship(back_populates="timeline")
