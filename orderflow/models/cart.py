"""Cart ORM models."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.db.base import Base


def _default_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=24)


class Cart(Base):
    """Mutable cart owned by one customer or one guest session, with a derived summary."""

    __tablename__ = "carts"

    id: Mapped[int] = mapped_column(primary_key=True)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True, index=True)
    session_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    coupon_discount_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    coupon_discount_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    coupon_applied_discount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    delivery_type: Mapped[str] = mapped_column(String(16), nullable=False, default="delivery")
    delivery_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delivery_estimated_time: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    delivery_address: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    membership_level: Mapped[str] = mapped_column(String(16), nullable=False, default="bronze")
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    loyalty_discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coupon_discount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True, default=_default_expiry)

    items: Mapped[list["CartItem"]] = relationship(
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def discount(self) -> int:
        return self.loyalty_discount + self.coupon_discount


class CartItem(Base):
    """Cart line with name and price snapshots."""

    __tablename__ = "cart_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    cart_id: Mapped[int] = mapped_column(ForeignKey("carts.id"), nullable=False, index=True)
    menu_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    customizations: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    cart: Mapped[Cart] = relationship(back_populates="items")
