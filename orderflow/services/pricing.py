"""Cart pricing rules.

Everything here is pure: the cart service gathers line subtotals, the applied
coupon, the delivery type and the customer's membership level, and
``compute_summary`` derives every money figure from them. Amounts are whole
VND; fractional results are rounded half up.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from orderflow.core.config import settings

MEMBERSHIP_LEVELS: tuple[str, ...] = ("bronze", "silver", "gold", "platinum")
LOYALTY_RATES: dict[str, Decimal] = {
    "bronze": Decimal("0"),
    "silver": Decimal("0.05"),
    "gold": Decimal("0.10"),
    "platinum": Decimal("0.15"),
}
FREE_DELIVERY_LEVELS: frozenset[str] = frozenset({"gold", "platinum"})
DISCOUNT_TYPES: tuple[str, ...] = ("percentage", "fixed")


@dataclass(frozen=True)
class CouponTerms:
    code: str
    discount_type: str
    discount_value: int


@dataclass(frozen=True)
class CartSummary:
    total_items: int
    subtotal: int
    tax: int
    delivery_fee: int
    loyalty_discount: int
    coupon_discount: int
    total: int

    @property
    def discount(self) -> int:
        return self.loyalty_discount + self.coupon_discount


COUPON_CATALOG: dict[str, CouponTerms] = {
    "WELCOME10": CouponTerms(code="WELCOME10", discount_type="percentage", discount_value=10),
    "SAVE50K": CouponTerms(code="SAVE50K", discount_type="fixed", discount_value=50000),
    "FREESHIP": CouponTerms(code="FREESHIP", discount_type="fixed", discount_value=30000),
}


def round_vnd(value: Decimal | int | float) -> int:
    """Round a VND amount half up to a whole number."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def normalize_membership_level(level: str | None) -> str:
    """Return a known membership level, defaulting to bronze."""
    normalized = str(level or "").strip().lower()
    if normalized not in LOYALTY_RATES:
        return "bronze"
    return normalized


def lookup_coupon(code: str) -> CouponTerms | None:
    return COUPON_CATALOG.get(code.strip().upper())


def calculate_tax(subtotal: int) -> int:
    return round_vnd(Decimal(subtotal) * Decimal(str(settings.tax_rate)))


def calculate_loyalty_discount(subtotal: int, membership_level: str) -> int:
    rate = LOYALTY_RATES[normalize_membership_level(membership_level)]
    return round_vnd(Decimal(subtotal) * rate)


def calculate_delivery_fee(subtotal: int, delivery_type: str, membership_level: str) -> int:
    """Flat fee for delivery orders unless the tier or order size waives it."""
    if delivery_type != "delivery":
        return 0
    if normalize_membership_level(membership_level) in FREE_DELIVERY_LEVELS:
        return 0
    if subtotal > settings.free_delivery_threshold:
        return 0
    return settings.default_delivery_fee


def calculate_coupon_discount(subtotal: int, coupon: CouponTerms | None) -> int:
    """Coupon value for this subtotal, never negative and never above subtotal."""
    if coupon is None or coupon.discount_value <= 0:
        return 0
    if coupon.discount_type == "percentage":
        discount = round_vnd(Decimal(subtotal) * Decimal(coupon.discount_value) / Decimal(100))
    elif coupon.discount_type == "fixed":
        discount = coupon.discount_value
    else:
        return 0
    return max(0, min(discount, subtotal))


def compute_summary(
    line_subtotals: list[tuple[int, int]],
    *,
    coupon: CouponTerms | None,
    delivery_type: str,
    membership_level: str,
) -> CartSummary:
    """Derive the cart summary from ``(quantity, line_subtotal)`` pairs."""
    subtotal = sum(line_subtotal for _, line_subtotal in line_subtotals)
    total_items = sum(quantity for quantity, _ in line_subtotals)
    tax = calculate_tax(subtotal)
    delivery_fee = calculate_delivery_fee(subtotal, delivery_type, membership_level)
    loyalty_discount = calculate_loyalty_discount(subtotal, membership_level)
    coupon_discount = calculate_coupon_discount(subtotal, coupon)
    total = max(0, subtotal + tax + delivery_fee - loyalty_discount - coupon_discount)
    return CartSummary(
        total_items=total_items,
        subtotal=subtotal,
        tax=tax,
        delivery_fee=delivery_fee,
        loyalty_discount=loyalty_discount,
        coupon_discount=coupon_discount,
        total=total,
    )
