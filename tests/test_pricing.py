from orderflow.services.order_service import order_pricing
from orderflow.services.pricing import (
    CouponTerms,
    calculate_coupon_discount,
    calculate_delivery_fee,
    calculate_loyalty_discount,
    compute_summary,
    lookup_coupon,
    normalize_membership_level,
)


def test_bronze_delivery_cart_summary() -> None:
    summary = compute_summary([(2, 200000)], coupon=None, delivery_type="delivery", membership_level="bronze")

    assert summary.total_items == 2
    assert summary.subtotal == 200000
    assert summary.tax == 16000
    assert summary.delivery_fee == 30000
    assert summary.loyalty_discount == 0
    assert summary.total == 246000


def test_platinum_member_gets_discount_and_free_delivery() -> None:
    summary = compute_summary([(2, 200000)], coupon=None, delivery_type="delivery", membership_level="platinum")

    assert summary.loyalty_discount == 30000
    assert summary.delivery_fee == 0
    assert summary.total == 186000


def test_delivery_fee_rules() -> None:
    assert calculate_delivery_fee(500000, "delivery", "bronze") == 30000
    assert calculate_delivery_fee(500001, "delivery", "silver") == 0
    assert calculate_delivery_fee(100000, "delivery", "gold") == 0
    assert calculate_delivery_fee(100000, "pickup", "bronze") == 0
    assert calculate_delivery_fee(100000, "dine_in", "bronze") == 0


def test_amounts_round_half_up() -> None:
    # 10 * 0.05 = 0.5 rounds up, not to even.
    assert calculate_loyalty_discount(10, "silver") == 1
    assert calculate_loyalty_discount(30, "silver") == 2


def test_coupon_discount_is_capped_at_subtotal() -> None:
    fixed = CouponTerms(code="SAVE50K", discount_type="fixed", discount_value=50000)
    percentage = CouponTerms(code="WELCOME10", discount_type="percentage", discount_value=10)

    assert calculate_coupon_discount(30000, fixed) == 30000
    assert calculate_coupon_discount(200000, fixed) == 50000
    assert calculate_coupon_discount(200000, percentage) == 20000
    assert calculate_coupon_discount(200000, None) == 0


def test_coupon_lookup_is_case_insensitive() -> None:
    coupon = lookup_coupon(" welcome10 ")

    assert coupon is not None
    assert coupon.code == "WELCOME10"
    assert lookup_coupon("NOPE") is None


def test_unknown_membership_level_prices_as_bronze() -> None:
    assert normalize_membership_level("diamond") == "bronze"
    assert normalize_membership_level(None) == "bronze"
    assert normalize_membership_level(" Gold ") == "gold"


def test_total_never_negative_and_order_pricing_stays_consistent() -> None:
    coupon = CouponTerms(code="BIG", discount_type="fixed", discount_value=100000)
    summary = compute_summary([(1, 100000)], coupon=coupon, delivery_type="delivery", membership_level="platinum")

    assert summary.total == 0

    pricing = order_pricing(summary)
    assert pricing.total == 0
    assert pricing.total == pricing.subtotal + pricing.tax + pricing.delivery_fee - pricing.discount
