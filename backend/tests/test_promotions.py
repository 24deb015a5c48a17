from datetime import datetime, timedelta, timezone

import pytest

from storefront.services.promotions import (
    calculate_discount, apply_price_discount, validate_coupon, is_window_open,
    remaining_uses, price_line, flash_sale_entry_available, estimate_coupon_savings
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def coupon(**overrides):
    doc = {
        "id": "c1",
        "code": "SAVE",
        "type": "percentage",
        "value": 20,
        "min_purchase": 0,
        "max_discount": None,
        "start_date": (NOW - timedelta(days=1)).isoformat(),
        "end_date": (NOW + timedelta(days=1)).isoformat(),
        "usage_limit": None,
        "used_count": 0,
        "is_active": True
    }
    doc.update(overrides)
    return doc


@pytest.mark.parametrize("subtotal,pct,cap", [
    (200, 20, 30),
    (50, 20, 30),
    (1000, 5, 10),
    (99.99, 15, 100),
])
def test_percentage_discount_is_capped(subtotal, pct, cap):
    assert calculate_discount(subtotal, "percentage", pct, cap) == round(min(subtotal * pct / 100, cap), 2)


@pytest.mark.parametrize("subtotal,value", [(40, 10), (10, 25), (0.5, 0.5)])
def test_fixed_discount_never_exceeds_subtotal(subtotal, value):
    assert calculate_discount(subtotal, "fixed", value) == min(value, subtotal)


def test_percentage_without_cap_is_uncapped():
    assert calculate_discount(200, "percentage", 20) == 40
    assert calculate_discount(200, "percentage", 20, 0) == 40


def test_discount_is_clamped_to_subtotal():
    assert calculate_discount(50, "percentage", 150) == 50
    assert calculate_discount(0, "fixed", 10) == 0
    assert calculate_discount(100, "fixed", -5) == 0


def test_unknown_discount_type_raises():
    with pytest.raises(ValueError):
        calculate_discount(100, "bogo", 10)


def test_twenty_percent_off_two_hundred_with_thirty_cap():
    result = validate_coupon(coupon(value=20, max_discount=30), 200, NOW)
    assert result["valid"]
    assert result["discount"] == 30
    assert 200 - result["discount"] == 170


def test_min_purchase_rejects_small_cart():
    result = validate_coupon(coupon(type="fixed", value=10, min_purchase=50), 40, NOW)
    assert result == {"valid": False, "error": "Minimum purchase amount of $50.00 required"}


def test_missing_or_inactive_coupon_is_invalid():
    assert validate_coupon(None, 100, NOW)["error"] == "Invalid coupon code"
    assert validate_coupon(coupon(is_active=False), 100, NOW)["error"] == "Invalid coupon code"


@pytest.mark.parametrize("offset", [timedelta(days=-3), timedelta(days=3), timedelta(seconds=-90000)])
def test_coupon_outside_window_is_rejected(offset):
    at = NOW + offset
    result = validate_coupon(coupon(), 100, at)
    assert not result["valid"]


def test_window_messages():
    early = validate_coupon(coupon(start_date="2024-07-01T00:00:00+00:00"), 100, NOW)
    assert early["error"] == "Coupon is not valid until 2024-07-01"
    late = validate_coupon(coupon(end_date="2024-06-01T00:00:00+00:00"), 100, NOW)
    assert late["error"] == "Coupon expired on 2024-06-01"


def test_window_bounds_are_inclusive():
    doc = coupon(start_date=NOW.isoformat(), end_date=NOW.isoformat())
    assert validate_coupon(doc, 100, NOW)["valid"]


@pytest.mark.parametrize("limit,used", [(5, 5), (5, 7), (0, 0)])
def test_usage_limit_reached_is_rejected(limit, used):
    result = validate_coupon(coupon(usage_limit=limit, used_count=used), 100, NOW)
    assert result == {"valid": False, "error": "Coupon usage limit reached"}


def test_remaining_uses():
    assert remaining_uses(coupon()) is None
    assert remaining_uses(coupon(usage_limit=3, used_count=1)) == 2
    assert remaining_uses(coupon(usage_limit=3, used_count=9)) == 0


def test_restricted_coupon_needs_matching_item():
    doc = coupon(applicable_products=["p1"], applicable_categories=["shoes"])
    assert not validate_coupon(doc, 100, NOW, product_ids=["p2"], category_ids=["hats"])["valid"]
    assert validate_coupon(doc, 100, NOW, product_ids=["p1"])["valid"]
    assert validate_coupon(doc, 100, NOW, product_ids=["p2"], category_ids=["shoes"])["valid"]


def test_naive_datetimes_are_treated_as_utc():
    assert is_window_open("2024-06-15T00:00:00", "2024-06-16T00:00:00", NOW)
    assert not is_window_open(None, "2024-06-15T11:00:00Z", NOW)
    assert is_window_open(None, None, NOW)


def test_flash_sale_unit_price():
    assert apply_price_discount(80, "percentage", 25) == 60
    assert apply_price_discount(80, "fixed", 15) == 65
    assert apply_price_discount(10, "fixed", 15) == 0


def test_price_line_without_sale():
    assert price_line(19.99, 3) == {"unit_price": 19.99, "sale_quantity": 0, "line_total": 59.97}


def test_price_line_caps_sale_units_per_customer():
    entry = {"discount_type": "percentage", "discount_value": 50, "max_quantity_per_customer": 2}
    line = price_line(100, 5, entry)
    assert line["unit_price"] == 50
    assert line["sale_quantity"] == 2
    assert line["line_total"] == 2 * 50 + 3 * 100


def test_price_line_respects_remaining_allocation():
    entry = {"discount_type": "fixed", "discount_value": 10, "total_quantity": 10, "sold_quantity": 9}
    line = price_line(30, 3, entry)
    assert line["sale_quantity"] == 1
    assert line["line_total"] == 20 + 60


def test_sold_out_entry_is_ignored():
    entry = {"discount_type": "percentage", "discount_value": 50, "total_quantity": 5, "sold_quantity": 5}
    assert not flash_sale_entry_available(entry)
    assert price_line(40, 1, entry)["line_total"] == 40


def test_estimated_savings():
    assert estimate_coupon_savings({"type": "fixed", "value": 5, "used_count": 4}) == 20
    assert estimate_coupon_savings({"type": "percentage", "value": 10, "used_count": 3}) == 30
    assert estimate_coupon_savings({"type": "percentage", "value": 50, "max_discount": 20, "used_count": 2}) == 40
