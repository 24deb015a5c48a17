"""
Promotion rules - coupons and flash sales.

Everything here is pure: callers load the coupon / flash sale documents
and pass them in, so the discount math can be exercised without a database.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional, Union

PERCENTAGE = "percentage"
FIXED = "fixed"
DISCOUNT_TYPES = [PERCENTAGE, FIXED]

DateLike = Union[str, datetime, None]


def to_datetime(value: DateLike) -> Optional[datetime]:
    """Parse a stored ISO timestamp (or datetime) into an aware UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def round_money(amount: float) -> float:
    return round(amount, 2)


def calculate_discount(subtotal: float, discount_type: str, value: float,
                       max_discount: Optional[float] = None) -> float:
    """Discount amount for a subtotal, clamped to [0, subtotal].

    Percentage discounts are additionally capped at max_discount when one
    is configured; fixed discounts never exceed the subtotal.
    """
    if subtotal <= 0 or value <= 0:
        return 0.0

    if discount_type == PERCENTAGE:
        discount = subtotal * value / 100
        if max_discount is not None and max_discount > 0:
            discount = min(discount, max_discount)
    elif discount_type == FIXED:
        discount = min(value, subtotal)
    else:
        raise ValueError(f"Unknown discount type: {discount_type}")

    return round_money(max(0.0, min(discount, subtotal)))


def apply_price_discount(price: float, discount_type: str, value: float) -> float:
    """Unit price after a flash-sale style discount, never negative"""
    if not price or not value:
        return round_money(price or 0)
    if discount_type == PERCENTAGE:
        return round_money(max(0.0, price * (1 - value / 100)))
    return round_money(max(0.0, price - value))


def is_window_open(start: DateLike, end: DateLike, now: Optional[datetime] = None) -> bool:
    """True when now falls inside the inclusive [start, end] window.

    A missing bound is treated as open on that side.
    """
    now = now or datetime.now(timezone.utc)
    start_dt = to_datetime(start)
    end_dt = to_datetime(end)
    if start_dt and now < start_dt:
        return False
    if end_dt and now > end_dt:
        return False
    return True


def remaining_uses(coupon: dict) -> Optional[int]:
    usage_limit = coupon.get('usage_limit')
    if usage_limit is None:
        return None
    return max(0, usage_limit - coupon.get('used_count', 0))


def validate_coupon(coupon: Optional[dict], subtotal: float, now: Optional[datetime] = None,
                    product_ids: Iterable[str] = (), category_ids: Iterable[str] = ()) -> dict:
    """Check a coupon against a cart subtotal.

    Returns {"valid": False, "error": <message>} on rejection, otherwise
    {"valid": True, "discount": <amount>, "coupon": coupon}.
    """
    if not coupon or not coupon.get('is_active', True):
        return {"valid": False, "error": "Invalid coupon code"}

    now = now or datetime.now(timezone.utc)

    start_date = to_datetime(coupon.get('start_date'))
    if start_date and now < start_date:
        return {"valid": False, "error": f"Coupon is not valid until {start_date.strftime('%Y-%m-%d')}"}

    end_date = to_datetime(coupon.get('end_date'))
    if end_date and now > end_date:
        return {"valid": False, "error": f"Coupon expired on {end_date.strftime('%Y-%m-%d')}"}

    min_purchase = coupon.get('min_purchase') or 0
    if subtotal < min_purchase:
        return {"valid": False, "error": f"Minimum purchase amount of ${min_purchase:.2f} required"}

    if remaining_uses(coupon) == 0:
        return {"valid": False, "error": "Coupon usage limit reached"}

    applicable_products = set(coupon.get('applicable_products') or [])
    applicable_categories = set(coupon.get('applicable_categories') or [])
    if applicable_products or applicable_categories:
        if not (applicable_products & set(product_ids)) and not (applicable_categories & set(category_ids)):
            return {"valid": False, "error": "Coupon is not applicable to items in your cart"}

    discount = calculate_discount(
        subtotal,
        coupon.get('type', PERCENTAGE),
        coupon.get('value', 0),
        coupon.get('max_discount')
    )

    return {
        "valid": True,
        "discount": discount,
        "coupon": coupon
    }


# ==================== FLASH SALES ====================

def flash_sale_entry_available(entry: dict) -> bool:
    """A flash-sale product entry stops applying once its allocation sells out"""
    total_quantity = entry.get('total_quantity')
    if total_quantity is None:
        return True
    return entry.get('sold_quantity', 0) < total_quantity


def find_flash_sale_entry(flash_sale: dict, product_id: str) -> Optional[dict]:
    for entry in flash_sale.get('products', []):
        if entry.get('product_id') == product_id:
            return entry
    return None


def price_line(unit_price: float, quantity: int, entry: Optional[dict] = None) -> dict:
    """Price a cart line, applying a flash-sale entry when one is given.

    Units beyond the entry's max_quantity_per_customer are charged at the
    regular unit price.
    """
    if not entry or not flash_sale_entry_available(entry):
        return {
            "unit_price": round_money(unit_price),
            "sale_quantity": 0,
            "line_total": round_money(unit_price * quantity)
        }

    sale_price = apply_price_discount(unit_price, entry['discount_type'], entry['discount_value'])
    sale_quantity = quantity
    if entry.get('max_quantity_per_customer'):
        sale_quantity = min(quantity, entry['max_quantity_per_customer'])
    if entry.get('total_quantity') is not None:
        left = entry['total_quantity'] - entry.get('sold_quantity', 0)
        sale_quantity = min(sale_quantity, left)

    full_quantity = quantity - sale_quantity
    return {
        "unit_price": sale_price,
        "sale_quantity": sale_quantity,
        "line_total": round_money(sale_price * sale_quantity + unit_price * full_quantity)
    }


def estimate_coupon_savings(coupon: dict, average_order_value: float = 100) -> float:
    """Rough total handed out by a coupon so far, for the promotions dashboard"""
    used = coupon.get('used_count', 0)
    if coupon.get('type') == FIXED:
        return coupon.get('value', 0) * used
    per_order = calculate_discount(average_order_value, PERCENTAGE,
                                   coupon.get('value', 0), coupon.get('max_discount'))
    return per_order * used
