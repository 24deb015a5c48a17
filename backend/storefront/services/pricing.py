"""
Live pricing - flash-sale lookups against the database
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple

from storefront.db.mongo import db
from storefront.services.promotions import (
    is_window_open, find_flash_sale_entry, flash_sale_entry_available, apply_price_discount, round_money
)

async def get_active_flash_sales(product_ids: Iterable[str], now: Optional[datetime] = None) -> Dict[str, Tuple[dict, dict]]:
    """Map product id -> (flash_sale, entry) for every product currently on sale.

    When several running sales cover the same product the one that started
    first wins.
    """
    now = now or datetime.now(timezone.utc)
    product_ids = list(set(product_ids))
    if not product_ids:
        return {}

    sales = await db.flash_sales.find(
        {"is_active": True, "products.product_id": {"$in": product_ids}},
        {"_id": 0}
    ).sort("start_date", 1).to_list(100)

    active = {}
    for sale in sales:
        if not is_window_open(sale.get('start_date'), sale.get('end_date'), now):
            continue
        for product_id in product_ids:
            if product_id in active:
                continue
            entry = find_flash_sale_entry(sale, product_id)
            if entry and flash_sale_entry_available(entry):
                active[product_id] = (sale, entry)
    return active

async def get_active_flash_sale(product_id: str, now: Optional[datetime] = None) -> Tuple[Optional[dict], Optional[dict]]:
    active = await get_active_flash_sales([product_id], now)
    return active.get(product_id, (None, None))

def base_price(product: dict, variant: Optional[dict] = None) -> float:
    if variant and variant.get('price') is not None:
        return variant['price']
    return product.get('price', 0)

async def get_product_price(product: dict, variant: Optional[dict] = None, now: Optional[datetime] = None) -> dict:
    """Original and final unit price for a product, flash sale applied"""
    original_price = base_price(product, variant)
    sale, entry = await get_active_flash_sale(product['id'], now)
    if not entry:
        return {
            "original_price": round_money(original_price),
            "final_price": round_money(original_price),
            "discount_percentage": 0,
            "flash_sale": None
        }

    final_price = apply_price_discount(original_price, entry['discount_type'], entry['discount_value'])
    discount_percentage = 0
    if original_price > 0:
        discount_percentage = round((original_price - final_price) / original_price * 100)

    return {
        "original_price": round_money(original_price),
        "final_price": final_price,
        "discount_percentage": discount_percentage,
        "flash_sale": {
            "id": sale['id'],
            "name": sale['name'],
            "end_date": sale['end_date'],
            "max_quantity_per_customer": entry.get('max_quantity_per_customer')
        }
    }
