"""
Cart reconciliation.

The client keeps its own cart; before anything is charged the server
re-reads every line against current stock and live prices and reports
what it had to change.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional
import logging

from storefront.db.mongo import db
from storefront.services.pricing import get_active_flash_sales, base_price
from storefront.services.promotions import price_line, round_money, validate_coupon

logger = logging.getLogger(__name__)

NOT_FOUND = "not_found"
INVALID_QUANTITY = "invalid_quantity"
INSUFFICIENT_STOCK = "insufficient_stock"

def _as_dict(item) -> dict:
    if hasattr(item, 'model_dump'):
        return item.model_dump()
    return dict(item)

def line_key(item: dict) -> tuple:
    attributes = item.get('selected_attributes') or {}
    return (item['product_id'], item.get('variant_id'), tuple(sorted(attributes.items())))

def find_variant(product: dict, variant_id: Optional[str]) -> Optional[dict]:
    for variant in product.get('variants', []):
        if variant.get('id') == variant_id:
            return variant
    return None

def available_stock(product: dict, variant_id: Optional[str] = None) -> Optional[int]:
    """Units on hand for a product or one of its variants, None if the variant is unknown"""
    if variant_id:
        variant = find_variant(product, variant_id)
        if not variant:
            return None
        return variant.get('stock', 0)
    return product.get('stock', 0)

def merge_lines(items: Iterable) -> tuple:
    """Collapse identical lines and drop the ones with a bad quantity"""
    merged = {}
    issues = []
    for raw in items:
        item = _as_dict(raw)
        quantity = item.get('quantity') or 0
        if quantity < 1:
            issues.append({
                "product_id": item.get('product_id'),
                "variant_id": item.get('variant_id'),
                "issue": INVALID_QUANTITY,
                "requested": quantity
            })
            continue
        key = line_key(item)
        if key in merged:
            merged[key]['quantity'] += quantity
        else:
            merged[key] = {
                "id": item.get('id'),
                "product_id": item['product_id'],
                "variant_id": item.get('variant_id'),
                "quantity": quantity,
                "selected_attributes": item.get('selected_attributes') or {}
            }
    return list(merged.values()), issues

async def _already_bought_on_sale(user_id: str, flash_sale_id: str, product_id: str) -> int:
    orders = await db.orders.find(
        {"user_id": user_id, "status": {"$ne": "cancelled"}, "items.flash_sale_id": flash_sale_id},
        {"_id": 0, "items": 1}
    ).to_list(1000)
    return sum(
        item.get('sale_quantity', 0)
        for order in orders
        for item in order.get('items', [])
        if item.get('flash_sale_id') == flash_sale_id and item.get('product_id') == product_id
    )

async def reconcile_cart(items: Iterable, user_id: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    """Re-validate client cart lines against stock and live prices.

    Returns {"items", "subtotal", "issues", "is_valid"}. Unknown products and
    bad quantities are dropped, short-stocked lines are clamped to what is
    available.
    """
    now = now or datetime.now(timezone.utc)
    lines, issues = merge_lines(items)

    product_ids = [line['product_id'] for line in lines]
    products = await db.products.find({"id": {"$in": product_ids}}, {"_id": 0}).to_list(len(product_ids) or 1)
    products_by_id = {p['id']: p for p in products}
    flash_sales = await get_active_flash_sales(product_ids, now)

    reconciled = []
    # Lines that differ only by selected attributes share one stock pool and one sale allocation
    allocated = {}
    sale_given = {}
    bought_on_sale = {}
    for line in lines:
        product = products_by_id.get(line['product_id'])
        variant = find_variant(product, line['variant_id']) if product and line['variant_id'] else None
        if not product or (line['variant_id'] and not variant):
            issues.append({
                "product_id": line['product_id'],
                "variant_id": line['variant_id'],
                "issue": NOT_FOUND
            })
            continue

        stock_key = (product['id'], line['variant_id'])
        quantity = line['quantity']
        available = available_stock(product, line['variant_id'])
        left_in_stock = max(0, available - allocated.get(stock_key, 0))
        if left_in_stock < quantity:
            issues.append({
                "product_id": line['product_id'],
                "variant_id": line['variant_id'],
                "name": product['name'],
                "issue": INSUFFICIENT_STOCK,
                "requested": quantity,
                "available": left_in_stock
            })
            quantity = left_in_stock
            if quantity <= 0:
                continue
        allocated[stock_key] = allocated.get(stock_key, 0) + quantity

        unit_price = base_price(product, variant)
        sale, entry = flash_sales.get(product['id'], (None, None))
        if entry:
            given = sale_given.get(product['id'], 0)
            entry = {**entry, "sold_quantity": entry.get('sold_quantity', 0) + given}
            if entry.get('max_quantity_per_customer'):
                if user_id and product['id'] not in bought_on_sale:
                    bought_on_sale[product['id']] = await _already_bought_on_sale(user_id, sale['id'], product['id'])
                left = entry['max_quantity_per_customer'] - bought_on_sale.get(product['id'], 0) - given
                if left <= 0:
                    sale, entry = None, None
                else:
                    entry["max_quantity_per_customer"] = left

        priced = price_line(unit_price, quantity, entry)
        if priced['sale_quantity']:
            sale_given[product['id']] = sale_given.get(product['id'], 0) + priced['sale_quantity']
        reconciled.append({
            "id": line['id'],
            "product_id": product['id'],
            "variant_id": line['variant_id'],
            "category_id": product.get('category_id'),
            "name": product['name'],
            "image": product.get('cover_image', ''),
            "quantity": quantity,
            "selected_attributes": line['selected_attributes'],
            "original_price": round_money(unit_price),
            "price": priced['unit_price'],
            "sale_quantity": priced['sale_quantity'],
            "line_total": priced['line_total'],
            "flash_sale_id": sale['id'] if sale and priced['sale_quantity'] else None,
            "available_stock": available
        })

    subtotal = round_money(sum(line['line_total'] for line in reconciled))
    if issues:
        logger.info("Cart reconciled with %d issue(s)", len(issues))

    return {
        "items": reconciled,
        "subtotal": subtotal,
        "issues": issues,
        "is_valid": not issues
    }

async def quote_checkout(items: Iterable, coupon_code: Optional[str] = None, user_id: Optional[str] = None,
                         now: Optional[datetime] = None) -> dict:
    """Reconcile the cart and price it with an optional coupon"""
    quote = await reconcile_cart(items, user_id, now)
    quote.update({"discount": 0.0, "coupon_code": None, "coupon_id": None, "coupon_error": None})

    if coupon_code and quote['items']:
        coupon = await db.coupons.find_one({"code": coupon_code.strip().upper()}, {"_id": 0})
        result = validate_coupon(
            coupon,
            quote['subtotal'],
            now,
            product_ids=[line['product_id'] for line in quote['items']],
            category_ids=[line['category_id'] for line in quote['items'] if line.get('category_id')]
        )
        if result['valid']:
            quote['discount'] = result['discount']
            quote['coupon_code'] = coupon['code']
            quote['coupon_id'] = coupon['id']
        else:
            quote['coupon_error'] = result['error']

    quote['total'] = round_money(quote['subtotal'] - quote['discount'])
    return quote

