"""
Order fulfilment - applies a paid order to stock, sales counters,
flash-sale allocations and coupon usage.
"""

import logging
from typing import List, Optional

from storefront.db.mongo import db
from storefront.services.promotions import round_money
from storefront.services.utils import now_iso

logger = logging.getLogger(__name__)

def item_total(item: dict) -> float:
    sale_quantity = item.get('sale_quantity', 0)
    full_quantity = item['quantity'] - sale_quantity
    return round_money(item['price'] * sale_quantity + item['original_price'] * full_quantity)

async def _decrement_stock(item: dict, now: str) -> bool:
    """Take stock for one order line; False when not enough is left"""
    quantity = item['quantity']
    counters = {"$inc": {"sales_count": quantity, "total_revenue": item_total(item)}, "$set": {"last_sold": now}}

    if item.get('variant_id'):
        result = await db.products.update_one(
            {"id": item['product_id'], "variants": {"$elemMatch": {"id": item['variant_id'], "stock": {"$gte": quantity}}}},
            {"$inc": {"variants.$.stock": -quantity, **counters["$inc"]}, "$set": counters["$set"]}
        )
    else:
        result = await db.products.update_one(
            {"id": item['product_id'], "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity, **counters["$inc"]}, "$set": counters["$set"]}
        )
    return result.modified_count == 1

async def _check_low_stock(product_id: str):
    product = await db.products.find_one({"id": product_id}, {"_id": 0})
    if not product or not product.get('notify_low_stock', True):
        return
    if product.get('stock', 0) <= product.get('low_stock_threshold', 10):
        logger.warning("Low stock alert for product %s: %s items remaining", product['name'], product.get('stock', 0))

async def consume_coupon(code: str) -> bool:
    coupon = await db.coupons.find_one({"code": code}, {"_id": 0})
    if not coupon:
        return False
    query = {"id": coupon['id']}
    if coupon.get('usage_limit') is not None:
        query["used_count"] = {"$lt": coupon['usage_limit']}
    result = await db.coupons.update_one(query, {"$inc": {"used_count": 1}})
    if result.modified_count == 0:
        logger.warning("Coupon %s was used past its limit by a concurrent order", code)
        return False
    return True

async def fulfil_order(order: dict, now: Optional[str] = None) -> List[dict]:
    """Apply a paid order. Returns the lines that could not be stocked."""
    now = now or now_iso()
    stock_issues = []

    for index, item in enumerate(order['items']):
        if not await _decrement_stock(item, now):
            logger.warning(
                "Order %s: insufficient stock for product %s (wanted %s)",
                order['id'], item['product_id'], item['quantity']
            )
            stock_issues.append({
                "line": index,
                "product_id": item['product_id'],
                "variant_id": item.get('variant_id'),
                "quantity": item['quantity'],
                "issue": "insufficient_stock"
            })
            continue

        await _check_low_stock(item['product_id'])

        if item.get('flash_sale_id') and item.get('sale_quantity'):
            await db.flash_sales.update_one(
                {"id": item['flash_sale_id'], "products.product_id": item['product_id']},
                {"$inc": {"products.$.sold_quantity": item['sale_quantity']}}
            )

    if order.get('coupon_code'):
        await consume_coupon(order['coupon_code'])

    return stock_issues

async def restock_order(order: dict):
    """Put a cancelled order's items back on the shelf"""
    # Lines that were never taken from stock are not put back
    skipped = {i.get('line') for i in order.get('stock_issues', [])}
    restocked = 0
    for index, item in enumerate(order['items']):
        if index in skipped:
            continue
        quantity = item['quantity']
        reverse = {"sales_count": -quantity, "total_revenue": -item_total(item)}
        if item.get('variant_id'):
            await db.products.update_one(
                {"id": item['product_id'], "variants.id": item['variant_id']},
                {"$inc": {"variants.$.stock": quantity, **reverse}}
            )
        else:
            await db.products.update_one(
                {"id": item['product_id']},
                {"$inc": {"stock": quantity, **reverse}}
            )
        restocked += 1
    logger.info("Restocked %d line(s) from cancelled order %s", restocked, order['id'])
