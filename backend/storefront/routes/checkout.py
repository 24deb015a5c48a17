from fastapi import APIRouter, HTTPException, Depends
from datetime import datetime, timezone
import logging
import uuid

from storefront.core.security import require_auth
from storefront.db.mongo import db
from storefront.models.cart import CheckoutQuoteRequest
from storefront.models.coupon import CouponValidateRequest
from storefront.models.order import PaymentIntentRequest
from storefront.services.cart import quote_checkout
from storefront.services.orders import fulfil_order
from storefront.services.payments import (
    PaymentError, create_payment_intent, retrieve_payment_intent, format_amount_for_stripe
)
from storefront.services.promotions import validate_coupon, is_window_open, remaining_uses, to_datetime
from storefront.services.utils import now_iso

logger = logging.getLogger(__name__)

router = APIRouter(tags=["checkout"])

# ==================== COUPONS ====================
@router.get("/coupons/active")
async def get_active_coupons():
    now = datetime.now(timezone.utc)
    coupons = await db.coupons.find({"is_active": True}, {"_id": 0}).to_list(500)

    public = []
    for coupon in coupons:
        if not is_window_open(coupon.get('start_date'), coupon.get('end_date'), now):
            continue
        remaining = remaining_uses(coupon)
        if remaining == 0:
            continue
        public.append({
            "code": coupon['code'],
            "type": coupon['type'],
            "value": coupon['value'],
            "min_purchase": coupon.get('min_purchase') or 0,
            "max_discount": coupon.get('max_discount'),
            "end_date": coupon.get('end_date'),
            "description": coupon.get('description', ''),
            "remaining_uses": remaining
        })

    # Coupons without an end date sort last
    far_future = datetime.max.replace(tzinfo=timezone.utc)
    public.sort(key=lambda c: to_datetime(c['end_date']) or far_future)
    return public

@router.post("/coupons/validate")
async def validate_coupon_endpoint(request: CouponValidateRequest):
    code = request.code.strip().upper()
    if not code:
        raise HTTPException(status_code=400, detail="Coupon code is required")

    coupon = await db.coupons.find_one({"code": code}, {"_id": 0})
    category_ids = []
    if request.product_ids:
        products = await db.products.find(
            {"id": {"$in": request.product_ids}}, {"_id": 0, "category_id": 1}
        ).to_list(len(request.product_ids))
        category_ids = [p['category_id'] for p in products if p.get('category_id')]

    result = validate_coupon(coupon, request.cart_total, product_ids=request.product_ids, category_ids=category_ids)
    if not result['valid']:
        raise HTTPException(status_code=400, detail=result['error'])

    return {
        "valid": True,
        "discount": result['discount'],
        "type": coupon['type'],
        "value": coupon['value'],
        "coupon_id": coupon['id']
    }

# ==================== FLASH SALES ====================
@router.get("/flash-sales/active")
async def get_active_flash_sales():
    """Running and upcoming flash sales with product details merged in"""
    now = datetime.now(timezone.utc)
    sales = await db.flash_sales.find({"is_active": True}, {"_id": 0}).to_list(200)
    sales = [s for s in sales if to_datetime(s['end_date']) > now]

    product_ids = list({entry['product_id'] for s in sales for entry in s.get('products', [])})
    products = await db.products.find({"id": {"$in": product_ids}}, {"_id": 0}).to_list(len(product_ids) or 1)
    products_by_id = {p['id']: p for p in products}

    for sale in sales:
        merged = []
        for entry in sale.get('products', []):
            product = products_by_id.get(entry['product_id'])
            if not product:
                continue
            merged.append({**product, **entry})
        sale['products'] = merged
        sale['is_running'] = is_window_open(sale['start_date'], sale['end_date'], now)

    sales.sort(key=lambda s: to_datetime(s['start_date']))
    return sales

# ==================== CHECKOUT ====================
@router.post("/checkout/quote")
async def checkout_quote(request: CheckoutQuoteRequest, user: dict = Depends(require_auth)):
    return await quote_checkout(request.items, request.coupon_code, user['id'])

@router.post("/payment/create-payment-intent")
async def create_payment_intent_endpoint(request: PaymentIntentRequest, user: dict = Depends(require_auth)):
    currency = request.currency.upper()
    try:
        format_amount_for_stripe(0, currency)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    quote = await quote_checkout(request.items, request.coupon_code, user['id'])
    if not quote['items']:
        raise HTTPException(status_code=400, detail="Cart is empty")
    if not quote['is_valid']:
        raise HTTPException(
            status_code=400,
            detail={"message": "Some items in your cart are no longer available", "issues": quote['issues']}
        )
    if quote['coupon_error']:
        raise HTTPException(status_code=400, detail=quote['coupon_error'])
    if quote['total'] <= 0:
        raise HTTPException(status_code=400, detail="Invalid amount. Amount must be greater than 0")

    amount = format_amount_for_stripe(quote['total'], currency)
    try:
        intent = await create_payment_intent(amount, currency, {
            "user_id": user['id'],
            "coupon_code": quote['coupon_code'] or ""
        })
    except PaymentError as e:
        raise HTTPException(status_code=502, detail=f"Failed to create payment intent: {e}")

    await db.pending_orders.insert_one({
        "payment_intent_id": intent['id'],
        "user_id": user['id'],
        "user_email": user['email'],
        "currency": currency,
        "items": quote['items'],
        "subtotal": quote['subtotal'],
        "discount": quote['discount'],
        "coupon_code": quote['coupon_code'],
        "total": quote['total'],
        "shipping_address": request.shipping_address.model_dump() if request.shipping_address else None,
        "demo_mode": intent.get('demo_mode', False),
        "status": "pending",
        "created_at": now_iso()
    })
    logger.info("Payment intent %s created for user %s (%s %s)", intent['id'], user['id'], quote['total'], currency)

    response = {
        "client_secret": intent['client_secret'],
        "payment_intent_id": intent['id'],
        "amount": quote['total'],
        "currency": currency,
        "discount": quote['discount']
    }
    if intent.get('demo_mode'):
        response["demo_mode"] = True
    return response

def _order_from_pending(pending: dict) -> dict:
    items = [
        {
            "product_id": line['product_id'],
            "variant_id": line.get('variant_id'),
            "name": line['name'],
            "price": line['price'],
            "original_price": line['original_price'],
            "quantity": line['quantity'],
            "sale_quantity": line.get('sale_quantity', 0),
            "image": line.get('image', ''),
            "attributes": line.get('selected_attributes') or {},
            "flash_sale_id": line.get('flash_sale_id')
        }
        for line in pending['items']
    ]
    return {
        "id": str(uuid.uuid4()),
        "user_id": pending['user_id'],
        "user_email": pending.get('user_email'),
        "items": items,
        "subtotal": pending['subtotal'],
        "discount": pending['discount'],
        "coupon_code": pending.get('coupon_code'),
        "total": pending['total'],
        "currency": pending.get('currency', 'USD'),
        "status": "processing",
        "payment_intent_id": pending['payment_intent_id'],
        "shipping_address": pending.get('shipping_address'),
        "stock_issues": [],
        "created_at": now_iso()
    }

@router.get("/payment/verify")
async def verify_payment(payment_intent: str = None, user: dict = Depends(require_auth)):
    if not payment_intent:
        raise HTTPException(status_code=400, detail="Payment intent ID is required")

    pending = await db.pending_orders.find_one(
        {"payment_intent_id": payment_intent, "user_id": user['id']}, {"_id": 0}
    )
    if not pending:
        raise HTTPException(status_code=404, detail="Payment not found")

    try:
        intent = await retrieve_payment_intent(payment_intent)
    except PaymentError as e:
        raise HTTPException(status_code=502, detail=f"Failed to verify payment: {e}")

    success = intent.get('status') == 'succeeded'
    order = None
    if success:
        # Only the request that flips the pending record creates the order
        claimed = await db.pending_orders.update_one(
            {"payment_intent_id": payment_intent, "status": "pending"},
            {"$set": {"status": "completed", "completed_at": now_iso()}}
        )
        if claimed.modified_count == 1:
            order = _order_from_pending(pending)
            await db.orders.insert_one({**order})
            stock_issues = await fulfil_order(order)
            if stock_issues:
                order['stock_issues'] = stock_issues
                await db.orders.update_one({"id": order['id']}, {"$set": {"stock_issues": stock_issues}})
            await db.carts.update_one({"user_id": user['id']}, {"$set": {"items": [], "updated_at": now_iso()}})
            logger.info("Order %s created from payment intent %s", order['id'], payment_intent)
        else:
            order = await db.orders.find_one({"payment_intent_id": payment_intent}, {"_id": 0})

    return {
        "success": success,
        "payment_intent": {
            "id": intent['id'],
            "status": intent.get('status'),
            "amount": intent['amount'] / 100 if 'amount' in intent else pending['total'],
            "currency": intent.get('currency', pending.get('currency', 'USD')).upper()
        },
        "order": order
    }
