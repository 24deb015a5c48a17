from fastapi import APIRouter, HTTPException, Depends, Request
from datetime import datetime, timezone
import uuid

from storefront.core.security import require_admin
from storefront.db.mongo import db
from storefront.models.coupon import CouponCreate, CouponUpdate
from storefront.models.flash_sale import FlashSaleCreate, FlashSaleUpdate
from storefront.services.promotions import (
    DISCOUNT_TYPES, is_window_open, remaining_uses, estimate_coupon_savings, to_datetime
)
from storefront.services.utils import create_audit_log, client_ip, now_iso, to_iso

router = APIRouter(prefix="/admin/promotions", tags=["admin-promotions"])

def _check_window(start, end):
    if start and end and to_datetime(end) <= to_datetime(start):
        raise HTTPException(status_code=400, detail="End date must be after start date")

# Sent as null, these go back to "no limit" / "open window"
CLEARABLE_COUPON_FIELDS = {"max_discount", "start_date", "end_date", "usage_limit"}

def _changes(update_data, clearable=()) -> dict:
    return {
        k: v for k, v in update_data.model_dump(exclude_unset=True).items()
        if v is not None or k in clearable
    }

# ==================== COUPONS ====================
@router.get("/coupons")
async def get_admin_coupons(admin: dict = Depends(require_admin)):
    coupons = await db.coupons.find({}, {"_id": 0}).sort("created_at", -1).to_list(1000)
    now = datetime.now(timezone.utc)
    for coupon in coupons:
        coupon["is_running"] = coupon.get("is_active", True) and is_window_open(coupon.get("start_date"), coupon.get("end_date"), now)
        coupon["remaining_uses"] = remaining_uses(coupon)
    return {"coupons": coupons}

@router.post("/coupons", status_code=201)
async def create_admin_coupon(coupon_data: CouponCreate, request: Request = None, admin: dict = Depends(require_admin)):
    code = coupon_data.code.strip().upper()
    if not code:
        raise HTTPException(status_code=400, detail="Coupon code is required")
    if coupon_data.type == "percentage" and coupon_data.value > 100:
        raise HTTPException(status_code=400, detail="Percentage discount cannot exceed 100")
    if await db.coupons.find_one({"code": code}):
        raise HTTPException(status_code=400, detail="Coupon code already exists")

    start_date, end_date = to_iso(coupon_data.start_date), to_iso(coupon_data.end_date)
    _check_window(start_date, end_date)

    coupon_doc = {
        "id": str(uuid.uuid4()),
        **coupon_data.model_dump(),
        "code": code,
        "start_date": start_date,
        "end_date": end_date,
        "used_count": 0,
        "created_at": now_iso()
    }
    await db.coupons.insert_one({**coupon_doc})
    await create_audit_log(admin, "coupon_create", "coupon", coupon_doc["id"], new_value={"code": code}, ip_address=client_ip(request))
    return {"message": "Coupon created", "coupon": coupon_doc}

@router.put("/coupons/{coupon_id}")
async def update_admin_coupon(
    coupon_id: str,
    update_data: CouponUpdate,
    request: Request = None,
    admin: dict = Depends(require_admin)
):
    coupon = await db.coupons.find_one({"id": coupon_id}, {"_id": 0})
    if not coupon:
        raise HTTPException(status_code=404, detail="Coupon not found")

    update_dict = _changes(update_data, CLEARABLE_COUPON_FIELDS)
    if 'code' in update_dict:
        update_dict['code'] = update_dict['code'].strip().upper()
        if await db.coupons.find_one({"code": update_dict['code'], "id": {"$ne": coupon_id}}):
            raise HTTPException(status_code=400, detail="Coupon code already exists")
    if 'type' in update_dict and update_dict['type'] not in DISCOUNT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid discount type")
    for field in ('start_date', 'end_date'):
        if field in update_dict:
            update_dict[field] = to_iso(update_dict[field])
    _check_window(update_dict.get('start_date', coupon.get('start_date')), update_dict.get('end_date', coupon.get('end_date')))
    update_dict["updated_at"] = now_iso()

    await db.coupons.update_one({"id": coupon_id}, {"$set": update_dict})
    await create_audit_log(
        admin, "coupon_update", "coupon", coupon_id,
        old_value={k: coupon.get(k) for k in update_dict.keys()},
        new_value=update_dict,
        ip_address=client_ip(request)
    )
    return {"message": "Coupon updated", "coupon": await db.coupons.find_one({"id": coupon_id}, {"_id": 0})}

@router.delete("/coupons/{coupon_id}")
async def delete_admin_coupon(coupon_id: str, request: Request = None, admin: dict = Depends(require_admin)):
    result = await db.coupons.delete_one({"id": coupon_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Coupon not found")
    await create_audit_log(admin, "coupon_delete", "coupon", coupon_id, ip_address=client_ip(request))
    return {"message": "Coupon deleted"}

# ==================== FLASH SALES ====================
@router.get("/flash-sales")
async def get_admin_flash_sales(admin: dict = Depends(require_admin)):
    sales = await db.flash_sales.find({}, {"_id": 0}).sort("start_date", -1).to_list(1000)
    now = datetime.now(timezone.utc)
    for sale in sales:
        sale["is_running"] = sale.get("is_active", True) and is_window_open(sale["start_date"], sale["end_date"], now)
    return {"flash_sales": sales}

async def _check_sale_products(products: list):
    product_ids = [p["product_id"] for p in products]
    if len(set(product_ids)) != len(product_ids):
        raise HTTPException(status_code=400, detail="A product can only appear once per flash sale")
    found = await db.products.count_documents({"id": {"$in": product_ids}})
    if found != len(product_ids):
        raise HTTPException(status_code=400, detail="One or more products not found")
    for entry in products:
        if entry["discount_type"] not in DISCOUNT_TYPES:
            raise HTTPException(status_code=400, detail="Invalid discount type")
        if entry["discount_type"] == "percentage" and entry["discount_value"] > 100:
            raise HTTPException(status_code=400, detail="Percentage discount cannot exceed 100")

@router.post("/flash-sales", status_code=201)
async def create_admin_flash_sale(sale_data: FlashSaleCreate, request: Request = None, admin: dict = Depends(require_admin)):
    if not sale_data.products:
        raise HTTPException(status_code=400, detail="At least one product is required")
    products = [{**p.model_dump(), "sold_quantity": 0} for p in sale_data.products]
    await _check_sale_products(products)

    sale_doc = {
        "id": str(uuid.uuid4()),
        "name": sale_data.name,
        "description": sale_data.description,
        "start_date": to_iso(sale_data.start_date),
        "end_date": to_iso(sale_data.end_date),
        "is_active": sale_data.is_active,
        "products": products,
        "created_at": now_iso()
    }
    await db.flash_sales.insert_one({**sale_doc})
    await create_audit_log(admin, "flash_sale_create", "flash_sale", sale_doc["id"], ip_address=client_ip(request))
    return {"message": "Flash sale created", "flash_sale": sale_doc}

@router.put("/flash-sales/{sale_id}")
async def update_admin_flash_sale(
    sale_id: str,
    update_data: FlashSaleUpdate,
    request: Request = None,
    admin: dict = Depends(require_admin)
):
    sale = await db.flash_sales.find_one({"id": sale_id}, {"_id": 0})
    if not sale:
        raise HTTPException(status_code=404, detail="Flash sale not found")

    update_dict = _changes(update_data)
    for field in ('start_date', 'end_date'):
        if field in update_dict:
            update_dict[field] = to_iso(update_dict[field])
    _check_window(update_dict.get('start_date', sale['start_date']), update_dict.get('end_date', sale['end_date']))
    if 'products' in update_dict:
        # Keep what has already sold for products that stay in the sale
        sold = {p['product_id']: p.get('sold_quantity', 0) for p in sale.get('products', [])}
        update_dict['products'] = [
            {**p, "sold_quantity": sold.get(p['product_id'], 0)} for p in update_dict['products']
        ]
        await _check_sale_products(update_dict['products'])
    update_dict["updated_at"] = now_iso()

    await db.flash_sales.update_one({"id": sale_id}, {"$set": update_dict})
    await create_audit_log(admin, "flash_sale_update", "flash_sale", sale_id, new_value=update_dict, ip_address=client_ip(request))
    return {"message": "Flash sale updated", "flash_sale": await db.flash_sales.find_one({"id": sale_id}, {"_id": 0})}

@router.delete("/flash-sales/{sale_id}")
async def delete_admin_flash_sale(sale_id: str, request: Request = None, admin: dict = Depends(require_admin)):
    result = await db.flash_sales.delete_one({"id": sale_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Flash sale not found")
    await create_audit_log(admin, "flash_sale_delete", "flash_sale", sale_id, ip_address=client_ip(request))
    return {"message": "Flash sale deleted"}

# ==================== STATS ====================
@router.get("/stats")
async def get_promotion_stats(admin: dict = Depends(require_admin)):
    now = datetime.now(timezone.utc)
    coupons = await db.coupons.find({}, {"_id": 0}).to_list(1000)
    sales = await db.flash_sales.find({"is_active": True}, {"_id": 0, "start_date": 1, "end_date": 1}).to_list(1000)

    active_coupons = [
        c for c in coupons
        if c.get("is_active", True) and is_window_open(c.get("start_date"), c.get("end_date"), now)
    ]
    active_flash_sales = [s for s in sales if is_window_open(s["start_date"], s["end_date"], now)]

    return {
        "active_coupons": len(active_coupons),
        "active_flash_sales": len(active_flash_sales),
        "total_savings": round(sum(estimate_coupon_savings(c) for c in coupons), 2)
    }
