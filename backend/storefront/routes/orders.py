from fastapi import APIRouter, HTTPException, Depends
from datetime import timedelta

from storefront.core.config import ESTIMATED_DELIVERY_DAYS
from storefront.core.security import require_auth
from storefront.db.mongo import db
from storefront.services.promotions import to_datetime

router = APIRouter(prefix="/orders", tags=["orders"])

@router.get("")
async def get_my_orders(user: dict = Depends(require_auth), skip: int = 0, limit: int = 50):
    orders = await db.orders.find(
        {"user_id": user['id']},
        {"_id": 0}
    ).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return orders

@router.get("/active")
async def get_active_orders(user: dict = Depends(require_auth)):
    orders = await db.orders.find(
        {"user_id": user['id'], "status": {"$in": ["pending", "processing"]}},
        {"_id": 0}
    ).sort("created_at", -1).to_list(100)

    for order in orders:
        created_at = to_datetime(order['created_at'])
        order["estimated_delivery"] = (created_at + timedelta(days=ESTIMATED_DELIVERY_DAYS)).isoformat()
    return orders

@router.get("/{order_id}")
async def get_order(order_id: str, user: dict = Depends(require_auth)):
    order = await db.orders.find_one({"id": order_id, "user_id": user['id']}, {"_id": 0})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order
