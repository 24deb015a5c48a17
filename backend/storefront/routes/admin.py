from fastapi import APIRouter, HTTPException, Depends, Request
from datetime import datetime, timezone, timedelta
import re
import uuid

from storefront.core.config import MIN_PASSWORD_LENGTH, USER_STATUSES, ORDER_STATUSES, REVIEW_STATUSES, APP_NAME
from storefront.core.security import require_admin, hash_password
from storefront.db.mongo import db
from storefront.models.order import OrderStatusUpdate
from storefront.models.review import ReviewStatusUpdate
from storefront.models.settings import GeneralSettings
from storefront.models.user import AdminUserCreate, UserStatusUpdate, PasswordChange
from storefront.routes.user import change_password
from storefront.services.catalog import is_low_stock
from storefront.services.orders import restock_order
from storefront.services.promotions import is_window_open, remaining_uses
from storefront.services.utils import create_audit_log, client_ip, now_iso

router = APIRouter(prefix="/admin", tags=["admin"])

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PAID_STATUSES = ["processing", "completed"]

# ==================== DASHBOARD STATS ====================
@router.get("/stats")
async def get_admin_stats(admin: dict = Depends(require_admin)):
    now = datetime.now(timezone.utc)
    month_ago = now - timedelta(days=30)

    # User stats
    total_customers = await db.users.count_documents({"role": "customer"})
    blocked_users = await db.users.count_documents({"status": "blocked"})
    month_signups = await db.users.count_documents({"role": "customer", "created_at": {"$gte": month_ago.isoformat()}})

    # Order stats
    orders = await db.orders.find({}, {"_id": 0, "id": 1, "status": 1, "total": 1, "created_at": 1, "user_email": 1}).to_list(10000)
    status_counts = {s: 0 for s in ORDER_STATUSES}
    for order in orders:
        status_counts[order.get('status', 'pending')] = status_counts.get(order.get('status', 'pending'), 0) + 1
    paid = [o for o in orders if o.get('status') in PAID_STATUSES]
    total_revenue = sum(o.get('total', 0) for o in paid)
    month_revenue = sum(o.get('total', 0) for o in paid if o.get('created_at', '') >= month_ago.isoformat())
    recent_orders = sorted(orders, key=lambda o: o.get('created_at', ''), reverse=True)[:5]

    # Product stats
    products = await db.products.find({}, {"_id": 0, "stock": 1, "low_stock_threshold": 1}).to_list(10000)
    out_of_stock = len([p for p in products if p.get('stock', 0) == 0])
    low_stock = len([p for p in products if p.get('stock', 0) > 0 and is_low_stock(p)])

    # Promotions
    coupons = await db.coupons.find({"is_active": True}, {"_id": 0}).to_list(1000)
    active_coupons = len([
        c for c in coupons
        if is_window_open(c.get('start_date'), c.get('end_date'), now) and remaining_uses(c) != 0
    ])
    sales = await db.flash_sales.find({"is_active": True}, {"_id": 0, "start_date": 1, "end_date": 1}).to_list(1000)
    active_flash_sales = len([s for s in sales if is_window_open(s['start_date'], s['end_date'], now)])

    return {
        "users": {
            "customers": total_customers,
            "blocked": blocked_users,
            "month_signups": month_signups
        },
        "orders": {
            "total": len(orders),
            "by_status": status_counts,
            "recent": recent_orders
        },
        "revenue": {
            "total": round(total_revenue, 2),
            "last_30_days": round(month_revenue, 2)
        },
        "products": {
            "total": len(products),
            "low_stock": low_stock,
            "out_of_stock": out_of_stock
        },
        "promotions": {
            "active_coupons": active_coupons,
            "active_flash_sales": active_flash_sales
        }
    }

# ==================== USERS MANAGEMENT ====================
@router.get("/users")
async def get_admin_users(
    admin: dict = Depends(require_admin),
    search: str = None,
    status: str = None,
    skip: int = 0,
    limit: int = 50
):
    query = {}
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"email": {"$regex": pattern, "$options": "i"}},
            {"name": {"$regex": pattern, "$options": "i"}}
        ]
    if status:
        query["status"] = status

    users = await db.users.find(
        query,
        {"_id": 0, "password_hash": 0}
    ).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)

    for user in users:
        orders = await db.orders.find(
            {"user_id": user["id"], "status": {"$ne": "cancelled"}},
            {"_id": 0, "total": 1}
        ).to_list(1000)
        user["orders_count"] = len(orders)
        user["total_spent"] = round(sum(o.get("total", 0) for o in orders), 2)

    return {"users": users, "total": await db.users.count_documents(query)}

@router.post("/users")
async def create_admin_user(user_data: AdminUserCreate, request: Request = None, admin: dict = Depends(require_admin)):
    if user_data.role != "customer":
        raise HTTPException(status_code=400, detail="Only customer accounts can be created")
    if not user_data.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    if not EMAIL_PATTERN.match(user_data.email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if len(user_data.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    if user_data.status not in USER_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    email = user_data.email.lower()
    if await db.users.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")

    user_doc = {
        "id": str(uuid.uuid4()),
        "email": email,
        "name": user_data.name.strip(),
        "password_hash": hash_password(user_data.password),
        "role": "customer",
        "status": user_data.status,
        "session_version": 0,
        "created_at": now_iso()
    }
    await db.users.insert_one({**user_doc})
    await create_audit_log(admin, "user_create", "user", user_doc["id"], ip_address=client_ip(request))

    user_doc.pop("password_hash")
    return {"message": "User created successfully", "user": user_doc}

@router.patch("/users/{user_id}/status")
async def update_user_status(
    user_id: str,
    update_data: UserStatusUpdate,
    request: Request = None,
    admin: dict = Depends(require_admin)
):
    if update_data.status not in USER_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    user = await db.users.find_one({"id": user_id}, {"_id": 0})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.get("role") == "admin":
        raise HTTPException(status_code=403, detail="Cannot modify admin users")

    update = {"$set": {"status": update_data.status, "updated_at": now_iso()}}
    if update_data.status != "active":
        # Leaving the active state revokes live sessions
        update["$inc"] = {"session_version": 1}
    await db.users.update_one({"id": user_id}, update)

    await create_audit_log(
        admin, "user_status_update", "user", user_id,
        old_value={"status": user.get("status", "active")},
        new_value={"status": update_data.status},
        ip_address=client_ip(request)
    )
    return {"message": "User status updated successfully"}

# ==================== ORDERS ====================
@router.get("/orders")
async def get_admin_orders(
    admin: dict = Depends(require_admin),
    status: str = None,
    search: str = None,
    skip: int = 0,
    limit: int = 50
):
    query = {}
    if status:
        query["status"] = status
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"id": search},
            {"user_email": {"$regex": pattern, "$options": "i"}}
        ]

    orders = await db.orders.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return {"orders": orders, "total": await db.orders.count_documents(query)}

@router.get("/orders/{order_id}")
async def get_admin_order(order_id: str, admin: dict = Depends(require_admin)):
    order = await db.orders.find_one({"id": order_id}, {"_id": 0})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order

@router.patch("/orders/{order_id}")
async def update_order_status(
    order_id: str,
    update_data: OrderStatusUpdate,
    request: Request = None,
    admin: dict = Depends(require_admin)
):
    if update_data.status not in ORDER_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    order = await db.orders.find_one({"id": order_id}, {"_id": 0})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order["status"] == "cancelled" and update_data.status != "cancelled":
        raise HTTPException(status_code=400, detail="Cancelled orders cannot be reopened")

    if update_data.status == "cancelled" and order["status"] == "processing":
        await restock_order(order)

    await db.orders.update_one(
        {"id": order_id},
        {"$set": {"status": update_data.status, "updated_at": now_iso()}}
    )
    await create_audit_log(
        admin, "order_status_update", "order", order_id,
        old_value={"status": order["status"]},
        new_value={"status": update_data.status},
        ip_address=client_ip(request)
    )
    return await db.orders.find_one({"id": order_id}, {"_id": 0})

# ==================== REVIEWS ====================
@router.get("/reviews")
async def get_admin_reviews(
    admin: dict = Depends(require_admin),
    status: str = None,
    skip: int = 0,
    limit: int = 50
):
    query = {}
    if status:
        query["status"] = status

    reviews = await db.reviews.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)

    user_ids = list({r["user_id"] for r in reviews})
    product_ids = list({r["product_id"] for r in reviews})
    users = await db.users.find({"id": {"$in": user_ids}}, {"_id": 0, "id": 1, "name": 1, "email": 1}).to_list(len(user_ids) or 1)
    products = await db.products.find({"id": {"$in": product_ids}}, {"_id": 0, "id": 1, "name": 1}).to_list(len(product_ids) or 1)
    users_by_id = {u["id"]: u for u in users}
    products_by_id = {p["id"]: p for p in products}
    for review in reviews:
        review["user"] = users_by_id.get(review["user_id"])
        review["product"] = products_by_id.get(review["product_id"])

    return {"reviews": reviews, "total": await db.reviews.count_documents(query)}

@router.patch("/reviews/{review_id}")
async def moderate_review(
    review_id: str,
    update_data: ReviewStatusUpdate,
    request: Request = None,
    admin: dict = Depends(require_admin)
):
    if update_data.status not in REVIEW_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    review = await db.reviews.find_one({"id": review_id}, {"_id": 0})
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")

    await db.reviews.update_one(
        {"id": review_id},
        {"$set": {"status": update_data.status, "updated_at": now_iso()}}
    )
    await create_audit_log(
        admin, "review_moderate", "review", review_id,
        old_value={"status": review["status"]},
        new_value={"status": update_data.status},
        ip_address=client_ip(request)
    )
    return {"message": f"Review {update_data.status}"}

@router.delete("/reviews/{review_id}")
async def delete_admin_review(review_id: str, admin: dict = Depends(require_admin)):
    result = await db.reviews.delete_one({"id": review_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Review not found")
    await create_audit_log(admin, "review_delete", "review", review_id)
    return {"message": "Review deleted"}

# ==================== SETTINGS ====================
@router.get("/settings/general")
async def get_general_settings(admin: dict = Depends(require_admin)):
    settings = await db.settings.find_one({"type": "general"}, {"_id": 0})
    if not settings:
        settings = {
            "type": "general",
            "name": APP_NAME,
            "email": "",
            "description": "",
            "phone": "",
            "address": "",
            "currency": "USD",
            "timezone": "UTC"
        }
    return settings

@router.put("/settings/general")
async def update_general_settings(
    settings_update: GeneralSettings,
    request: Request = None,
    admin: dict = Depends(require_admin)
):
    if not settings_update.name.strip() or not settings_update.email.strip():
        raise HTTPException(status_code=400, detail="Store name and email are required")

    current = await db.settings.find_one({"type": "general"}, {"_id": 0})
    new_settings = {**settings_update.model_dump(), "updated_at": now_iso(), "updated_by": admin["id"]}

    await db.settings.update_one(
        {"type": "general"},
        {"$set": new_settings},
        upsert=True
    )
    await create_audit_log(
        admin, "settings_update", "settings", "general",
        old_value=current,
        new_value=new_settings,
        ip_address=client_ip(request)
    )
    return {"message": "Settings updated", "settings": {"type": "general", **new_settings}}

@router.post("/settings/security")
async def update_admin_password(request: PasswordChange, admin: dict = Depends(require_admin)):
    await change_password(admin, request)
    await create_audit_log(admin, "password_change", "user", admin["id"])
    return {"message": "Password updated successfully"}

# ==================== ERRORS ====================
@router.get("/errors")
async def get_admin_errors(
    admin: dict = Depends(require_admin),
    error_type: str = None,
    skip: int = 0,
    limit: int = 50
):
    query = {}
    if error_type:
        query["error_type"] = error_type

    errors = await db.error_logs.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return {"errors": errors, "total": await db.error_logs.count_documents(query)}

# ==================== AUDIT LOGS ====================
@router.get("/audit-logs")
async def get_audit_logs(
    admin: dict = Depends(require_admin),
    action: str = None,
    target_type: str = None,
    skip: int = 0,
    limit: int = 100
):
    query = {}
    if action:
        query["action"] = action
    if target_type:
        query["target_type"] = target_type

    logs = await db.audit_logs.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit).to_list(limit)
    return {"logs": logs, "total": await db.audit_logs.count_documents(query)}
