from fastapi import APIRouter, HTTPException, Query
from typing import Optional
import re

from storefront.db.mongo import db
from storefront.services.pricing import get_active_flash_sale, get_product_price
from storefront.services.utils import now_iso

router = APIRouter(prefix="/products", tags=["products"])

SORT_OPTIONS = {
    "price_asc": ("price", 1),
    "price_desc": ("price", -1),
    "name_asc": ("name", 1),
    "name_desc": ("name", -1),
}

async def _category_names() -> dict:
    categories = await db.categories.find({}, {"_id": 0, "id": 1, "name": 1}).to_list(1000)
    return {c['id']: c['name'] for c in categories}

@router.get("")
async def list_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort: Optional[str] = None,
    skip: int = 0,
    limit: int = Query(50, le=200)
):
    query = {}
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}}
        ]
    if category:
        query["category_id"] = category

    sort_field, direction = SORT_OPTIONS.get(sort, ("created_at", -1))
    products = await db.products.find(query, {"_id": 0}).sort(sort_field, direction).skip(skip).limit(limit).to_list(limit)

    names = await _category_names()
    for product in products:
        product["category"] = names.get(product.get("category_id"), "Uncategorized")

    return {"products": products, "total": await db.products.count_documents(query)}

@router.get("/most-viewed")
async def most_viewed_products(limit: int = Query(8, ge=1, le=50)):
    products = await db.products.find(
        {"views": {"$gt": 0}},
        {"_id": 0, "id": 1, "name": 1, "price": 1, "cover_image": 1, "views": 1, "stock": 1}
    ).sort("views", -1).limit(limit).to_list(limit)
    return products

@router.get("/{product_id}")
async def get_product(product_id: str):
    product = await db.products.find_one({"id": product_id}, {"_id": 0})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    category = await db.categories.find_one({"id": product.get("category_id")}, {"_id": 0})
    product["category"] = category
    product["pricing"] = await get_product_price(product)
    return product

@router.get("/{product_id}/flash-sale")
async def get_product_flash_sale(product_id: str):
    sale, entry = await get_active_flash_sale(product_id)
    if not sale:
        return {"flash_sale": None}
    return {
        "flash_sale": {
            "id": sale['id'],
            "name": sale['name'],
            "description": sale.get('description', ''),
            "start_date": sale['start_date'],
            "end_date": sale['end_date'],
            "discount_type": entry['discount_type'],
            "discount_value": entry['discount_value'],
            "max_quantity_per_customer": entry.get('max_quantity_per_customer'),
            "remaining_quantity": (
                entry['total_quantity'] - entry.get('sold_quantity', 0)
                if entry.get('total_quantity') is not None else None
            )
        }
    }

@router.get("/{product_id}/price")
async def get_price(product_id: str, variant_id: Optional[str] = None):
    product = await db.products.find_one({"id": product_id}, {"_id": 0})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    variant = None
    if variant_id:
        variant = next((v for v in product.get('variants', []) if v.get('id') == variant_id), None)
        if not variant:
            raise HTTPException(status_code=404, detail="Variant not found")
    return await get_product_price(product, variant)

@router.post("/{product_id}/view")
async def record_view(product_id: str):
    result = await db.products.update_one(
        {"id": product_id},
        {"$inc": {"views": 1}, "$set": {"last_viewed": now_iso()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True}

@router.get("/{product_id}/reviews")
async def get_product_reviews(product_id: str, skip: int = 0, limit: int = 20):
    reviews = await db.reviews.find(
        {"product_id": product_id, "status": "approved"},
        {"_id": 0}
    ).sort("created_at", -1).to_list(1000)

    average = round(sum(r['rating'] for r in reviews) / len(reviews), 1) if reviews else 0
    page = reviews[skip:skip + limit]

    user_ids = list({r['user_id'] for r in page})
    users = await db.users.find({"id": {"$in": user_ids}}, {"_id": 0, "id": 1, "name": 1}).to_list(len(user_ids) or 1)
    names = {u['id']: u['name'] for u in users}
    for review in page:
        review["user_name"] = names.get(review['user_id'], "Customer")

    return {"reviews": page, "total": len(reviews), "average_rating": average}
