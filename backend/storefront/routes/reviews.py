from fastapi import APIRouter, HTTPException, Depends
import uuid

from storefront.core.security import require_auth
from storefront.db.mongo import db
from storefront.models.review import ReviewCreate, ReviewUpdate
from storefront.services.utils import now_iso

router = APIRouter(prefix="/reviews", tags=["reviews"])

@router.get("")
async def get_my_reviews(user: dict = Depends(require_auth)):
    reviews = await db.reviews.find({"user_id": user['id']}, {"_id": 0}).sort("created_at", -1).to_list(500)

    product_ids = list({r['product_id'] for r in reviews})
    products = await db.products.find(
        {"id": {"$in": product_ids}}, {"_id": 0, "id": 1, "name": 1, "cover_image": 1}
    ).to_list(len(product_ids) or 1)
    products_by_id = {p['id']: p for p in products}
    for review in reviews:
        review["product"] = products_by_id.get(review['product_id'])
    return reviews

@router.post("")
async def create_review(review_data: ReviewCreate, user: dict = Depends(require_auth)):
    product = await db.products.find_one({"id": review_data.product_id}, {"_id": 0, "id": 1})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    existing = await db.reviews.find_one({"user_id": user['id'], "product_id": review_data.product_id})
    if existing:
        raise HTTPException(status_code=400, detail="You have already reviewed this product")

    order = await db.orders.find_one({
        "user_id": user['id'],
        "items.product_id": review_data.product_id,
        "status": {"$in": ["processing", "completed"]}
    }, {"_id": 0, "id": 1})

    review = {
        "id": str(uuid.uuid4()),
        "user_id": user['id'],
        "product_id": review_data.product_id,
        "order_id": order['id'] if order else None,
        "rating": review_data.rating,
        "title": review_data.title,
        "comment": review_data.comment,
        "images": review_data.images,
        "is_verified_purchase": bool(order),
        "helpful_votes": 0,
        "status": "pending",
        "created_at": now_iso()
    }
    await db.reviews.insert_one({**review})
    return review

@router.put("/{review_id}")
async def update_review(review_id: str, update_data: ReviewUpdate, user: dict = Depends(require_auth)):
    review = await db.reviews.find_one({"id": review_id, "user_id": user['id']}, {"_id": 0})
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")

    update_dict = {k: v for k, v in update_data.model_dump().items() if v is not None}
    if update_dict:
        # Edited reviews go back through moderation
        update_dict["status"] = "pending"
        update_dict["updated_at"] = now_iso()
        await db.reviews.update_one({"id": review_id}, {"$set": update_dict})

    return await db.reviews.find_one({"id": review_id}, {"_id": 0})

@router.delete("/{review_id}")
async def delete_review(review_id: str, user: dict = Depends(require_auth)):
    result = await db.reviews.delete_one({"id": review_id, "user_id": user['id']})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Review not found")
    return {"message": "Review deleted"}
