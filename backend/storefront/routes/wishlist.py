from fastapi import APIRouter, HTTPException, Depends
import uuid

from storefront.core.security import require_auth
from storefront.db.mongo import db
from storefront.models.wishlist import WishlistAdd
from storefront.services.utils import now_iso

router = APIRouter(prefix="/wishlist", tags=["wishlist"])

@router.get("")
async def get_wishlist(user: dict = Depends(require_auth)):
    wishlist = await db.wishlists.find_one({"user_id": user['id']}, {"_id": 0})
    if not wishlist:
        return {"products": []}

    product_ids = [p['product_id'] for p in wishlist.get('products', [])]
    products = await db.products.find({"id": {"$in": product_ids}}, {"_id": 0}).to_list(len(product_ids) or 1)
    products_by_id = {p['id']: p for p in products}

    entries = []
    for entry in wishlist.get('products', []):
        product = products_by_id.get(entry['product_id'])
        if product:
            entries.append({"product": product, "added_at": entry['added_at']})
    return {"products": entries}

@router.post("")
async def add_to_wishlist(request: WishlistAdd, user: dict = Depends(require_auth)):
    product = await db.products.find_one({"id": request.product_id}, {"_id": 0, "id": 1})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    wishlist = await db.wishlists.find_one({"user_id": user['id']}, {"_id": 0})
    if not wishlist:
        await db.wishlists.insert_one({
            "id": str(uuid.uuid4()),
            "user_id": user['id'],
            "products": [{"product_id": request.product_id, "added_at": now_iso()}],
            "created_at": now_iso()
        })
        return {"message": "Product added to wishlist"}

    if any(p['product_id'] == request.product_id for p in wishlist.get('products', [])):
        raise HTTPException(status_code=400, detail="Product already in wishlist")

    await db.wishlists.update_one(
        {"user_id": user['id']},
        {"$push": {"products": {"product_id": request.product_id, "added_at": now_iso()}}}
    )
    return {"message": "Product added to wishlist"}

@router.delete("/{product_id}")
async def remove_from_wishlist(product_id: str, user: dict = Depends(require_auth)):
    result = await db.wishlists.update_one(
        {"user_id": user['id'], "products.product_id": product_id},
        {"$pull": {"products": {"product_id": product_id}}}
    )
    if result.modified_count == 0:
        raise HTTPException(status_code=404, detail="Product not in wishlist")
    return {"message": "Product removed from wishlist"}
