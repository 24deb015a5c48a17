from fastapi import APIRouter, HTTPException

from storefront.db.mongo import db

router = APIRouter(prefix="/categories", tags=["categories"])

@router.get("")
async def list_categories():
    categories = await db.categories.find({}, {"_id": 0}).sort("name", 1).to_list(500)
    return categories

@router.get("/{slug}")
async def get_category(slug: str):
    category = await db.categories.find_one({"slug": slug}, {"_id": 0})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    products = await db.products.find({"category_id": category['id']}, {"_id": 0}).sort("created_at", -1).to_list(500)
    return {"category": category, "products": products}
