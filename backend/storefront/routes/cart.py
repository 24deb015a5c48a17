from fastapi import APIRouter, HTTPException, Depends
import uuid

from storefront.core.security import require_auth
from storefront.db.mongo import db
from storefront.models.cart import CartAddRequest, CartUpdateRequest, CartSyncRequest
from storefront.services.cart import reconcile_cart, available_stock, line_key
from storefront.services.utils import now_iso

router = APIRouter(prefix="/cart", tags=["cart"])

async def _load_cart(user_id: str) -> dict:
    cart = await db.carts.find_one({"user_id": user_id}, {"_id": 0})
    if cart:
        return cart
    cart = {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "items": [],
        "created_at": now_iso(),
        "updated_at": now_iso()
    }
    await db.carts.insert_one({**cart})
    return cart

async def _save_items(cart: dict, items: list):
    cart["items"] = items
    await db.carts.update_one(
        {"user_id": cart["user_id"]},
        {"$set": {"items": items, "updated_at": now_iso()}}
    )

async def _cart_response(cart: dict, user_id: str) -> dict:
    quote = await reconcile_cart(cart["items"], user_id)
    return {
        "id": cart["id"],
        "items": quote["items"],
        "subtotal": quote["subtotal"],
        "issues": quote["issues"],
        "item_count": sum(i["quantity"] for i in quote["items"])
    }

async def _stock_for(product_id: str, variant_id: str = None) -> tuple:
    product = await db.products.find_one({"id": product_id}, {"_id": 0})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    available = available_stock(product, variant_id)
    if available is None:
        raise HTTPException(status_code=404, detail="Variant not found")
    return product, available

def _held(items: list, product_id: str, variant_id: str = None, skip=None) -> int:
    """Units already in the cart that draw on the same product or variant stock"""
    return sum(
        i["quantity"] for i in items
        if i is not skip and i["product_id"] == product_id and i.get("variant_id") == variant_id
    )

@router.get("")
async def get_cart(user: dict = Depends(require_auth)):
    cart = await _load_cart(user['id'])
    return await _cart_response(cart, user['id'])

@router.post("")
async def add_to_cart(request: CartAddRequest, user: dict = Depends(require_auth)):
    product, available = await _stock_for(request.product_id, request.variant_id)
    cart = await _load_cart(user['id'])

    new_item = request.model_dump()
    key = line_key(new_item)
    items = cart["items"]
    existing = next((i for i in items if line_key(i) == key), None)
    wanted = request.quantity + (existing["quantity"] if existing else 0)
    if request.quantity + _held(items, request.product_id, request.variant_id) > available:
        raise HTTPException(status_code=400, detail=f"Only {available} items available for {product['name']}")

    if existing:
        existing["quantity"] = wanted
    else:
        items.append({"id": str(uuid.uuid4()), **new_item})

    await _save_items(cart, items)
    return await _cart_response(cart, user['id'])

@router.put("")
async def update_cart_item(request: CartUpdateRequest, user: dict = Depends(require_auth)):
    cart = await _load_cart(user['id'])
    item = next((i for i in cart["items"] if i.get("id") == request.item_id), None)
    if not item:
        raise HTTPException(status_code=404, detail="Cart item not found")

    product, available = await _stock_for(item["product_id"], item.get("variant_id"))
    if request.quantity + _held(cart["items"], item["product_id"], item.get("variant_id"), skip=item) > available:
        raise HTTPException(status_code=400, detail=f"Only {available} items available for {product['name']}")

    item["quantity"] = request.quantity
    await _save_items(cart, cart["items"])
    return await _cart_response(cart, user['id'])

@router.delete("/{item_id}")
async def remove_cart_item(item_id: str, user: dict = Depends(require_auth)):
    cart = await _load_cart(user['id'])
    items = [i for i in cart["items"] if i.get("id") != item_id]
    if len(items) == len(cart["items"]):
        raise HTTPException(status_code=404, detail="Cart item not found")

    await _save_items(cart, items)
    return await _cart_response(cart, user['id'])

@router.delete("")
async def clear_cart(user: dict = Depends(require_auth)):
    cart = await _load_cart(user['id'])
    await _save_items(cart, [])
    return {"message": "Cart cleared"}

@router.post("/sync")
async def sync_cart(request: CartSyncRequest, user: dict = Depends(require_auth)):
    """Merge a browser-held cart into the server cart, clamped to stock"""
    cart = await _load_cart(user['id'])
    items = cart["items"]
    skipped = []

    for incoming in request.items:
        line = incoming.model_dump()
        if line["quantity"] < 1:
            skipped.append({"product_id": line["product_id"], "issue": "invalid_quantity"})
            continue
        product = await db.products.find_one({"id": line["product_id"]}, {"_id": 0})
        available = available_stock(product, line["variant_id"]) if product else None
        if available is None:
            skipped.append({"product_id": line["product_id"], "issue": "not_found"})
            continue

        existing = next((i for i in items if line_key(i) == line_key(line)), None)
        current = existing["quantity"] if existing else 0
        room = max(0, available - _held(items, line["product_id"], line["variant_id"], skip=existing))
        quantity = min(current + line["quantity"], room)
        if quantity < current + line["quantity"]:
            skipped.append({"product_id": line["product_id"], "issue": "insufficient_stock", "available": available})
        if quantity <= 0:
            continue
        if existing:
            existing["quantity"] = quantity
        else:
            items.append({"id": str(uuid.uuid4()), **line, "quantity": quantity})

    await _save_items(cart, items)
    response = await _cart_response(cart, user['id'])
    response["sync_issues"] = skipped
    return response
