from fastapi import APIRouter, HTTPException, Depends, Request, Query
import logging
import math
import re
import uuid

from storefront.core.config import ADMIN_PAGE_SIZE, DEFAULT_LOW_STOCK_THRESHOLD
from storefront.core.security import require_admin
from storefront.db.mongo import db
from storefront.models.category import CategoryCreate, CategoryUpdate
from storefront.models.product import (
    ProductCreate, ProductUpdate, BulkOperation, LowStockThresholdUpdate, ProductImportRequest
)
from storefront.services.catalog import (
    AttributeValidationError, slugify, validate_product_attributes, is_low_stock,
    export_products_csv, read_csv_rows, product_from_csv_row
)
from storefront.services.utils import create_audit_log, client_ip, now_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin-catalog"])

STOCK_BUCKETS = ["Out of Stock", "Low Stock", "11-50", "51-100", "100+"]

def _page(total: int, page: int) -> dict:
    return {
        "total": total,
        "total_pages": math.ceil(total / ADMIN_PAGE_SIZE),
        "current_page": page
    }

async def _category_names() -> dict:
    categories = await db.categories.find({}, {"_id": 0, "id": 1, "name": 1}).to_list(1000)
    return {c['id']: c['name'] for c in categories}

async def _load_category(category_id: str) -> dict:
    category = await db.categories.find_one({"id": category_id}, {"_id": 0})
    if not category:
        raise HTTPException(status_code=400, detail="Category not found")
    return category

def _with_variant_ids(variants: list) -> list:
    return [{**v, "id": v.get("id") or str(uuid.uuid4())} for v in variants]

# ==================== PRODUCTS ====================
@router.get("/products")
async def get_admin_products(
    admin: dict = Depends(require_admin),
    page: int = Query(1, ge=1),
    category: str = None,
    min_price: float = None,
    max_price: float = None,
    search: str = None,
    stock: int = None
):
    query = {}
    if category:
        found = await db.categories.find_one({"$or": [{"id": category}, {"name": category}]}, {"_id": 0, "id": 1})
        query["category_id"] = found["id"] if found else category
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}}
        ]
    if stock is not None:
        query["stock"] = stock

    total = await db.products.count_documents(query)
    products = await db.products.find(query, {"_id": 0}).sort("created_at", -1) \
        .skip((page - 1) * ADMIN_PAGE_SIZE).limit(ADMIN_PAGE_SIZE).to_list(ADMIN_PAGE_SIZE)

    names = await _category_names()
    for product in products:
        product["category"] = names.get(product.get("category_id"), "Uncategorized")

    return {"products": products, **_page(total, page)}

@router.get("/products/analytics")
async def get_product_analytics(admin: dict = Depends(require_admin)):
    products = await db.products.find({}, {"_id": 0}).to_list(10000)
    names = await _category_names()

    total_products = len(products)
    out_of_stock = [p for p in products if p.get('stock', 0) == 0]
    low_stock = [p for p in products if p.get('stock', 0) > 0 and is_low_stock(p)]

    category_distribution = {}
    for product in products:
        name = names.get(product.get('category_id'), "Uncategorized")
        category_distribution[name] = category_distribution.get(name, 0) + 1

    top_products = sorted(products, key=lambda p: p.get('sales_count', 0), reverse=True)[:5]

    return {
        "total_products": total_products,
        "total_sales": sum(p.get('sales_count', 0) for p in products),
        "total_revenue": round(sum(p.get('total_revenue', 0) for p in products), 2),
        "average_price": round(sum(p.get('price', 0) for p in products) / total_products, 2) if total_products else 0,
        "low_stock_count": len(low_stock),
        "out_of_stock_count": len(out_of_stock),
        "category_distribution": category_distribution,
        "top_products": {
            "labels": [p['name'] for p in top_products],
            "sales": [p.get('sales_count', 0) for p in top_products],
            "revenue": [round(p.get('total_revenue', 0), 2) for p in top_products]
        },
        "stock_levels": {
            "labels": STOCK_BUCKETS,
            "data": [
                len(out_of_stock),
                len(low_stock),
                len([p for p in products if p.get('stock', 0) > 10 and p.get('stock', 0) <= 50]),
                len([p for p in products if p.get('stock', 0) > 50 and p.get('stock', 0) <= 100]),
                len([p for p in products if p.get('stock', 0) > 100])
            ]
        }
    }

@router.get("/products/low-stock")
async def get_low_stock_products(admin: dict = Depends(require_admin), page: int = Query(1, ge=1)):
    products = await db.products.find({}, {"_id": 0}).sort("stock", 1).to_list(10000)
    low = [p for p in products if is_low_stock({**p, "low_stock_threshold": p.get('low_stock_threshold') or DEFAULT_LOW_STOCK_THRESHOLD})]

    start = (page - 1) * ADMIN_PAGE_SIZE
    page_items = low[start:start + ADMIN_PAGE_SIZE]
    names = await _category_names()
    for product in page_items:
        threshold = product.get('low_stock_threshold') or DEFAULT_LOW_STOCK_THRESHOLD
        product["category"] = names.get(product.get("category_id"), "Uncategorized")
        product["low_stock_threshold"] = threshold
        product["stock_status"] = "Out of Stock" if product.get('stock', 0) == 0 else "Low Stock"
        product["stock_percentage"] = round(product.get('stock', 0) / threshold * 100)

    return {"products": page_items, **_page(len(low), page)}

@router.put("/products/low-stock")
async def update_low_stock_threshold(
    update_data: LowStockThresholdUpdate,
    request: Request = None,
    admin: dict = Depends(require_admin)
):
    result = await db.products.update_one(
        {"id": update_data.product_id},
        {"$set": {"low_stock_threshold": update_data.low_stock_threshold, "updated_at": now_iso()}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")

    await create_audit_log(
        admin, "product_threshold_update", "product", update_data.product_id,
        new_value={"low_stock_threshold": update_data.low_stock_threshold},
        ip_address=client_ip(request)
    )
    return await db.products.find_one({"id": update_data.product_id}, {"_id": 0})

@router.get("/products/sales")
async def get_product_sales(
    admin: dict = Depends(require_admin),
    page: int = Query(1, ge=1),
    type: str = "best"
):
    direction = -1 if type == "best" else 1
    total = await db.products.count_documents({})
    products = await db.products.find({}, {"_id": 0}).sort("sales_count", direction) \
        .skip((page - 1) * ADMIN_PAGE_SIZE).limit(ADMIN_PAGE_SIZE).to_list(ADMIN_PAGE_SIZE)

    names = await _category_names()
    for product in products:
        product["category"] = names.get(product.get("category_id"), "Uncategorized")
        product["sales_count"] = product.get("sales_count", 0)
        product["revenue"] = round(product.get("total_revenue", 0), 2)

    return {"products": products, **_page(total, page)}

@router.get("/products/most-viewed")
async def get_admin_most_viewed(admin: dict = Depends(require_admin), limit: int = Query(10, ge=1, le=100)):
    products = await db.products.find({}, {"_id": 0}).sort("views", -1).limit(limit).to_list(limit)
    names = await _category_names()
    for product in products:
        product["category"] = names.get(product.get("category_id"), "Uncategorized")
        product["views"] = product.get("views", 0)
    return {"products": products}

@router.post("/products/bulk")
async def bulk_products(operation: BulkOperation, request: Request = None, admin: dict = Depends(require_admin)):
    if not operation.product_ids:
        raise HTTPException(status_code=400, detail="Invalid request parameters")
    selector = {"id": {"$in": operation.product_ids}}

    if operation.operation == "update-price":
        try:
            price = float(operation.value)
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="Invalid price value")
        if price < 0:
            raise HTTPException(status_code=400, detail="Invalid price value")
        result = await db.products.update_many(selector, {"$set": {"price": price, "updated_at": now_iso()}})
        affected = result.modified_count
    elif operation.operation == "update-stock":
        try:
            stock = int(operation.value)
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="Invalid stock value")
        if stock < 0:
            raise HTTPException(status_code=400, detail="Invalid stock value")
        result = await db.products.update_many(selector, {"$set": {"stock": stock, "updated_at": now_iso()}})
        affected = result.modified_count
    elif operation.operation == "categorize":
        if not operation.value:
            raise HTTPException(status_code=400, detail="Category is required")
        await _load_category(operation.value)
        result = await db.products.update_many(selector, {"$set": {"category_id": operation.value, "updated_at": now_iso()}})
        affected = result.modified_count
    elif operation.operation == "delete":
        result = await db.products.delete_many(selector)
        affected = result.deleted_count
    else:
        raise HTTPException(status_code=400, detail="Invalid operation")

    await create_audit_log(
        admin, f"product_bulk_{operation.operation}", "product", ",".join(operation.product_ids),
        new_value={"value": operation.value},
        ip_address=client_ip(request)
    )
    return {"message": "Bulk operation completed successfully", "affected": affected}

@router.get("/products/export")
async def export_products(admin: dict = Depends(require_admin)):
    products = await db.products.find({}, {"_id": 0}).sort("created_at", -1).to_list(10000)
    categories = await db.categories.find({}, {"_id": 0}).to_list(1000)
    return {"csv_data": export_products_csv(products, categories), "total_records": len(products)}

@router.post("/products/import")
async def import_products(import_data: ProductImportRequest, request: Request = None, admin: dict = Depends(require_admin)):
    try:
        rows = read_csv_rows(import_data.csv_data)
    except AttributeValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    categories = await db.categories.find({}, {"_id": 0}).to_list(1000)
    categories_by_name = {c['name']: c for c in categories}

    new_categories = []
    for name in dict.fromkeys(row['category'].strip() for row in rows):
        if name not in categories_by_name:
            category = {
                "id": str(uuid.uuid4()),
                "name": name,
                "slug": slugify(name),
                "description": f"Category for {name} products",
                "attributes": [],
                "created_at": now_iso()
            }
            categories_by_name[name] = category
            new_categories.append(category)

    now = now_iso()
    products = []
    for row in rows:
        category = categories_by_name[row['category'].strip()]
        try:
            fields = product_from_csv_row(row, category)
        except AttributeValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        products.append({
            "id": str(uuid.uuid4()),
            **fields,
            "category_id": category['id'],
            "low_stock_threshold": DEFAULT_LOW_STOCK_THRESHOLD,
            "notify_low_stock": True,
            "featured": False,
            "variants": [],
            "views": 0,
            "sales_count": 0,
            "total_revenue": 0,
            "created_at": now
        })

    if new_categories:
        await db.categories.insert_many(new_categories)
        logger.info("Import created %d categories", len(new_categories))
    await db.products.insert_many(products)

    await create_audit_log(
        admin, "product_import", "product", "bulk",
        new_value={"count": len(products), "new_categories": [c['name'] for c in new_categories]},
        ip_address=client_ip(request)
    )
    return {
        "message": f"Successfully imported {len(products)} products. {len(new_categories)} new categories were created.",
        "count": len(products),
        "new_categories": len(new_categories)
    }

@router.get("/products/{product_id}")
async def get_admin_product(product_id: str, admin: dict = Depends(require_admin)):
    product = await db.products.find_one({"id": product_id}, {"_id": 0})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product

@router.post("/products", status_code=201)
async def create_admin_product(product_data: ProductCreate, request: Request = None, admin: dict = Depends(require_admin)):
    category = await _load_category(product_data.category_id)
    try:
        validate_product_attributes(product_data.attributes, category)
    except AttributeValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    product = {
        "id": str(uuid.uuid4()),
        **product_data.model_dump(),
        "views": 0,
        "last_viewed": None,
        "sales_count": 0,
        "last_sold": None,
        "total_revenue": 0,
        "created_at": now_iso()
    }
    product["variants"] = _with_variant_ids(product["variants"])
    await db.products.insert_one({**product})

    await create_audit_log(admin, "product_create", "product", product["id"], ip_address=client_ip(request))
    return product

@router.put("/products/{product_id}")
async def update_admin_product(
    product_id: str,
    update_data: ProductUpdate,
    request: Request = None,
    admin: dict = Depends(require_admin)
):
    product = await db.products.find_one({"id": product_id}, {"_id": 0})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    update_dict = {k: v for k, v in update_data.model_dump().items() if v is not None}
    if 'attributes' in update_dict or 'category_id' in update_dict:
        category = await _load_category(update_dict.get('category_id', product['category_id']))
        try:
            validate_product_attributes(update_dict.get('attributes', product.get('attributes')), category)
        except AttributeValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
    if 'variants' in update_dict:
        update_dict['variants'] = _with_variant_ids(update_dict['variants'])
    update_dict["updated_at"] = now_iso()

    await db.products.update_one({"id": product_id}, {"$set": update_dict})
    updated = await db.products.find_one({"id": product_id}, {"_id": 0})
    if 'stock' in update_dict and updated.get('notify_low_stock', True) and is_low_stock(updated):
        logger.warning("Low stock alert for product %s: %s items remaining", updated['name'], updated['stock'])

    await create_audit_log(
        admin, "product_update", "product", product_id,
        old_value={k: product.get(k) for k in update_dict.keys()},
        new_value=update_dict,
        ip_address=client_ip(request)
    )
    return updated

@router.delete("/products/{product_id}")
async def delete_admin_product(product_id: str, request: Request = None, admin: dict = Depends(require_admin)):
    result = await db.products.delete_one({"id": product_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Product not found")
    await create_audit_log(admin, "product_delete", "product", product_id, ip_address=client_ip(request))
    return {"message": "Product deleted successfully"}

# ==================== CATEGORIES ====================
@router.get("/categories")
async def get_admin_categories(admin: dict = Depends(require_admin)):
    categories = await db.categories.find({}, {"_id": 0}).sort("name", 1).to_list(1000)
    for category in categories:
        category["product_count"] = await db.products.count_documents({"category_id": category["id"]})
    return categories

async def _ensure_unique_name(name: str, exclude_id: str = None):
    query = {"slug": slugify(name)}
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    if await db.categories.find_one(query):
        raise HTTPException(status_code=400, detail="Category with this name already exists")

@router.post("/categories", status_code=201)
async def create_admin_category(category_data: CategoryCreate, request: Request = None, admin: dict = Depends(require_admin)):
    name = category_data.name.strip()
    if not name or not slugify(name):
        raise HTTPException(status_code=400, detail="Category name is required")
    await _ensure_unique_name(name)

    category = {
        "id": str(uuid.uuid4()),
        "name": name,
        "slug": slugify(name),
        "description": category_data.description,
        "attributes": [a.model_dump() for a in category_data.attributes],
        "created_at": now_iso()
    }
    await db.categories.insert_one({**category})
    await create_audit_log(admin, "category_create", "category", category["id"], ip_address=client_ip(request))
    return category

@router.put("/categories/{category_id}")
async def update_admin_category(
    category_id: str,
    update_data: CategoryUpdate,
    request: Request = None,
    admin: dict = Depends(require_admin)
):
    category = await db.categories.find_one({"id": category_id}, {"_id": 0})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    update_dict = {k: v for k, v in update_data.model_dump().items() if v is not None}
    if 'name' in update_dict:
        update_dict['name'] = update_dict['name'].strip()
        if not slugify(update_dict['name']):
            raise HTTPException(status_code=400, detail="Category name is required")
        await _ensure_unique_name(update_dict['name'], exclude_id=category_id)
        update_dict['slug'] = slugify(update_dict['name'])
    update_dict["updated_at"] = now_iso()

    await db.categories.update_one({"id": category_id}, {"$set": update_dict})
    await create_audit_log(
        admin, "category_update", "category", category_id,
        old_value={k: category.get(k) for k in update_dict.keys()},
        new_value=update_dict,
        ip_address=client_ip(request)
    )
    return await db.categories.find_one({"id": category_id}, {"_id": 0})

@router.delete("/categories/{category_id}")
async def delete_admin_category(category_id: str, request: Request = None, admin: dict = Depends(require_admin)):
    category = await db.categories.find_one({"id": category_id}, {"_id": 0})
    if not category:
        raise HTTPException(status_code=404, detail="Category not found")

    product_count = await db.products.count_documents({"category_id": category_id})
    if product_count > 0:
        raise HTTPException(status_code=400, detail="Cannot delete category with associated products")

    await db.categories.delete_one({"id": category_id})
    await create_audit_log(admin, "category_delete", "category", category_id, ip_address=client_ip(request))
    return {"message": "Category deleted successfully"}
