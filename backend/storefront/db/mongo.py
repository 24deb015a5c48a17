from motor.motor_asyncio import AsyncIOMotorClient

from storefront.core.config import MONGO_URL, DB_NAME

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]


async def ensure_indexes():
    """Create the unique and lookup indexes the storefront relies on"""
    await db.users.create_index("email", unique=True)
    await db.categories.create_index("slug", unique=True)
    await db.coupons.create_index("code", unique=True)
    await db.coupons.create_index([("start_date", 1), ("end_date", 1)])
    await db.flash_sales.create_index([("start_date", 1), ("end_date", 1)])
    await db.flash_sales.create_index("products.product_id")
    await db.reviews.create_index([("user_id", 1), ("product_id", 1)], unique=True)
    await db.orders.create_index("payment_intent_id", unique=True)
    await db.pending_orders.create_index("payment_intent_id", unique=True)
    await db.products.create_index("category_id")
    await db.wishlists.create_index("user_id", unique=True)
    await db.carts.create_index("user_id", unique=True)
