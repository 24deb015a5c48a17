import asyncio
import os
import sys
import types
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["STRIPE_SECRET_KEY"] = ""

from storefront.main import app  # noqa: E402
from storefront.core.security import hash_password, create_access_token  # noqa: E402

PASSWORD = "password123"


def run(coro):
    return asyncio.run(coro)


def iso(delta_days=0, delta_hours=0):
    return (datetime.now(timezone.utc) + timedelta(days=delta_days, hours=delta_hours)).isoformat()


@pytest.fixture
def mock_db(monkeypatch):
    database = AsyncMongoMockClient()["storefront_test"]
    for name, module in list(sys.modules.items()):
        handle = getattr(module, "db", None)
        if name.startswith("storefront") and handle is not None and not isinstance(handle, types.ModuleType):
            monkeypatch.setattr(module, "db", database)
    monkeypatch.setattr("storefront.services.payments.STRIPE_SECRET_KEY", "")
    return database


@pytest.fixture
def client(mock_db):
    return TestClient(app)


def make_user(database, role="customer", status="active", email=None):
    user = {
        "id": str(uuid.uuid4()),
        "email": email or f"{role}-{uuid.uuid4().hex[:6]}@example.com",
        "name": role.title(),
        "password_hash": hash_password(PASSWORD),
        "role": role,
        "status": status,
        "session_version": 0,
        "created_at": iso()
    }
    run(database.users.insert_one({**user}))
    return user


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def customer(mock_db):
    return make_user(mock_db)


@pytest.fixture
def admin(mock_db):
    return make_user(mock_db, role="admin")


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


def make_category(database, name="Shoes", attributes=None):
    category = {
        "id": str(uuid.uuid4()),
        "name": name,
        "slug": name.lower().replace(" ", "-"),
        "description": "",
        "attributes": attributes or [],
        "created_at": iso()
    }
    run(database.categories.insert_one({**category}))
    return category


def make_product(database, **overrides):
    product = {
        "id": str(uuid.uuid4()),
        "name": "Runner",
        "description": "Lightweight running shoe",
        "price": 100.0,
        "category_id": None,
        "cover_image": "https://img.example.com/runner.png",
        "images": [],
        "stock": 10,
        "low_stock_threshold": 10,
        "notify_low_stock": True,
        "featured": False,
        "attributes": {},
        "variants": [],
        "views": 0,
        "sales_count": 0,
        "total_revenue": 0,
        "created_at": iso()
    }
    product.update(overrides)
    run(database.products.insert_one({**product}))
    return product


def make_coupon(database, **overrides):
    coupon = {
        "id": str(uuid.uuid4()),
        "code": "SAVE20",
        "type": "percentage",
        "value": 20,
        "min_purchase": 0,
        "max_discount": None,
        "start_date": iso(-1),
        "end_date": iso(30),
        "usage_limit": None,
        "used_count": 0,
        "is_active": True,
        "description": "",
        "applicable_products": [],
        "applicable_categories": [],
        "created_at": iso()
    }
    coupon.update(overrides)
    run(database.coupons.insert_one({**coupon}))
    return coupon


def make_flash_sale(database, products, **overrides):
    sale = {
        "id": str(uuid.uuid4()),
        "name": "Weekend Sale",
        "description": "",
        "start_date": iso(delta_hours=-1),
        "end_date": iso(delta_hours=5),
        "is_active": True,
        "products": products,
        "created_at": iso()
    }
    sale.update(overrides)
    run(database.flash_sales.insert_one({**sale}))
    return sale


def sale_entry(product_id, discount_type="percentage", discount_value=10, **overrides):
    entry = {
        "product_id": product_id,
        "discount_type": discount_type,
        "discount_value": discount_value,
        "max_quantity_per_customer": None,
        "total_quantity": None,
        "sold_quantity": 0
    }
    entry.update(overrides)
    return entry
