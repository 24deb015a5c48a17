from conftest import run, make_user, make_product, make_category, make_coupon, iso

SIZE = {"name": "size", "type": "select", "required": True, "options": ["S", "M", "L"]}
WATERPROOF = {"name": "waterproof", "type": "boolean"}


def product_payload(category_id, **overrides):
    payload = {
        "name": "Trail Runner",
        "description": "Grippy",
        "price": 120,
        "category_id": category_id,
        "cover_image": "https://img.example.com/trail.png",
        "stock": 20,
        "attributes": {"size": "M"}
    }
    payload.update(overrides)
    return payload


# ==================== CATEGORIES ====================

def test_category_crud(client, mock_db, admin_headers):
    response = client.post("/api/admin/categories", json={"name": "Running Shoes", "attributes": [SIZE]}, headers=admin_headers)
    assert response.status_code == 201
    category = response.json()
    assert category["slug"] == "running-shoes"

    duplicate = client.post("/api/admin/categories", json={"name": "running shoes"}, headers=admin_headers)
    assert duplicate.status_code == 400

    renamed = client.put(f"/api/admin/categories/{category['id']}", json={"name": "Trail Shoes"}, headers=admin_headers)
    assert renamed.json()["slug"] == "trail-shoes"

    public = client.get("/api/categories/trail-shoes").json()
    assert public["category"]["id"] == category["id"]

    assert client.delete(f"/api/admin/categories/{category['id']}", headers=admin_headers).status_code == 200
    assert client.get("/api/categories/trail-shoes").status_code == 404


def test_category_with_products_cannot_be_deleted(client, mock_db, admin_headers):
    category = make_category(mock_db)
    make_product(mock_db, category_id=category["id"])
    response = client.delete(f"/api/admin/categories/{category['id']}", headers=admin_headers)
    assert response.status_code == 400


# ==================== PRODUCTS ====================

def test_product_attributes_are_validated(client, mock_db, admin_headers):
    category = make_category(mock_db, attributes=[SIZE, WATERPROOF])

    missing = client.post("/api/admin/products", json=product_payload(category["id"], attributes={}), headers=admin_headers)
    assert missing.status_code == 400
    assert missing.json()["detail"] == 'Required attribute "size" is missing'

    bad_option = client.post("/api/admin/products", json=product_payload(category["id"], attributes={"size": "XXL"}), headers=admin_headers)
    assert bad_option.json()["detail"] == 'Invalid value for attribute "size"'

    bad_bool = client.post("/api/admin/products", json=product_payload(
        category["id"], attributes={"size": "S", "waterproof": "yes"}
    ), headers=admin_headers)
    assert bad_bool.json()["detail"] == 'Attribute "waterproof" must be a boolean'

    created = client.post("/api/admin/products", json=product_payload(category["id"], variants=[
        {"sku": "TR-S", "price": 110, "stock": 5}
    ]), headers=admin_headers)
    assert created.status_code == 201
    assert created.json()["variants"][0]["id"]


def test_product_update_and_delete(client, mock_db, admin_headers):
    category = make_category(mock_db)
    product = make_product(mock_db, category_id=category["id"])

    response = client.put(f"/api/admin/products/{product['id']}", json={"price": 80, "stock": 2}, headers=admin_headers)
    assert response.json()["price"] == 80

    logs = client.get("/api/admin/audit-logs?action=product_update", headers=admin_headers).json()
    assert logs["total"] == 1
    assert logs["logs"][0]["old_value"]["price"] == 100

    assert client.delete(f"/api/admin/products/{product['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/admin/products/{product['id']}", headers=admin_headers).status_code == 404


def test_product_listing_filters_and_pages(client, mock_db, admin_headers):
    category = make_category(mock_db, "Hats")
    for i in range(12):
        make_product(mock_db, name=f"Hat {i}", price=10 + i, category_id=category["id"])
    make_product(mock_db, name="Boot", price=300)

    first = client.get("/api/admin/products?category=Hats", headers=admin_headers).json()
    assert first["total"] == 12
    assert first["total_pages"] == 2
    assert len(first["products"]) == 10
    assert first["products"][0]["category"] == "Hats"

    priced = client.get("/api/admin/products?min_price=15&max_price=20", headers=admin_headers).json()
    assert priced["total"] == 6

    search = client.get("/api/admin/products?search=boot", headers=admin_headers).json()
    assert [p["name"] for p in search["products"]] == ["Boot"]


def test_bulk_operations(client, mock_db, admin_headers):
    category = make_category(mock_db)
    a = make_product(mock_db)
    b = make_product(mock_db)
    ids = [a["id"], b["id"]]

    def bulk(operation, value=None):
        return client.post("/api/admin/products/bulk", json={
            "operation": operation, "product_ids": ids, "value": value
        }, headers=admin_headers)

    assert bulk("update-price", "49.5").json()["affected"] == 2
    assert bulk("update-stock", 7).status_code == 200
    assert bulk("update-stock", "lots").status_code == 400
    assert bulk("categorize", "nope").status_code == 400
    assert bulk("categorize", category["id"]).status_code == 200
    assert bulk("explode").status_code == 400

    stored = run(mock_db.products.find_one({"id": a["id"]}))
    assert (stored["price"], stored["stock"], stored["category_id"]) == (49.5, 7, category["id"])

    assert bulk("delete").json()["affected"] == 2
    assert run(mock_db.products.count_documents({})) == 0


def test_csv_export_and_import(client, mock_db, admin_headers):
    category = make_category(mock_db, "Shirts", attributes=[SIZE])
    make_product(mock_db, name="Tee", category_id=category["id"], attributes={"size": "L"})

    exported = client.get("/api/admin/products/export", headers=admin_headers).json()
    assert exported["total_records"] == 1
    header, row = exported["csv_data"].strip().splitlines()
    assert header.endswith("attribute_size")
    assert row.startswith("Tee,") and row.endswith(",L")

    csv_data = "\n".join([
        "name,description,price,category,stock,cover_image,images,attribute_size",
        "Polo,Cotton polo,25,Shirts,4,,,M",
        "Beanie,Warm,12.5,Winter Hats,9,,https://a.png, ",
    ])
    response = client.post("/api/admin/products/import", json={"csv_data": csv_data}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["count"] == 2
    assert response.json()["new_categories"] == 1
    assert run(mock_db.categories.find_one({"name": "Winter Hats"}))["slug"] == "winter-hats"
    polo = run(mock_db.products.find_one({"name": "Polo"}))
    assert polo["attributes"] == {"size": "M"}
    assert polo["cover_image"].startswith("https://")

    bad = "name,description,price,category,stock,cover_image,images,attribute_size\nPolo2,x,25,Shirts,4,,,XXL"
    response = client.post("/api/admin/products/import", json={"csv_data": bad}, headers=admin_headers)
    assert response.status_code == 400
    assert 'Invalid option "XXL"' in response.json()["detail"]


def test_analytics_and_stock_views(client, mock_db, admin_headers):
    make_product(mock_db, name="Empty", stock=0)
    make_product(mock_db, name="Low", stock=4, sales_count=9, total_revenue=90)
    make_product(mock_db, name="Mid", stock=30, sales_count=2)
    make_product(mock_db, name="Lots", stock=500, views=12)

    analytics = client.get("/api/admin/products/analytics", headers=admin_headers).json()
    assert analytics["stock_levels"]["data"] == [1, 1, 1, 0, 1]
    assert analytics["top_products"]["labels"][0] == "Low"
    assert analytics["total_sales"] == 11

    low = client.get("/api/admin/products/low-stock", headers=admin_headers).json()
    assert [p["name"] for p in low["products"]] == ["Empty", "Low"]
    assert low["products"][0]["stock_status"] == "Out of Stock"

    worst = client.get("/api/admin/products/sales?type=worst", headers=admin_headers).json()
    assert worst["products"][-1]["name"] == "Low"

    viewed = client.get("/api/admin/products/most-viewed", headers=admin_headers).json()
    assert viewed["products"][0]["name"] == "Lots"


def test_low_stock_threshold_update(client, mock_db, admin_headers):
    product = make_product(mock_db, stock=30)
    response = client.put("/api/admin/products/low-stock", json={
        "product_id": product["id"], "low_stock_threshold": 40
    }, headers=admin_headers)
    assert response.json()["low_stock_threshold"] == 40
    low = client.get("/api/admin/products/low-stock", headers=admin_headers).json()
    assert low["total"] == 1


# ==================== USERS ====================

def test_admin_creates_customers_only(client, mock_db, admin_headers):
    ok = client.post("/api/admin/users", json={
        "name": "Sam", "email": "sam@example.com", "password": "longenough"
    }, headers=admin_headers)
    assert ok.status_code == 200
    assert "password_hash" not in ok.json()["user"]

    for payload in (
        {"name": "A", "email": "bad-email", "password": "longenough"},
        {"name": "A", "email": "a@example.com", "password": "short"},
        {"name": "A", "email": "a@example.com", "password": "longenough", "role": "admin"},
        {"name": "A", "email": "sam@example.com", "password": "longenough"},
    ):
        assert client.post("/api/admin/users", json=payload, headers=admin_headers).status_code == 400


def test_user_status_and_listing(client, mock_db, admin, admin_headers, customer):
    run(mock_db.orders.insert_many([
        {"id": "o1", "user_id": customer["id"], "total": 40.0, "status": "completed"},
        {"id": "o2", "user_id": customer["id"], "total": 10.0, "status": "cancelled"},
    ]))
    users = client.get("/api/admin/users", headers=admin_headers).json()["users"]
    listed = next(u for u in users if u["id"] == customer["id"])
    assert (listed["orders_count"], listed["total_spent"]) == (1, 40)

    response = client.patch(f"/api/admin/users/{customer['id']}/status", json={"status": "blocked"}, headers=admin_headers)
    assert response.status_code == 200
    assert run(mock_db.users.find_one({"id": customer["id"]}))["session_version"] == 1

    assert client.patch(f"/api/admin/users/{customer['id']}/status", json={"status": "gone"}, headers=admin_headers).status_code == 400
    assert client.patch(f"/api/admin/users/{admin['id']}/status", json={"status": "blocked"}, headers=admin_headers).status_code == 403


def test_deactivated_customer_token_stops_working(client, mock_db, admin_headers, customer, customer_headers):
    assert client.get("/api/auth/me", headers=customer_headers).status_code == 200
    response = client.patch(f"/api/admin/users/{customer['id']}/status", json={"status": "inactive"}, headers=admin_headers)
    assert response.status_code == 200
    assert client.get("/api/auth/me", headers=customer_headers).status_code == 401


# ==================== ORDERS ====================

def test_cancelling_processing_order_restocks(client, mock_db, admin_headers, customer):
    product = make_product(mock_db, stock=3, sales_count=2, total_revenue=200)
    run(mock_db.orders.insert_one({
        "id": "o1", "user_id": customer["id"], "status": "processing", "total": 200, "created_at": iso(),
        "items": [{"product_id": product["id"], "variant_id": None, "name": "Runner", "price": 100,
                   "original_price": 100, "quantity": 2, "sale_quantity": 0}],
        "stock_issues": []
    }))

    assert client.patch("/api/admin/orders/o1", json={"status": "shipped"}, headers=admin_headers).status_code == 400
    response = client.patch("/api/admin/orders/o1", json={"status": "cancelled"}, headers=admin_headers)
    assert response.json()["status"] == "cancelled"

    stored = run(mock_db.products.find_one({"id": product["id"]}))
    assert (stored["stock"], stored["sales_count"], stored["total_revenue"]) == (5, 0, 0)
    assert client.patch("/api/admin/orders/o1", json={"status": "processing"}, headers=admin_headers).status_code == 400

    listed = client.get("/api/admin/orders?status=cancelled", headers=admin_headers).json()
    assert listed["total"] == 1


def test_cancel_restocks_sibling_line_of_short_line(client, mock_db, admin_headers, customer):
    product = make_product(mock_db, stock=0, sales_count=2, total_revenue=200)
    line = {"product_id": product["id"], "variant_id": None, "name": "Runner", "price": 100,
            "original_price": 100, "sale_quantity": 0}
    run(mock_db.orders.insert_one({
        "id": "o2", "user_id": customer["id"], "status": "processing", "total": 300, "created_at": iso(),
        "items": [{**line, "quantity": 2, "attributes": {"size": "9"}},
                  {**line, "quantity": 1, "attributes": {"size": "10"}}],
        "stock_issues": [{"line": 1, "product_id": product["id"], "variant_id": None,
                          "quantity": 1, "issue": "insufficient_stock"}]
    }))

    client.patch("/api/admin/orders/o2", json={"status": "cancelled"}, headers=admin_headers)
    stored = run(mock_db.products.find_one({"id": product["id"]}))
    assert (stored["stock"], stored["sales_count"]) == (2, 0)


# ==================== PROMOTIONS ====================

def test_coupon_admin(client, mock_db, admin_headers):
    response = client.post("/api/admin/promotions/coupons", json={
        "code": "summer10", "type": "percentage", "value": 10, "usage_limit": 100,
        "start_date": "2024-06-01T00:00:00Z", "end_date": "2030-06-01T00:00:00Z"
    }, headers=admin_headers)
    assert response.status_code == 201
    coupon = response.json()["coupon"]
    assert coupon["code"] == "SUMMER10"
    assert coupon["used_count"] == 0

    duplicate = client.post("/api/admin/promotions/coupons", json={"code": "SUMMER10", "value": 5}, headers=admin_headers)
    assert duplicate.status_code == 400
    invalid_type = client.post("/api/admin/promotions/coupons", json={"code": "X", "type": "bogo", "value": 5}, headers=admin_headers)
    assert invalid_type.status_code == 422
    backwards = client.post("/api/admin/promotions/coupons", json={
        "code": "BACK", "value": 5, "start_date": "2024-06-02T00:00:00Z", "end_date": "2024-06-01T00:00:00Z"
    }, headers=admin_headers)
    assert backwards.status_code == 400

    updated = client.put(f"/api/admin/promotions/coupons/{coupon['id']}", json={"value": 15}, headers=admin_headers)
    assert updated.json()["coupon"]["value"] == 15

    listed = client.get("/api/admin/promotions/coupons", headers=admin_headers).json()["coupons"]
    assert listed[0]["is_running"] is True
    assert listed[0]["remaining_uses"] == 100

    assert client.delete(f"/api/admin/promotions/coupons/{coupon['id']}", headers=admin_headers).status_code == 200


def test_flash_sale_admin(client, mock_db, admin_headers):
    product = make_product(mock_db)
    payload = {
        "name": "Midnight",
        "start_date": iso(-1),
        "end_date": iso(1),
        "products": [{"product_id": product["id"], "discount_type": "fixed", "discount_value": 5, "sold_quantity": 40}]
    }
    response = client.post("/api/admin/promotions/flash-sales", json=payload, headers=admin_headers)
    assert response.status_code == 201
    sale = response.json()["flash_sale"]
    assert sale["products"][0]["sold_quantity"] == 0

    backwards = client.post("/api/admin/promotions/flash-sales", json={**payload, "end_date": iso(-2)}, headers=admin_headers)
    assert backwards.status_code == 422
    unknown = client.post("/api/admin/promotions/flash-sales", json={
        **payload, "products": [{"product_id": "nope", "discount_value": 5}]
    }, headers=admin_headers)
    assert unknown.status_code == 400

    updated = client.put(f"/api/admin/promotions/flash-sales/{sale['id']}", json={"name": "Late"}, headers=admin_headers)
    assert updated.json()["flash_sale"]["name"] == "Late"

    price = client.get(f"/api/products/{product['id']}/price").json()
    assert price["final_price"] == 95

    assert client.delete(f"/api/admin/promotions/flash-sales/{sale['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/products/{product['id']}/flash-sale").json() == {"flash_sale": None}


def test_coupon_limits_can_be_cleared(client, mock_db, admin_headers):
    coupon = make_coupon(mock_db, code="CAPPED", usage_limit=5, max_discount=25, end_date=iso(10))

    response = client.put(f"/api/admin/promotions/coupons/{coupon['id']}", json={
        "usage_limit": None, "max_discount": None, "end_date": None
    }, headers=admin_headers)
    assert response.status_code == 200

    stored = run(mock_db.coupons.find_one({"id": coupon["id"]}))
    assert (stored["usage_limit"], stored["max_discount"], stored["end_date"]) == (None, None, None)
    assert stored["value"] == 20

    untouched = client.put(f"/api/admin/promotions/coupons/{coupon['id']}", json={"value": None}, headers=admin_headers)
    assert untouched.status_code == 200
    assert run(mock_db.coupons.find_one({"id": coupon["id"]}))["value"] == 20


def test_flash_sale_dates_with_mixed_offsets(client, mock_db, admin_headers):
    product = make_product(mock_db)
    entry = [{"product_id": product["id"], "discount_value": 5}]

    backwards = client.post("/api/admin/promotions/flash-sales", json={
        "name": "Mixed", "start_date": "2030-01-02T00:00:00", "end_date": "2030-01-01T00:00:00+00:00", "products": entry
    }, headers=admin_headers)
    assert backwards.status_code == 422

    forwards = client.post("/api/admin/promotions/flash-sales", json={
        "name": "Mixed", "start_date": "2030-01-01T00:00:00", "end_date": "2030-01-02T00:00:00+02:00", "products": entry
    }, headers=admin_headers)
    assert forwards.status_code == 201
    assert forwards.json()["flash_sale"]["end_date"] == "2030-01-01T22:00:00+00:00"


def test_promotion_stats(client, mock_db, admin_headers):
    make_coupon(mock_db, code="A", type="fixed", value=5, used_count=4)
    make_coupon(mock_db, code="B", value=10, used_count=3, end_date=iso(-1), start_date=iso(-5))
    stats = client.get("/api/admin/promotions/stats", headers=admin_headers).json()
    assert stats == {"active_coupons": 1, "active_flash_sales": 0, "total_savings": 50}


# ==================== SETTINGS ====================

def test_general_settings(client, mock_db, admin_headers):
    defaults = client.get("/api/admin/settings/general", headers=admin_headers).json()
    assert defaults["currency"] == "USD"

    blank = client.put("/api/admin/settings/general", json={"name": " ", "email": "shop@example.com"}, headers=admin_headers)
    assert blank.status_code == 400

    saved = client.put("/api/admin/settings/general", json={"name": "Shop", "email": "shop@example.com"}, headers=admin_headers)
    assert saved.status_code == 200
    assert client.get("/api/admin/settings/general", headers=admin_headers).json()["name"] == "Shop"


def test_admin_password_change(client, mock_db, admin, admin_headers):
    wrong = client.post("/api/admin/settings/security", json={
        "current_password": "nope", "new_password": "newpassword1"
    }, headers=admin_headers)
    assert wrong.status_code == 400
    ok = client.post("/api/admin/settings/security", json={
        "current_password": "password123", "new_password": "newpassword1"
    }, headers=admin_headers)
    assert ok.status_code == 200


def test_admin_stats(client, mock_db, admin_headers, customer):
    make_product(mock_db, stock=0)
    run(mock_db.orders.insert_one({"id": "o1", "user_id": customer["id"], "status": "completed", "total": 25.0, "created_at": iso()}))
    stats = client.get("/api/admin/stats", headers=admin_headers).json()
    assert stats["users"]["customers"] == 1
    assert stats["orders"]["by_status"]["completed"] == 1
    assert stats["revenue"]["total"] == 25
    assert stats["products"]["out_of_stock"] == 1
