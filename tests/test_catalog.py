import pytest

from catalog import filter_products, paginate, search_products, validate_product
from errors import INVALID_ARGUMENT, ServiceError

PRODUCTS = [
    {"id": "1", "name": "Plain Shirt", "description": "Bright RED cotton", "price": 5, "category_id": "c1", "created_at": "2024-01-01T00:00:00", "featured": True, "stock_quantity": 0},
    {"id": "2", "name": "Red Cap", "description": "Baseball cap", "price": 20, "category_id": "c2", "created_at": "2024-03-01T00:00:00", "featured": False, "stock_quantity": 4},
    {"id": "3", "name": "Blue Jeans", "description": "Denim", "price": 1, "category_id": "c1", "created_at": "2024-02-01T00:00:00", "featured": False, "stock_quantity": 9},
]


def ids(products):
    return [p["id"] for p in products]


def test_every_query_term_must_match():
    assert ids(search_products(PRODUCTS, query="red shirt")) == ["1"]
    assert ids(search_products(PRODUCTS, query="RED")) == ["1", "2"]
    assert search_products(PRODUCTS, query="red jeans") == []


def test_blank_query_matches_everything():
    assert len(search_products(PRODUCTS, query="   ")) == 3


def test_sort_keys():
    assert [p["price"] for p in search_products(PRODUCTS, sort="price_desc")] == [20, 5, 1]
    assert [p["price"] for p in search_products(PRODUCTS, sort="price_asc")] == [1, 5, 20]
    assert ids(search_products(PRODUCTS, sort="name_asc")) == ["3", "1", "2"]
    assert ids(search_products(PRODUCTS, sort="name_desc")) == ["2", "1", "3"]
    assert ids(search_products(PRODUCTS, sort="newest")) == ["2", "3", "1"]
    assert ids(search_products(PRODUCTS, sort="bogus")) == ["1", "2", "3"]


def test_name_sort_ignores_case():
    products = [{"id": "z", "name": "Zebra"}, {"id": "a", "name": "apple"}, {"id": "m", "name": "Mango"}]
    assert ids(search_products(products, sort="name_asc")) == ["a", "m", "z"]
    assert ids(search_products(products, sort="name_desc")) == ["z", "m", "a"]


def test_category_and_price_filters():
    assert ids(search_products(PRODUCTS, category="c1")) == ["1", "3"]
    assert ids(search_products(PRODUCTS, category="all")) == ["1", "2", "3"]
    assert ids(search_products(PRODUCTS, min_price=5, max_price=20)) == ["1", "2"]


def test_filter_products():
    assert ids(filter_products(PRODUCTS, "featured")) == ["1"]
    assert ids(filter_products(PRODUCTS, "inStock")) == ["2", "3"]
    assert len(filter_products(PRODUCTS, None)) == 3


def test_paginate():
    items = list(range(17))
    page = paginate(items, 2)
    assert page["items"] == [16]
    assert page["total_pages"] == 3
    assert page["total"] == 17
    assert paginate([], 0)["total_pages"] == 0


VALID = {
    "name": "Shirt",
    "description": "Cotton",
    "price": "12.50",
    "stock_quantity": 4,
    "main_image_url": "shirt.jpg",
    "category_id": "c1",
}


@pytest.mark.parametrize("field,message", [
    ("name", "Product name is required"),
    ("description", "Product description is required"),
    ("price", "Valid product price is required"),
    ("stock_quantity", "Valid stock quantity is required"),
    ("main_image_url", "Product image URL is required"),
    ("category_id", "Please select a category"),
])
def test_missing_field_is_named(field, message):
    data = {k: v for k, v in VALID.items() if k != field}
    with pytest.raises(ServiceError) as exc:
        validate_product(data)
    assert exc.value.code == INVALID_ARGUMENT
    assert exc.value.message == message


def test_first_violation_wins():
    with pytest.raises(ServiceError) as exc:
        validate_product({"description": "", "price": "abc"})
    assert exc.value.message == "Product name is required"


def test_validated_product_fields():
    product = validate_product({**VALID, "name": "  Shirt  ", "stock_quantity": "3"})
    assert product["name"] == "Shirt"
    assert product["price"] == 12.5
    assert product["stock_quantity"] == 3
    assert product["featured"] is False
    assert validate_product(VALID)["stock_quantity"] == 4


@pytest.mark.parametrize("stock", ["many", 1.5, -1, "", None])
def test_bad_stock(stock):
    with pytest.raises(ServiceError):
        validate_product({**VALID, "stock_quantity": stock})


# API
def test_admin_creates_and_lists_product(client, admin, product_payload, category_id):
    res = client.post("/api/products", json=product_payload, headers=admin["headers"])
    assert res.status_code == 200
    product_id = res.json()["id"]

    products = client.get("/api/products").json()["products"]
    assert len(products) == 1
    assert products[0]["id"] == product_id
    assert products[0]["category"]["id"] == category_id


@pytest.mark.parametrize("field", ["name", "description", "price", "stock_quantity", "main_image_url", "category_id"])
def test_invalid_product_is_not_written(client, admin, mongo, product_payload, field):
    payload = dict(product_payload)
    payload.pop(field)
    res = client.post("/api/products", json=payload, headers=admin["headers"])
    assert res.status_code == 400
    assert res.json()["code"] == "invalid-argument"
    assert mongo["products"].count_documents({}) == 0


def test_product_mutations_require_admin(client, shopper, product_payload):
    res = client.post("/api/products", json=product_payload, headers=shopper["headers"])
    assert res.status_code == 403
    assert res.json()["code"] == "permission-denied"

    res = client.post("/api/products", json=product_payload)
    assert res.status_code == 401
    assert res.json()["code"] == "unauthenticated"


def test_listing_tolerates_dangling_category(client, mongo):
    mongo["products"].insert_one({"name": "Orphan", "description": "x", "price": 1, "category_id": "5f1d7f1d7f1d7f1d7f1d7f1d"})
    mongo["products"].insert_one({"name": "Odd", "description": "x", "price": 1, "category_id": "not-an-id"})
    products = client.get("/api/products").json()["products"]
    assert [p["category"] for p in products] == [None, None]


def test_update_and_delete_product(client, admin, mongo, product_payload):
    product_id = client.post("/api/products", json=product_payload, headers=admin["headers"]).json()["id"]

    res = client.put(f"/api/products/{product_id}", json={**product_payload, "price": 30}, headers=admin["headers"])
    assert res.status_code == 200
    assert client.get(f"/api/products/{product_id}").json()["price"] == 30

    assert client.delete(f"/api/products/{product_id}", headers=admin["headers"]).status_code == 200
    res = client.get(f"/api/products/{product_id}")
    assert res.status_code == 404
    assert res.json()["code"] == "not-found"


def test_update_missing_product(client, admin, product_payload):
    res = client.put("/api/products/5f1d7f1d7f1d7f1d7f1d7f1d", json=product_payload, headers=admin["headers"])
    assert res.status_code == 404


def test_search_endpoint(client, admin, product_payload):
    client.post("/api/products", json=product_payload, headers=admin["headers"])
    client.post("/api/products", json={**product_payload, "name": "Red Cap", "description": "Cap", "price": 8}, headers=admin["headers"])

    res = client.post("/api/products/search", json={"query": "red shirt"})
    assert [p["name"] for p in res.json()["products"]] == ["Red Shirt"]

    res = client.post("/api/products/search", json={"sort": "price_asc", "page": 0})
    body = res.json()
    assert [p["price"] for p in body["products"]] == [8, 20]
    assert body["total_pages"] == 1


def test_category_crud(client, admin):
    res = client.post("/api/categories", json={"name": " Shoes ", "description": "Footwear"}, headers=admin["headers"])
    assert res.status_code == 200
    category = res.json()["category"]
    assert category["name"] == "Shoes"

    res = client.post("/api/categories", json={"name": "   ", "description": "x"}, headers=admin["headers"])
    assert res.json()["code"] == "invalid-argument"

    res = client.put(f"/api/categories/{category['id']}", json={"name": "Boots", "description": "Footwear"}, headers=admin["headers"])
    assert res.json()["category"]["name"] == "Boots"
    assert [c["name"] for c in client.get("/api/categories").json()["categories"]] == ["Boots"]

    assert client.delete(f"/api/categories/{category['id']}", headers=admin["headers"]).json() == {"success": True}
    assert client.delete(f"/api/categories/{category['id']}", headers=admin["headers"]).status_code == 404


def test_carousel_defaults_and_order(client, admin):
    res = client.post("/api/carousel", json={"image_url": "b.jpg", "display_order": 2}, headers=admin["headers"])
    image = res.json()["image"]
    assert image["title"] == ""
    assert image["subtitle"] == ""
    assert image["active"] is True
    client.post("/api/carousel", json={"image_url": "a.jpg", "active": False}, headers=admin["headers"])

    images = client.get("/api/carousel").json()["images"]
    assert [i["image_url"] for i in images] == ["a.jpg", "b.jpg"]
    assert [i["image_url"] for i in client.get("/api/carousel?active=true").json()["images"]] == ["b.jpg"]

    res = client.post("/api/carousel", json={"title": "no image"}, headers=admin["headers"])
    assert res.json()["message"] == "Image URL is required"
