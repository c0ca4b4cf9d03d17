import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import auth
from database import get_db, utcnow
from main import app


@pytest.fixture
def mongo():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def client(mongo):
    app.dependency_overrides[get_db] = lambda: mongo
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(mongo):
    """Insert a profile directly and return its id, profile and auth headers."""
    def _make(email="shopper@example.com", roles=("USER",), name="Shopper"):
        uid = ObjectId()
        doc = {
            "_id": uid,
            "email": email,
            "display_name": name,
            "roles": list(roles),
            "created_at": utcnow(),
            "updated_at": utcnow(),
        }
        mongo["users"].insert_one(doc)
        token = auth.create_token(str(uid), email, name)
        profile = {"id": str(uid), "email": email, "display_name": name, "roles": list(roles)}
        return {"id": str(uid), "profile": profile, "headers": {"Authorization": f"Bearer {token}"}}
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(email="boss@example.com", roles=("USER", "ADMIN"), name="Boss")


@pytest.fixture
def shopper(make_user):
    return make_user()


@pytest.fixture
def category_id(mongo):
    return str(mongo["categories"].insert_one({"name": "Apparel", "description": "Clothes"}).inserted_id)


@pytest.fixture
def product_payload(category_id):
    return {
        "name": "Red Shirt",
        "description": "Cotton crew neck",
        "price": 20,
        "stock_quantity": 5,
        "main_image_url": "https://img.example.com/shirt.jpg",
        "category_id": category_id,
    }
