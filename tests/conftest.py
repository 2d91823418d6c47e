from datetime import datetime, timedelta

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import main


@pytest.fixture
def mongo(monkeypatch):
    database = mongomock.MongoClient().checkout
    monkeypatch.setattr(main, "db", database)
    return database


@pytest.fixture
def client(mongo):
    return TestClient(main.app)


@pytest.fixture
def user(mongo):
    doc = {"_id": ObjectId(), "name": "Asha", "email": "asha@example.com"}
    mongo["user"].insert_one(doc)
    return doc


@pytest.fixture
def auth(user):
    return {"Authorization": f"Bearer {main.create_token(user)}"}


@pytest.fixture
def product(mongo):
    doc = {
        "_id": ObjectId(),
        "name": "Field Recorder",
        "slug": "field-recorder",
        "price": 1000.0,
        "quantity": 10,
        "in_stock": True,
        "product_type": "simple",
        "category": ObjectId(),
        "main_image": "https://cdn.example.com/recorder.jpg",
    }
    mongo["product"].insert_one(doc)
    return doc


@pytest.fixture
def variable_product(mongo):
    doc = {
        "_id": ObjectId(),
        "name": "Handset",
        "slug": "handset",
        "price": 600.0,
        "quantity": 0,
        "in_stock": True,
        "product_type": "variable",
        "variants": [
            {"_id": ObjectId(), "storage": "64GB", "price": 500.0, "stock": 3, "image": "https://cdn.example.com/64.jpg"},
            {"_id": ObjectId(), "storage": "128GB", "price": 700.0, "stock": 1},
        ],
    }
    mongo["product"].insert_one(doc)
    return doc


@pytest.fixture
def insert_deal(mongo):
    def _insert(**fields):
        now = datetime.utcnow()
        doc = {
            "_id": ObjectId(),
            "title": "Deal",
            "discount_type": "percentage",
            "discount_value": 10,
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=1),
            "priority": 1,
            "is_global": True,
        }
        doc.update(fields)
        mongo["deal"].insert_one(doc)
        return doc
    return _insert


@pytest.fixture
def insert_coupon(mongo):
    def _insert(**fields):
        doc = {
            "_id": ObjectId(),
            "code": "SAVE10",
            "discount_type": "percentage",
            "discount_value": 10,
            "min_cart_value": 0,
            "used_count": 0,
            "user_usage": {},
            "is_active": True,
        }
        doc.update(fields)
        mongo["coupon"].insert_one(doc)
        return doc
    return _insert
