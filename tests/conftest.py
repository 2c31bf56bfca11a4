"""Pytest fixtures for the storefront functions."""

from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import PrivilegedStore, ScopedStore
from main import app, get_privileged_store, get_scoped_store
from schemas import Coupon, Order, OrderItem
from settings import get_settings


@pytest.fixture
def db():
    """A fresh in-memory database per test."""
    return mongomock.MongoClient(tz_aware=True)["storefront_test"]


@pytest.fixture
def store(db):
    privileged = PrivilegedStore(db)
    privileged.ensure_indexes()
    return privileged


@pytest.fixture
def scoped(db):
    return ScopedStore(db, get_settings().jwt_secret)


@pytest.fixture
def client(store, scoped):
    app.dependency_overrides[get_privileged_store] = lambda: store
    app.dependency_overrides[get_scoped_store] = lambda: scoped
    yield TestClient(app)
    app.dependency_overrides.clear()


def seed_order(db, order_number="ABCDE12345", phone="01012341234", items=None):
    """Insert an order with its items and return the order id."""
    now = datetime.now(timezone.utc)
    order = Order(
        order_number=order_number,
        customer_name="Mona",
        customer_phone=phone,
        customer_address="12 Nile St",
        governorate="القاهرة",
        payment_method="cash",
        subtotal=300,
        delivery_fee=40,
        discount_amount=0,
        total=340,
        created_at=now,
        updated_at=now,
    )
    order_id = str(db["orders"].insert_one(order.model_dump()).inserted_id)
    if items is None:
        items = [("Chocolate Cake", 150, 1), ("Cupcakes", 75, 2)]
    if items:
        db["order_items"].insert_many([
            OrderItem(order_id=order_id, product_name=name, product_price=price, quantity=qty).model_dump()
            for name, price, qty in items
        ])
    return order_id


def seed_coupon(db, code="SAVE10", **fields):
    """Insert a coupon; defaults to an active 10% coupon without limits."""
    values = {"discount_type": "percentage", "discount_value": 10}
    values.update(fields)
    db["coupons"].insert_one(Coupon(code=code, **values).model_dump())


def register_and_login(client, email="mona@example.com", password="secret123"):
    """Create an account through the API and return its bearer token and id."""
    response = client.post(
        "/auth/register",
        json={"email": email, "password": password, "full_name": "Mona"},
    )
    assert response.status_code == 201
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    data = response.json()
    return data["access_token"], data["user"]["id"]
