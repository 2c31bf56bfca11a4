"""Tests for order status notifications."""

import pytest
from bson import ObjectId

from notifications import STATUS_LABELS, render_status_message

from .conftest import register_and_login, seed_order


@pytest.fixture
def admin_headers(client, db):
    token, user_id = register_and_login(client, email="admin@example.com")
    db["user_roles"].update_one({"user_id": user_id}, {"$set": {"role": "admin"}})
    return {"Authorization": f"Bearer {token}"}


def notify(client, headers, **overrides):
    body = {"orderId": None, "newStatus": "shipped", "customerEmail": "mona@example.com"}
    body.update(overrides)
    return client.post("/send-order-notification", json=body, headers=headers)


class TestRenderStatusMessage:
    ORDER = {"order_number": "HS-20261018-0042", "customer_name": "Mona", "total": 340, "governorate": "القاهرة"}

    def test_uses_status_label(self):
        message = render_status_message(self.ORDER, "confirmed")
        assert STATUS_LABELS["confirmed"] in message["body"]
        assert "HS-20261018-0042" in message["subject"]

    def test_unknown_status_shown_as_is(self):
        assert "on-hold" in render_status_message(self.ORDER, "on-hold")["body"]

    def test_shipping_footer(self):
        assert "2-3" in render_status_message(self.ORDER, "shipped")["body"]
        assert "2-3" not in render_status_message(self.ORDER, "pending")["body"]


class TestSendOrderNotification:
    def test_queues_message(self, client, db, admin_headers):
        order_id = seed_order(db)
        response = notify(client, admin_headers, orderId=order_id)
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True

        queued = db["notification_outbox"].find_one({"_id": ObjectId(data["notification"]["id"])})
        assert queued["to"] == "mona@example.com"
        assert queued["order_id"] == order_id
        assert queued["status"] == "shipped"
        assert queued["sent"] is False
        assert "ABCDE12345" in queued["subject"]
        assert STATUS_LABELS["shipped"] in queued["body"]

    @pytest.mark.parametrize("field", ["orderId", "newStatus", "customerEmail"])
    def test_fields_required(self, client, db, admin_headers, field):
        body = {"orderId": seed_order(db), field: "  "}
        response = notify(client, admin_headers, **body)
        assert response.status_code == 400
        assert response.json() == {"error": "جميع الحقول مطلوبة"}

    @pytest.mark.parametrize("email", ["mona", "mona@example", "mo na@example.com"])
    def test_bad_email(self, client, db, admin_headers, email):
        response = notify(client, admin_headers, orderId=seed_order(db), customerEmail=email)
        assert response.status_code == 400
        assert response.json() == {"error": "البريد الإلكتروني غير صالح"}

    @pytest.mark.parametrize("order_id", [str(ObjectId()), "not-an-id"])
    def test_unknown_order(self, client, db, admin_headers, order_id):
        response = notify(client, admin_headers, orderId=order_id)
        assert response.status_code == 404
        assert response.json() == {"error": "الطلب غير موجود"}
        assert db["notification_outbox"].count_documents({}) == 0

    def test_requires_token(self, client, db):
        response = notify(client, {}, orderId=seed_order(db))
        assert response.status_code == 401
        assert db["notification_outbox"].count_documents({}) == 0

    def test_customers_are_forbidden(self, client, db):
        token, _ = register_and_login(client)
        response = notify(client, {"Authorization": f"Bearer {token}"}, orderId=seed_order(db))
        assert response.status_code == 403
        assert db["notification_outbox"].count_documents({}) == 0
