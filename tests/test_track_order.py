"""Tests for guest order tracking."""

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from .conftest import seed_order

NOT_FOUND = "الطلب غير موجود أو البيانات غير صحيحة"


class TestTrackOrderSuccess:
    def test_matching_order_and_phone(self, client, db):
        seed_order(db, "ABCDE12345", phone="01012341234")
        response = client.post("/track-order", json={"orderNumber": "ABCDE12345", "phoneLast4": "1234"})
        assert response.status_code == 200
        order = response.json()["order"]
        assert order["order_number"] == "ABCDE12345"
        assert order["status"] == "pending"
        assert order["total"] == 340
        assert len(order["items"]) == 2
        assert {i["product_name"] for i in order["items"]} == {"Chocolate Cake", "Cupcakes"}

    def test_phone_never_returned(self, client, db):
        seed_order(db, "ABCDE12345", phone="01012341234")
        response = client.post("/track-order", json={"orderNumber": "ABCDE12345", "phoneLast4": "1234"})
        order = response.json()["order"]
        assert "customer_phone" not in order

    def test_private_fields_not_returned(self, client, db):
        seed_order(db, "ABCDE12345")
        order = client.post(
            "/track-order", json={"orderNumber": "ABCDE12345", "phoneLast4": "1234"}
        ).json()["order"]
        assert "customer_address" not in order
        assert "customer_name" not in order

    def test_order_number_is_normalized(self, client, db):
        seed_order(db, "HS-20260101-0042")
        response = client.post("/track-order", json={"orderNumber": "  hs-20260101-0042 ", "phoneLast4": "1234"})
        assert response.status_code == 200
        assert response.json()["order"]["order_number"] == "HS-20260101-0042"

    def test_order_without_items(self, client, db):
        seed_order(db, "ABCDE12345", items=[])
        response = client.post("/track-order", json={"orderNumber": "ABCDE12345", "phoneLast4": "1234"})
        assert response.status_code == 200
        assert response.json()["order"]["items"] == []

    def test_items_belong_to_the_order(self, client, db):
        seed_order(db, "ABCDE12345", items=[("Tart", 50, 1)])
        seed_order(db, "ZZZZZ99999", items=[("Brownie", 30, 3)])
        order = client.post(
            "/track-order", json={"orderNumber": "ABCDE12345", "phoneLast4": "1234"}
        ).json()["order"]
        assert [i["product_name"] for i in order["items"]] == ["Tart"]

    def test_success_is_audited(self, client, db):
        seed_order(db, "ABCDE12345")
        client.post(
            "/track-order",
            json={"orderNumber": "ABCDE12345", "phoneLast4": "1234"},
            headers={"X-Forwarded-For": "10.0.0.7, 172.16.0.1"},
        )
        row = db["backend_logs"].find_one({"function_name": "track-order"})
        assert row["status_code"] == 200
        assert row["ip_address"] == "10.0.0.7"
        assert "1234" not in (row["details"] or "").replace("ABCDE12345", "")


class TestTrackOrderValidation:
    @pytest.mark.parametrize("phone", ["123", "12345", "12a4", "", " 123", "١٢٣٤", None, 1234])
    def test_bad_phone_suffix_is_400_even_for_existing_order(self, client, db, phone):
        seed_order(db, "ABCDE12345")
        response = client.post("/track-order", json={"orderNumber": "ABCDE12345", "phoneLast4": phone})
        assert response.status_code == 400
        assert "error" in response.json()

    @pytest.mark.parametrize("order_number", ["", None, 12345, ["ABCDE12345"]])
    def test_missing_order_number(self, client, order_number):
        response = client.post("/track-order", json={"orderNumber": order_number, "phoneLast4": "1234"})
        assert response.status_code == 400
        assert response.json()["error"] == "رقم الطلب مطلوب"

    @pytest.mark.parametrize("order_number", ["ABCD", "   AB   ", "X" * 51])
    def test_order_number_length(self, client, order_number):
        response = client.post("/track-order", json={"orderNumber": order_number, "phoneLast4": "1234"})
        assert response.status_code == 400
        assert response.json()["error"] == "رقم الطلب غير صالح"

    def test_malformed_json(self, client):
        response = client.post(
            "/track-order", content="not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert "error" in response.json()

    def test_validation_does_not_touch_store(self, client, store, monkeypatch):
        def explode(*args, **kwargs):
            raise AssertionError("store should not be read")

        monkeypatch.setattr(store, "find_one", explode)
        response = client.post("/track-order", json={"orderNumber": "ABCDE12345", "phoneLast4": "12"})
        assert response.status_code == 400


class TestTrackOrderNotFound:
    def test_unknown_order(self, client):
        response = client.post("/track-order", json={"orderNumber": "NOPE123456", "phoneLast4": "1234"})
        assert response.status_code == 404
        assert response.json() == {"error": NOT_FOUND}

    def test_wrong_phone_is_indistinguishable(self, client, db):
        seed_order(db, "ABCDE12345", phone="01012341234")
        wrong_phone = client.post("/track-order", json={"orderNumber": "ABCDE12345", "phoneLast4": "9999"})
        unknown = client.post("/track-order", json={"orderNumber": "NOPE123456", "phoneLast4": "1234"})
        assert wrong_phone.status_code == unknown.status_code == 404
        assert wrong_phone.json() == unknown.json()


class TestTrackOrderStoreFailure:
    def test_store_error_is_generic_500(self, client, store, monkeypatch):
        def down(*args, **kwargs):
            raise ServerSelectionTimeoutError("primary unreachable at db-1:27017")

        monkeypatch.setattr(store, "find_one", down)
        response = client.post("/track-order", json={"orderNumber": "ABCDE12345", "phoneLast4": "1234"})
        assert response.status_code == 500
        assert response.json() == {"error": "حدث خطأ في معالجة الطلب"}
        assert "db-1" not in response.text
