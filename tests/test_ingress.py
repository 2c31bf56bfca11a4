"""Tests for the shared HTTP surface: CORS, preflight and error shape."""

import pytest

EXPECTED_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type"


class TestPreflight:
    @pytest.mark.parametrize("path", ["/track-order", "/validate-coupon", "/delete-account", "/create-order"])
    def test_options_is_empty_204(self, client, path):
        response = client.options(path)
        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-headers"] == EXPECTED_ALLOW_HEADERS

    def test_browser_preflight(self, client):
        response = client.options(
            "/validate-coupon",
            headers={
                "Origin": "https://shop.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type, apikey",
            },
        )
        assert response.status_code == 204
        assert response.headers["access-control-allow-origin"] == "*"


class TestResponses:
    def test_success_carries_cors_headers(self, client):
        response = client.post("/validate-coupon", json={"code": "UNKNOWN"})
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["content-type"].startswith("application/json")

    def test_errors_carry_cors_headers(self, client):
        response = client.post("/track-order", json={})
        assert response.status_code == 400
        assert response.headers["access-control-allow-origin"] == "*"
        assert set(response.json()) == {"error"}

    def test_missing_body_is_400(self, client):
        response = client.post("/track-order")
        assert response.status_code == 400

    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "message" in response.json()
