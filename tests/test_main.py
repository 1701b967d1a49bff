"""
Test suite for the FastAPI application.

Tests cover health endpoints, request correlation, security headers, the
exception handlers and router registration.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from src.main import app


# ============================================================================
# Health Endpoints
# ============================================================================


class TestHealthEndpoints:
    """Health, readiness and liveness probes."""

    def test_health(self, test_client: TestClient):
        response = test_client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "Food Ordering API"
        assert data["environment"] == "test"

    def test_live(self, test_client: TestClient):
        response = test_client.get("/live")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "alive"

    def test_ready_when_database_answers(self, test_client: TestClient):
        with patch("src.main.check_database_health", AsyncMock(return_value=True)):
            response = test_client.get("/ready")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["database"] == "healthy"
        assert response.json()["dependencies_ready"] is True

    def test_not_ready_without_database(self, test_client: TestClient):
        with patch("src.main.check_database_health", AsyncMock(return_value=False)):
            response = test_client.get("/ready")

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["status"] == "not_ready"


# ============================================================================
# Middleware
# ============================================================================


class TestMiddleware:
    """Request correlation and security headers."""

    def test_request_id_generated(self, test_client: TestClient):
        response = test_client.get("/health")

        assert response.headers.get("X-Request-ID")

    def test_request_id_preserved(self, test_client: TestClient):
        response = test_client.get("/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"

    def test_request_ids_unique(self, test_client: TestClient):
        ids = {test_client.get("/health").headers["X-Request-ID"] for _ in range(5)}

        assert len(ids) == 5

    def test_security_headers(self, test_client: TestClient):
        response = test_client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_cors_preflight(self, test_client: TestClient):
        response = test_client.options(
            "/api/v1/orders",
            headers={
                "Origin": "http://localhost:4200",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["access-control-allow-origin"] == "http://localhost:4200"


# ============================================================================
# Exception Handlers and Routing
# ============================================================================


class TestApplication:
    """Exception handlers and registered routes."""

    def test_validation_error_body(self, test_client: TestClient):
        response = test_client.get(
            "/api/v1/orders/reviews/menu/not-a-uuid",
            headers={"X-Request-ID": "req-422"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        body = response.json()
        assert body["error"] == "Validation Error"
        assert body["request_id"] == "req-422"
        assert body["details"]

    def test_unknown_route(self, test_client: TestClient):
        response = test_client.get("/api/v1/nowhere")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.parametrize(
        "path",
        [
            "/api/v1/orders",
            "/api/v1/orders/{order_id}",
            "/api/v1/orders/{order_id}/cancel",
            "/api/v1/orders/{order_id}/status",
            "/api/v1/orders/review",
            "/api/v1/payments/zalopay",
            "/api/v1/payments/zalopay/callback",
            "/api/v1/payments/zalopay/order-status/{app_trans_id}",
        ],
    )
    def test_routes_registered(self, path):
        assert path in {route.path for route in app.routes}

    def test_openapi_schema(self, test_client: TestClient):
        response = test_client.get("/openapi.json")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["info"]["title"] == "Food Ordering API"
