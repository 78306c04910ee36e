"""Tests for the Pulse-Ledger Dashboard API.

This test suite covers:
- Root and health endpoints
- Dashboard statistics endpoint (standard windows, ranges, failures)
- Transaction write endpoint
- Middleware headers and error handling
"""

from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from pulseledger.dashboard.api.dependencies import (
    get_dashboard_config,
    get_stats_service,
    get_store_adapter,
)
from pulseledger.dashboard.api.main import app
from pulseledger.dashboard.services.stats_service import DashboardStatsService
from pulseledger.domain.ports import ConfigurationError, RecordStorePort, Result, StoreErrorKind

REFERENCE_DAY = date(2024, 3, 15)


@pytest.fixture
def failing_store():
    """A store that can be reached by nothing."""
    mock = Mock(spec=RecordStorePort)
    mock.store_type = "postgresql"
    failure = Result.failure_result("could not connect to server", error_type=StoreErrorKind.CONNECTION.value)
    mock.query_records.return_value = failure
    mock.count_records.return_value = failure
    mock.insert_record.return_value = failure
    return mock


def make_client(store, config):
    app.dependency_overrides[get_store_adapter] = lambda: store
    app.dependency_overrides[get_dashboard_config] = lambda: config
    app.dependency_overrides[get_stats_service] = lambda: DashboardStatsService(
        store, config, clock=lambda: REFERENCE_DAY
    )
    return TestClient(app)


@pytest.fixture
def client(seeded_store, dashboard_config):
    """Create a test client backed by the seeded in-memory store."""
    try:
        with make_client(seeded_store, dashboard_config) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def failing_client(failing_store, dashboard_config):
    """Create a test client whose store is unreachable."""
    try:
        with make_client(failing_store, dashboard_config) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


class TestRootEndpoint:
    """Test the root endpoint."""

    def test_root_endpoint_returns_info(self, client):
        """Test that root endpoint returns API information."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == "1.0.0"
        assert data["docs"] == "/api/docs"
        assert data["health"] == "/api/health"
        assert data["stats"] == "/api/dashboard/stats"


class TestHealthEndpoint:
    """Test the health check endpoint."""

    def test_health_check_connected(self, client):
        """Test health check when the store answers."""
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["store"]["status"] == "connected"
        assert data["store"]["type"] == "duckdb"
        assert data["store"]["response_time_ms"] is not None

    def test_health_check_disconnected(self, failing_client):
        """Test health check when the store cannot be reached."""
        response = failing_client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["store"] == {"status": "disconnected", "type": "postgresql", "response_time_ms": None}


class TestStatsEndpoint:
    """Test GET /api/dashboard/stats."""

    def test_standard_windows(self, client):
        """Test the snapshot for the reference day."""
        response = client.get("/api/dashboard/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["reference_date"] == "2024-03-15"
        assert set(data["windows"]) == {"today", "this_week", "this_month"}
        assert Decimal(data["revenue"]["today"]) == Decimal("430")
        assert Decimal(data["expenses"]["today"]) == Decimal("30")
        assert data["counts"] == {"patients": 2, "doctors": 1, "beds": 3, "appointments": 2}

    def test_range(self, client):
        """Test that a range adds a range window ending on the reference day."""
        response = client.get("/api/dashboard/stats", params={"start_date": "2024-03-10", "end_date": "2024-03-12"})

        assert response.status_code == 200
        data = response.json()
        assert data["reference_date"] == "2024-03-12"
        assert data["windows"]["range"] == {"start_date": "2024-03-10", "end_date": "2024-03-12"}
        assert Decimal(data["revenue"]["range"]) == Decimal("40")

    @pytest.mark.parametrize("params", [
        {"start_date": "2024-03-10"},
        {"start_date": "2024-03-12", "end_date": "2024-03-10"},
        {"start_date": "10/03/2024", "end_date": "2024-03-12"},
    ])
    def test_bad_range_is_400(self, client, params):
        """Test that malformed or inverted ranges are rejected."""
        response = client.get("/api/dashboard/stats", params=params)

        assert response.status_code == 400

    def test_fetch_failure_is_503(self, failing_client):
        """Test that a failed fetch is an explicit error, not a snapshot of zeros."""
        response = failing_client.get("/api/dashboard/stats")

        assert response.status_code == 503
        detail = response.json()["detail"]
        assert detail["error"] == "FetchError"
        assert detail["context"]["kind"] == StoreErrorKind.CONNECTION.value
        assert "revenue" not in response.json()


class TestTransactionsEndpoint:
    """Test POST /api/transactions."""

    def test_create_then_repeat(self, client, seeded_store):
        """Test 201 for a new id and 200 when the same id is sent again."""
        body = {"id": "T900", "patient_id": "P001", "amount": "75.50", "transaction_type": "entry_fee"}

        first = client.post("/api/transactions", json=body)
        assert first.status_code == 201
        assert first.json() == {"id": "T900", "already_recorded": False, "activity_updated": True}

        second = client.post("/api/transactions", json=body)
        assert second.status_code == 200
        assert second.json()["already_recorded"] is True

        assert seeded_store.count_records("transactions", []).value == 10

    def test_invalid_payload_is_422(self, client):
        """Test that request validation rejects a body without a patient."""
        response = client.post("/api/transactions", json={"amount": "10"})

        assert response.status_code == 422

    def test_invalid_transaction_date_is_422(self, client):
        """Test that transaction_date must be a calendar date."""
        response = client.post(
            "/api/transactions",
            json={"patient_id": "P001", "amount": "10", "transaction_date": "15/03/2024"},
        )

        assert response.status_code == 422

    def test_unreachable_store_is_503(self, failing_client):
        """Test that a connection failure maps to 503."""
        response = failing_client.post("/api/transactions", json={"patient_id": "P001", "amount": "10"})

        assert response.status_code == 503
        assert response.json()["detail"].startswith("CONNECTION")


class TestMiddleware:
    """Test middleware functionality."""

    def test_request_id_and_process_time_headers(self, client):
        """Test that every response carries tracing headers."""
        response = client.get("/")

        assert "X-Request-ID" in response.headers
        assert "X-Process-Time" in response.headers

    def test_request_id_is_propagated(self, client):
        """Test that a caller-supplied request id is echoed back."""
        response = client.get("/", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"

    def test_configuration_error_is_503(self, seeded_store):
        """Test that a misconfigured service answers 503."""

        def broken_config():
            raise ConfigurationError("PL_TENANT_ID is required")

        app.dependency_overrides[get_store_adapter] = lambda: seeded_store
        app.dependency_overrides[get_dashboard_config] = broken_config
        try:
            with TestClient(app) as test_client:
                response = test_client.post("/api/transactions", json={"patient_id": "P001", "amount": "10"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.json()["error"] == "Service misconfigured"
