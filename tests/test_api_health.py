"""Tests for the /health API endpoint."""

import logging

import pytest
from fastapi.testclient import TestClient

from src.api.config import Settings
from src.api.main import create_app
from storage.errors import StorageError
from storage.memory import InMemoryStore


class UnreachableStore(InMemoryStore):
    """In-memory store that fails its health probe."""

    def ping(self) -> None:
        raise StorageError("connection refused", code="UNAVAILABLE")


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        app_name="Emotion Timeline Test Service",
        log_level="DEBUG",
    )


@pytest.fixture
def client(test_settings: Settings) -> TestClient:
    """Create a test client with the app."""
    app = create_app(test_settings, store=InMemoryStore())
    return TestClient(app)


class TestHealthEndpoint:
    """Tests for GET /health endpoint."""

    def test_health_returns_ok(self, client: TestClient) -> None:
        """Test that /health returns status ok."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_health_includes_storage_backend(self, client: TestClient) -> None:
        """Test that /health names the storage backend."""
        response = client.get("/health")

        assert response.json()["storage"] == "memory"

    def test_health_degraded_when_store_unreachable(self, test_settings: Settings) -> None:
        """Test that a failing store reports degraded instead of erroring."""
        client = TestClient(create_app(test_settings, store=UnreachableStore()))

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "degraded", "storage": "memory"}

    def test_health_has_request_id_header(self, client: TestClient) -> None:
        """Test that response includes X-Request-ID header."""
        response = client.get("/health")

        assert response.status_code == 200
        assert "X-Request-ID" in response.headers
        assert len(response.headers["X-Request-ID"]) > 0

    def test_health_with_custom_request_id(self, client: TestClient) -> None:
        """Test that custom X-Request-ID is preserved."""
        custom_id = "test-request-123"
        response = client.get(
            "/health",
            headers={"X-Request-ID": custom_id},
        )

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == custom_id

    def test_health_has_timing_header(self, client: TestClient) -> None:
        """Test that response includes X-Response-Time header."""
        response = client.get("/health")

        assert response.headers["X-Response-Time"].endswith("ms")

    def test_access_log_line(self, client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
        """Test that each request writes one access line."""
        with caplog.at_level(logging.INFO, logger="api.access"):
            client.get("/health")

        messages = [r.getMessage() for r in caplog.records if r.name == "api.access"]
        assert len(messages) == 1
        assert "method=GET path=/health status=200 user_id=-" in messages[0]

    def test_runs_with_lifespan(self, test_settings: Settings) -> None:
        """Test that startup and shutdown complete with the in-memory store."""
        with TestClient(create_app(test_settings, store=InMemoryStore())) as client:
            assert client.get("/health").status_code == 200
