"""Tests for health check endpoints."""

from unittest.mock import patch, MagicMock

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from stageflow.api.routers.health import check_database, check_memory


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_basic_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    def test_liveness_probe(self, client: TestClient):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_readiness_probe_healthy(self, client: TestClient):
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["checks"]["database"] == {"status": "healthy", "dialect": "sqlite"}

    def test_readiness_probe_database_down(self, client: TestClient):
        with patch(
            "stageflow.api.routers.health.check_database",
            return_value={"status": "unhealthy", "error": "connection refused"},
        ):
            response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not_ready"
        assert data["failed"] == ["database"]

    def test_request_id_header(self, client: TestClient):
        response = client.get("/api/workflows")
        assert response.headers.get("X-Request-ID")


class TestHealthChecks:
    """Test the individual checks."""

    def test_database_error_is_unhealthy(self):
        db = MagicMock()
        db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("gone"))

        result = check_database(db)

        assert result["status"] == "unhealthy"
        assert "gone" in result["error"]

    def test_memory_pressure_is_only_a_warning(self):
        with patch("stageflow.api.routers.health.psutil.virtual_memory") as memory:
            memory.return_value = MagicMock(percent=97.0)
            result = check_memory()

        assert result == {"status": "warning", "percent_used": 97.0}
