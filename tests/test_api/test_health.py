"""Tests for health check endpoints."""

from fastapi.testclient import TestClient


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_liveness(self, client: TestClient):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_readiness(self, client: TestClient):
        """Readiness only depends on the local store."""
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_full_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert set(data["dependencies"]) == {"database", "supabase"}
        for dep_info in data["dependencies"].values():
            assert dep_info["status"] == "healthy"

    def test_backend_down_is_degraded(self, client: TestClient, mock_supabase):
        """Queued work keeps going without the backend, so this is not unhealthy."""
        mock_supabase.health_check.return_value = False

        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["dependencies"]["supabase"]["status"] == "degraded"
        assert data["dependencies"]["database"]["status"] == "healthy"


class TestRootEndpoint:
    def test_root_returns_api_info(self, client: TestClient):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "MigraineMe API", "version": "0.1.0"}
