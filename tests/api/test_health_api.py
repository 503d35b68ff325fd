from unittest.mock import MagicMock

from fastapi import status
from fastapi.testclient import TestClient


class TestHealthCheckAPI:
    """Test cases for the /health endpoint"""

    def test_get_health_success(self, client: TestClient):
        """Test successful health check endpoint"""
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK

        data = response.json()
        assert data["status"] == "ok"
        assert data["timestamp"].endswith("Z")

    def test_get_health_content_type(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert "application/json" in response.headers.get("content-type", "")

    def test_get_health_no_authentication_required(self, client: TestClient):
        """Health endpoint should be publicly accessible"""
        for _ in range(3):
            response = client.get("/health")
            assert response.status_code == status.HTTP_200_OK

    def test_get_health_degraded(self, client: TestClient, backends):
        # a configured Redis that stops answering degrades the service
        backends.redis = MagicMock()
        backends.redis.ping.side_effect = ConnectionError("down")

        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "degraded"
        backends.redis = None

    def test_get_health_degraded_by_store(self, client: TestClient, challenge_store, monkeypatch):
        monkeypatch.setattr(challenge_store, "health", lambda: False)

        response = client.get("/health")

        assert response.json()["status"] == "degraded"


class TestDbInfoAPI:
    """Test cases for the /db-info endpoint"""

    def test_get_db_info(self, client: TestClient):
        response = client.get("/db-info")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"postgres": True, "mongodb": False, "redis": False}

