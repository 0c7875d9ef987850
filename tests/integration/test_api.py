"""Integration tests for API endpoints."""

from fastapi.testclient import TestClient

from verification_service.api.app import create_app
from verification_service.services.sync import SWEEP_JOB_KEY, SyncService


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_health_check(self, client):
        """Test basic health check."""
        response = client.get("/health/")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    def test_readiness_check(self, client):
        """Test readiness check."""
        response = client.get("/health/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["database"] is True
        assert data["scheduled_jobs"] == 0

    def test_liveness_check(self, client):
        """Test liveness check."""
        response = client.get("/health/live")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "alive"

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics/")
        assert response.status_code == 200
        assert "policy_verifications_total" in response.text


class TestLifespan:
    """The application owns the synchronization jobs."""

    def test_scheduler_started_and_stopped(self, session_factory, companies, manual_scheduler):
        sync_service = SyncService(session_factory, scheduler=manual_scheduler)
        app = create_app(session_factory=session_factory, sync_service=sync_service)

        with TestClient(app) as client:
            assert manual_scheduler.started is True
            assert SWEEP_JOB_KEY in manual_scheduler.keys()
            response = client.get("/health/ready")
            assert response.json()["scheduled_jobs"] == 3

        assert manual_scheduler.stopped is True
