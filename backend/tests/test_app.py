"""Application wiring tests: routes, maintenance mode and role gating."""

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from brocomp.api.deps import get_current_user
from brocomp.core.config import settings
from brocomp.models import User
from main import app


def _user(role: str) -> User:
    return User(
        id=uuid.uuid4(),
        email=f"{role}@example.com",
        hashed_password="x",
        full_name="Sam Lee",
        role=role,
        admin_approved=True,
    )


@pytest.fixture
def client():
    # No context manager: the lifespan (Redis listener) is not started.
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def test_api_routes_are_mounted():
    paths = {route.path for route in app.routes}
    for path in (
        "/v1/health",
        "/v1/auth/login",
        "/v1/auth/admin-login",
        "/v1/complaints",
        "/v1/complaints/offline-sync",
        "/v1/complaints/track/{tracking_id}",
        "/v1/admin/complaints/bulk/status",
        "/v1/community/messages",
        "/v1/community/online",
        "/v1/notifications/read-all",
        "/v1/security/validate-file",
        "/v1/analytics/overview",
        "/v1/devices/logout-all",
        "/v1/realtime/ws",
    ):
        assert path in paths, path


def test_health(client):
    response = client.get("/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_root(client):
    assert client.get("/").json()["name"] == "BroComp API"


def test_protected_route_requires_token(client):
    response = client.get("/v1/users/me")
    assert response.status_code in (401, 403)


class TestMaintenanceMode:
    def test_blocks_api(self, client):
        with patch.object(settings, "maintenance_mode", True):
            response = client.get("/v1/reference/categories")

        assert response.status_code == 503
        assert response.json() == {"detail": "Service under maintenance"}

    def test_health_stays_reachable(self, client):
        with patch.object(settings, "maintenance_mode", True):
            assert client.get("/v1/health").status_code == 200


class TestRoleGating:
    def test_student_cannot_read_rate_limits(self, client):
        app.dependency_overrides[get_current_user] = lambda: _user("student")

        response = client.get("/v1/security/rate-limits")

        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_admin_reads_rate_limits(self, client):
        app.dependency_overrides[get_current_user] = lambda: _user("admin")

        response = client.get("/v1/security/rate-limits")

        assert response.status_code == 200
        rules = {rule["action"]: rule for rule in response.json()}
        assert rules["login"] == {
            "action": "login",
            "max_attempts": 5,
            "window_minutes": 15.0,
            "backoff": True,
        }
        assert rules["chat"]["max_attempts"] == 60

    def test_admin_cannot_send_alerts(self, client):
        app.dependency_overrides[get_current_user] = lambda: _user("admin")

        response = client.post(
            "/v1/security/alerts",
            json={"alert_type": "port_scan", "severity": "low", "message": "x"},
        )

        assert response.status_code == 403


class TestReadiness:
    def test_ready_when_dependencies_answer(self, client):
        with patch("brocomp.api.v1.health.ping_database", AsyncMock(return_value=True)), patch(
            "brocomp.api.v1.health.ping_redis", AsyncMock(return_value=True)
        ):
            response = client.get("/v1/health/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready", "checks": {"database": "ok", "redis": "ok"}}

    def test_unavailable_when_redis_is_down(self, client):
        with patch("brocomp.api.v1.health.ping_database", AsyncMock(return_value=True)), patch(
            "brocomp.api.v1.health.ping_redis", AsyncMock(return_value=False)
        ):
            response = client.get("/v1/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["redis"] == "failed"
