"""
HTTP adapter tests (TestClient, no MongoDB).
/api/features/*, /api/admin/features/* and the @require_capability gate.
"""
import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

# Ensure backend root is on path
backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from fastapi import APIRouter, Request
from fastapi.testclient import TestClient

from conftest import build_test_app, make_plan
from middleware.capability_gating import require_capability
from models import AuditAction
from routes import admin_features, features

gated_router = APIRouter(prefix="/api/studio")


@gated_router.post("/voice-clone")
@require_capability("voice-cloning")
async def clone_voice(request: Request):
    return {"success": True}


@gated_router.post("/direct-require")
async def direct_require(request: Request):
    await request.app.state.feature_access.require(request.state.user["account_id"], "n8n-integrations")
    return {"success": True}


@pytest.fixture
def app(registry, loader, feature_access):
    loader.add("acct-free")
    loader.add("acct-ent", make_plan(name="Enterprise", tier="enterprise"))
    app = build_test_app(features.router, admin_features.router, gated_router)
    app.state.capability_registry = registry
    app.state.feature_access = feature_access
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def _as(account_id, role="ROLE_USER"):
    return {"X-Test-Account": account_id, "X-Test-Role": role}


class TestFeatureRoutes:
    """/api/features."""

    def test_check_requires_auth(self, client):
        response = client.post("/api/features/check", json={"capability_id": "voice-cloning"})
        assert response.status_code == 401

    def test_check_denied(self, client):
        response = client.post("/api/features/check", json={"capability_id": "voice-cloning"},
                               headers=_as("acct-free"))
        assert response.status_code == 200
        body = response.json()
        assert body["can_access"] is False
        assert body["requires_upgrade"] is True
        assert body["resolved_plan_name"] == "Free"
        assert body["capability_display_name"] == "Voice Cloning"

    def test_check_many(self, client):
        response = client.get(
            "/api/features/check?capability_id=voice-cloning&capability_id=media-library",
            headers=_as("acct-ent"),
        )
        assert response.status_code == 200
        results = response.json()["results"]
        assert results["voice-cloning"]["can_access"] is True
        assert results["media-library"]["source"] == "ALWAYS_ACCESSIBLE"

    def test_accessible(self, client):
        response = client.get("/api/features/accessible", headers=_as("acct-ent"))
        assert response.status_code == 200
        assert len(response.json()["capabilities"]) == 27

    def test_catalog_is_public(self, client):
        response = client.get("/api/features/catalog")
        assert response.status_code == 200
        names = [c["display_name"] for c in response.json()["categories"]["audio"]]
        assert set(names) == {"Voice Over", "Voice Cloning"}


class TestCapabilityGate:
    """@require_capability and the AccessDenied handler."""

    def test_allowed(self, client):
        with patch("middleware.capability_gating.create_audit_log", new_callable=AsyncMock) as audit:
            response = client.post("/api/studio/voice-clone", headers=_as("acct-ent"))
        assert response.status_code == 200
        audit.assert_not_awaited()

    def test_denied_is_403_with_error_code(self, client):
        with patch("middleware.capability_gating.create_audit_log", new_callable=AsyncMock) as audit:
            response = client.post("/api/studio/voice-clone", headers=_as("acct-free"))

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["error_code"] == "PLAN_NOT_ELIGIBLE"
        assert detail["capability_name"] == "Voice Cloning"
        assert detail["minimum_tier"] == "Enterprise"
        assert audit.await_args.kwargs["action"] == AuditAction.CAPABILITY_ACCESS_DENIED

    def test_unauthenticated(self, client):
        response = client.post("/api/studio/voice-clone")
        assert response.status_code == 401

    def test_direct_require_maps_to_403(self, client):
        response = client.post("/api/studio/direct-require", headers=_as("acct-free"))
        assert response.status_code == 403
        assert response.json()["detail"]["capability_id"] == "n8n-integrations"


class TestAdminRoutes:
    """/api/admin/features guard and error mapping."""

    def _admin_client(self, app, result=None, error_details=None):
        admin = AsyncMock()
        if error_details:
            admin.grant = AsyncMock(return_value=(False, "Plan 'x' not found", error_details))
        else:
            admin.grant = AsyncMock(return_value=result)
        app.state.capability_admin = admin
        return TestClient(app), admin

    def test_non_admin_forbidden(self, app):
        client, admin = self._admin_client(app, result=(True, "ok", {}))
        response = client.post("/api/admin/features/plans/p1/grants", json={"capability_id": "brand-kit"},
                               headers=_as("acct-ent"))
        assert response.status_code == 403
        admin.grant.assert_not_awaited()

    def test_admin_grant(self, app):
        client, admin = self._admin_client(app, result=(True, "Capability granted", {"created": True}))
        response = client.post("/api/admin/features/plans/p1/grants", json={"capability_id": "brand-kit"},
                               headers=_as("admin-1", "ROLE_ADMIN"))

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Capability granted", "created": True}
        admin.grant.assert_awaited_once_with("p1", "brand-kit", actor_id="admin-1")

    @pytest.mark.parametrize("error_code,status_code", [
        ("PLAN_NOT_FOUND", 404),
        ("INVALID_CAPABILITY", 400),
        ("STORE_ERROR", 503),
    ])
    def test_error_mapping(self, app, error_code, status_code):
        client, _ = self._admin_client(app, error_details={"error_code": error_code})
        response = client.post("/api/admin/features/plans/x/grants", json={"capability_id": "brand-kit"},
                               headers=_as("admin-1", "ROLE_ADMIN"))
        assert response.status_code == status_code
        assert response.json()["detail"]["error_code"] == error_code

    def test_plan_audit_history(self, app):
        client = TestClient(app)
        entries = [{"action": "CAPABILITY_GRANTED", "resource_id": "p1"}]
        with patch("routes.admin_features.get_audit_logs_for_resource",
                   new_callable=AsyncMock, return_value=entries) as history:
            response = client.get("/api/admin/features/plans/p1/audit?limit=5",
                                  headers=_as("admin-1", "ROLE_ADMIN"))

        assert response.status_code == 200
        assert response.json() == {"plan_id": "p1", "entries": entries}
        history.assert_awaited_once_with("plan", "p1", limit=5)
