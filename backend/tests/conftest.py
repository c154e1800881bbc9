"""
Pytest configuration and shared test helpers for backend tests.

Entitlement tests run against in-memory fakes: a principal loader backed by
a dict, and a test FastAPI app whose middleware places the caller on
request.state.user from X-Test-* headers (authentication lives upstream).
"""
import sys
from pathlib import Path
from typing import Dict, Iterable, Optional

# Ensure backend root is on path
backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from models import PlanSnapshot, PrincipalPlan
from services.capability_registry import CapabilityRegistry
from services.entitlement_errors import StoreError
from services.feature_access import FeatureAccessService
from services.resolution_engine import ResolutionEngine


def make_plan(
    plan_id: str = "plan-1",
    name: str = "Creator",
    tier: Optional[str] = None,
    grants: Optional[Iterable[str]] = None,
    lines: Optional[Iterable[str]] = None,
    price_monthly: Optional[float] = None,
) -> PlanSnapshot:
    return PlanSnapshot(
        plan_id=plan_id,
        name=name,
        tier=tier,
        price_monthly=price_monthly,
        structured_grants=set(grants) if grants else None,
        legacy_text_lines=list(lines) if lines else None,
    )


class FakePrincipalLoader:
    """In-memory load_principal_with_plan. Unknown ids are NotFound."""

    def __init__(self):
        self.principals: Dict[str, PrincipalPlan] = {}
        self.error: Optional[Exception] = None
        self.calls = 0

    def add(self, principal_id: str, plan: Optional[PlanSnapshot] = None) -> None:
        self.principals[principal_id] = PrincipalPlan(principal_id=principal_id, plan=plan)

    def fail_with(self, error: Exception = None) -> None:
        self.error = error or StoreError("connection refused")

    async def load_principal_with_plan(self, principal_id: str) -> Optional[PrincipalPlan]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.principals.get(principal_id)


@pytest.fixture
def registry():
    return CapabilityRegistry()


@pytest.fixture
def loader():
    return FakePrincipalLoader()


@pytest.fixture
def engine(registry, loader):
    return ResolutionEngine(registry, loader)


@pytest.fixture
def feature_access(engine):
    return FeatureAccessService(engine)


def build_test_app(*routers) -> FastAPI:
    """FastAPI app with the given routers and a header-driven fake auth layer."""
    from server import access_denied_handler
    from services.entitlement_errors import AccessDenied

    app = FastAPI()

    @app.middleware("http")
    async def inject_user(request: Request, call_next):
        account_id = request.headers.get("X-Test-Account")
        if account_id:
            request.state.user = {
                "account_id": account_id,
                "role": request.headers.get("X-Test-Role", "ROLE_USER"),
            }
        return await call_next(request)

    app.add_exception_handler(AccessDenied, access_denied_handler)
    for router in routers:
        app.include_router(router)
    return app

