"""Capability access routes for the signed-in account.

Used by the frontend to gate UI. Privileged endpoints enforce access
themselves with @require_capability; these checks are informational.
"""
from fastapi import APIRouter, Depends, Query, Request
from typing import List
import logging

from middleware import principal_route_guard
from models import CapabilityCheckRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/features", tags=["features"])


@router.post("/check")
async def check_capability(
    request: Request,
    data: CapabilityCheckRequest,
    current_user: dict = Depends(principal_route_guard),
):
    """Check one capability for the current account."""
    feature_access = request.app.state.feature_access
    result = await feature_access.check(current_user["account_id"], data.capability_id)
    return result.model_dump()


@router.get("/check")
async def check_capabilities(
    request: Request,
    capability_id: List[str] = Query(..., min_length=1),
    current_user: dict = Depends(principal_route_guard),
):
    """Check several capabilities at once (?capability_id=a&capability_id=b)."""
    feature_access = request.app.state.feature_access
    results = await feature_access.check_many(current_user["account_id"], capability_id)
    return {
        "results": {key: result.model_dump() for key, result in results.items()}
    }


@router.get("/accessible")
async def list_accessible_capabilities(
    request: Request,
    current_user: dict = Depends(principal_route_guard),
):
    feature_access = request.app.state.feature_access
    accessible = await feature_access.list_accessible(current_user["account_id"])
    return {"capabilities": sorted(accessible)}


@router.get("/catalog")
async def get_capability_catalog(request: Request):
    """Public catalog grouped by category (names only, no plan data)."""
    registry = request.app.state.capability_registry
    return {
        "categories": {
            category: [
                {"capability_id": c.capability_id, "display_name": c.display_name}
                for c in capabilities if c.is_active
            ]
            for category, capabilities in registry.by_category().items()
        }
    }
