"""Admin Capability Routes - plan grant management."""
from fastapi import APIRouter, Depends, HTTPException, Request
from typing import Any, Dict, Optional
import logging

from middleware import admin_route_guard
from models import GrantCapabilityRequest, ReplaceGrantsRequest
from utils.audit import get_audit_logs_for_resource

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/features",
    tags=["admin-features"],
    dependencies=[Depends(admin_route_guard)],
)

ERROR_STATUS = {
    "PLAN_NOT_FOUND": 404,
    "INVALID_CAPABILITY": 400,
    "STORE_ERROR": 503,
}


def _unwrap(ok: bool, message: Optional[str], details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Turn an admin service result tuple into a response body or HTTPException."""
    details = details or {}
    if not ok:
        error_code = details.get("error_code", "STORE_ERROR")
        raise HTTPException(
            status_code=ERROR_STATUS.get(error_code, 400),
            detail={"error_code": error_code, "message": message},
        )
    return {"success": True, "message": message, **details}


def _admin(request: Request):
    return request.app.state.capability_admin


@router.get("/plans")
async def list_plans(request: Request):
    return _unwrap(*await _admin(request).list_plans_with_capabilities())


@router.get("/plans/{plan_id}/grants")
async def get_plan_grants(plan_id: str, request: Request):
    return _unwrap(*await _admin(request).grants_for(plan_id))


@router.post("/plans/{plan_id}/grants")
async def grant_capability(
    plan_id: str,
    data: GrantCapabilityRequest,
    request: Request,
    current_user: dict = Depends(admin_route_guard),
):
    return _unwrap(*await _admin(request).grant(plan_id, data.capability_id, actor_id=current_user.get("account_id")))


@router.put("/plans/{plan_id}/grants")
async def replace_plan_grants(
    plan_id: str,
    data: ReplaceGrantsRequest,
    request: Request,
    current_user: dict = Depends(admin_route_guard),
):
    return _unwrap(*await _admin(request).replace_grants(
        plan_id, data.capability_ids, actor_id=current_user.get("account_id")
    ))


@router.delete("/plans/{plan_id}/grants/{capability_id}")
async def revoke_capability(
    plan_id: str,
    capability_id: str,
    request: Request,
    current_user: dict = Depends(admin_route_guard),
):
    return _unwrap(*await _admin(request).revoke(plan_id, capability_id, actor_id=current_user.get("account_id")))


@router.post("/seed-defaults")
async def seed_tier_defaults(request: Request, current_user: dict = Depends(admin_route_guard)):
    """Give every plan without structured grants its tier defaults (idempotent)."""
    return _unwrap(*await _admin(request).seed_tier_defaults(actor_id=current_user.get("account_id")))


@router.get("/matrix")
async def entitlement_matrix(request: Request):
    return {"capabilities": _admin(request).entitlement_matrix()}


@router.get("/catalog")
async def admin_catalog(request: Request):
    """Full catalog including inactive and auto-provisioned capabilities."""
    return {"categories": _admin(request).catalog_by_category()}


@router.get("/plans/{plan_id}/audit")
async def plan_audit_history(plan_id: str, limit: int = 50):
    """Grant changes for one plan, newest first."""
    return {"plan_id": plan_id, "entries": await get_audit_logs_for_resource("plan", plan_id, limit=limit)}
