"""
Capability Gating
Server-side enforcement of plan-based capability access.
Uses the FeatureAccessService on app.state as the single decision point;
the principal is always the authenticated account, never a request field.
"""
from fastapi import HTTPException, Request
from models import AuditAction
from services.entitlement_errors import AccessDenied
from utils.audit import create_audit_log
from functools import wraps
import logging

logger = logging.getLogger(__name__)


def access_denied_detail(denial: AccessDenied) -> dict:
    """403 body shared by the decorator and the app-level exception handler."""
    return {
        "error_code": "PLAN_NOT_ELIGIBLE",
        "message": denial.message,
        "capability_id": denial.capability_id,
        "capability_name": denial.capability_name,
        "plan_name": denial.plan_name,
        "minimum_tier": denial.minimum_tier,
        "upgrade_required": True,
    }


def require_capability(capability_id: str):
    """
    Decorator to enforce plan-based capability access.

    Usage:
        @router.post("/endpoint")
        @require_capability("voice-cloning")
        async def my_endpoint(request: Request):
            ...
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(request: Request, *args, **kwargs):
            # Get user from request state (set by auth middleware)
            user = getattr(request.state, 'user', None)

            if not user:
                raise HTTPException(401, "Authentication required")

            account_id = user.get("account_id")
            if not account_id:
                raise HTTPException(404, "Account not found")

            feature_access = request.app.state.feature_access
            try:
                await feature_access.require(account_id, capability_id)
            except AccessDenied as denial:
                await create_audit_log(
                    action=AuditAction.CAPABILITY_ACCESS_DENIED,
                    actor_role=user.get("role"),
                    actor_id=account_id,
                    account_id=account_id,
                    resource_type="capability",
                    resource_id=capability_id,
                    metadata={
                        "plan_name": denial.plan_name,
                        "minimum_tier": denial.minimum_tier,
                        "endpoint": str(request.url.path),
                        "method": request.method
                    }
                )
                logger.warning(
                    "Capability access denied: account_id=%s plan=%s requested_capability=%s endpoint=%s method=%s",
                    account_id, denial.plan_name, capability_id, request.url.path, request.method
                )
                raise HTTPException(status_code=403, detail=access_denied_detail(denial))

            # Capability allowed - proceed
            return await func(request, *args, **kwargs)

        return wrapper
    return decorator
