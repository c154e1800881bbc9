"""Request guards.

Authentication happens upstream: whatever sits in front of this service
places the caller on request.state.user as a dict with at least
`account_id` and `role`. These guards only read it.
"""
from fastapi import Request, HTTPException, status
import logging

from models import UserRole

logger = logging.getLogger(__name__)


def get_current_user(request: Request):
    return getattr(request.state, "user", None)


async def require_auth(request: Request) -> dict:
    """Require an authenticated caller."""
    user = get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return user


async def principal_route_guard(request: Request) -> dict:
    """Guard for account routes - the caller must carry an account_id."""
    user = await require_auth(request)
    if not user.get("account_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No account associated with this user"
        )
    return user


async def admin_route_guard(request: Request) -> dict:
    """Guard for admin routes."""
    user = await require_auth(request)
    if user.get("role") != UserRole.ROLE_ADMIN.value:
        logger.warning(
            "Admin route denied: actor=%s role=%s path=%s",
            user.get("account_id"), user.get("role"), request.url.path
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
