"""Feature Access Service - the enforcement and listing surface.

Two entry points, one decision:
- check(): always returns an AccessResult; use it for UI gating.
- require(): raises AccessDenied exactly when check() would deny; use it
  inside privileged operations. Hiding a locked feature in the UI is a
  convenience; require() is the security boundary.
"""
from typing import Dict, Iterable, Set
import logging

from models import AccessResult
from services.entitlement_errors import AccessDenied
from services.resolution_engine import ResolutionEngine

logger = logging.getLogger(__name__)


class FeatureAccessService:
    """Thin wrapper around the resolution engine."""

    def __init__(self, engine: ResolutionEngine):
        self.engine = engine

    async def check(self, principal_id: str, capability_id: str) -> AccessResult:
        return await self.engine.resolve(principal_id, capability_id)

    async def check_many(self, principal_id: str, capability_ids: Iterable[str]) -> Dict[str, AccessResult]:
        return await self.engine.resolve_many(principal_id, capability_ids)

    async def list_accessible(self, principal_id: str) -> Set[str]:
        return await self.engine.accessible_capabilities(principal_id)

    async def require(self, principal_id: str, capability_id: str) -> AccessResult:
        """Return the granting AccessResult, or raise AccessDenied."""
        result = await self.check(principal_id, capability_id)
        if not result.can_access:
            logger.warning(
                "Capability access denied: principal=%s capability=%s plan=%s source=%s",
                principal_id, capability_id, result.resolved_plan_name, result.source.value
            )
            raise AccessDenied(
                capability_id=capability_id,
                capability_name=result.capability_display_name,
                plan_name=result.resolved_plan_name,
                minimum_tier=result.minimum_tier,
                message=result.upgrade_message,
            )
        return result
