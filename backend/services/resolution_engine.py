"""Resolution Engine - decides whether a principal may use a capability.

Precedence, first match wins:

1. Capability is on the always-accessible allowlist -> allowed (no lookup).
2. Principal cannot be loaded -> denied.
3. Principal has no plan -> free tier defaults.
4. Plan has structured grants -> grants are authoritative and exclusive.
5. Plan has legacy text lines only -> legacy text matcher.
6. Plan has neither -> tier defaults for the plan's tier label.

Any store error while loading is logged and converted to a denial; nothing
below this layer raises to the caller. The engine never mutates state.
"""
from typing import Dict, Iterable, Optional, Set
import logging

from models import AccessResult, AccessSource, PlanTier, PrincipalPlan
from services.capability_registry import CapabilityRegistry
from services.entitlement_errors import EntitlementError
from services.legacy_text_matcher import LegacyTextMatcher
from services.tier_defaults import (
    defaults_for,
    minimum_tier_for,
    tier_display_name,
    TIER_DISPLAY_NAMES,
)

logger = logging.getLogger(__name__)

FREE_PLAN_NAME = TIER_DISPLAY_NAMES[PlanTier.FREE]


class ResolutionEngine:
    """Applies grant / legacy text / tier default precedence to one principal."""

    def __init__(self, registry: CapabilityRegistry, loader, matcher: Optional[LegacyTextMatcher] = None):
        self.registry = registry
        self.loader = loader
        self.matcher = matcher or LegacyTextMatcher(registry)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def resolve(self, principal_id: str, capability_id: str) -> AccessResult:
        if self.registry.is_always_accessible(capability_id):
            return self._result(capability_id, True, AccessSource.ALWAYS_ACCESSIBLE)

        principal = await self._load(principal_id)
        if principal is None:
            return self._result(capability_id, False, AccessSource.UNRESOLVED)

        return self.decide(principal, capability_id)

    async def resolve_many(self, principal_id: str, capability_ids: Iterable[str]) -> Dict[str, AccessResult]:
        """Resolve several capabilities with a single principal load."""
        capability_ids = list(dict.fromkeys(capability_ids))
        results: Dict[str, AccessResult] = {}

        pending = []
        for capability_id in capability_ids:
            if self.registry.is_always_accessible(capability_id):
                results[capability_id] = self._result(capability_id, True, AccessSource.ALWAYS_ACCESSIBLE)
            else:
                pending.append(capability_id)

        if pending:
            principal = await self._load(principal_id)
            for capability_id in pending:
                if principal is None:
                    results[capability_id] = self._result(capability_id, False, AccessSource.UNRESOLVED)
                else:
                    results[capability_id] = self.decide(principal, capability_id)

        return {capability_id: results[capability_id] for capability_id in capability_ids}

    async def accessible_capabilities(self, principal_id: str) -> Set[str]:
        """Allowlist plus whichever of structured grants / tier defaults is authoritative.

        Legacy text is never expanded into ids here; a legacy-text plan lists
        the defaults of its tier.
        """
        accessible = set(self.registry.always_accessible)

        principal = await self._load(principal_id)
        if principal is None:
            return accessible

        plan = principal.plan
        if plan is None:
            return accessible | defaults_for(None)

        if plan.grant_source() is AccessSource.STRUCTURED_GRANTS:
            return accessible | {c for c in plan.structured_grants if self.registry.is_active(c)}

        return accessible | defaults_for(plan.tier)

    def decide(self, principal: PrincipalPlan, capability_id: str) -> AccessResult:
        """Pure decision for an already-loaded principal (steps 1 and 3-7)."""
        if self.registry.is_always_accessible(capability_id):
            return self._result(capability_id, True, AccessSource.ALWAYS_ACCESSIBLE,
                                self._plan_name(principal))

        plan = principal.plan
        if plan is None:
            allowed = capability_id in defaults_for(None)
            return self._result(capability_id, allowed, AccessSource.TIER_DEFAULTS, FREE_PLAN_NAME)

        source = plan.grant_source()
        if source is AccessSource.STRUCTURED_GRANTS:
            allowed = capability_id in plan.structured_grants and self.registry.is_active(capability_id)
        elif source is AccessSource.LEGACY_TEXT:
            match = self.matcher.explain(plan.legacy_text_lines, capability_id)
            allowed = match is not None
            if match:
                logger.debug(
                    "Legacy text match: plan=%s capability=%s rule=%s term=%r",
                    plan.plan_id, capability_id, match.rule.value, match.term
                )
        else:
            allowed = capability_id in defaults_for(plan.tier)

        result = self._result(capability_id, allowed, source, plan.name)
        logger.debug(
            "Capability check: principal=%s plan=%s capability=%s source=%s allowed=%s",
            principal.principal_id, plan.plan_id, capability_id, source.value, allowed
        )
        return result

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _load(self, principal_id: str) -> Optional[PrincipalPlan]:
        """Load the principal; None on NotFound or any store failure."""
        try:
            principal = await self.loader.load_principal_with_plan(principal_id)
        except EntitlementError as e:
            logger.error(f"Entitlement store error for principal {principal_id}: {e}")
            return None
        except Exception as e:
            logger.exception(f"Unexpected error loading principal {principal_id}: {e}")
            return None

        if principal is None:
            logger.warning(f"Principal {principal_id} not found; denying gated capabilities")
        return principal

    @staticmethod
    def _plan_name(principal: PrincipalPlan) -> str:
        return principal.plan.name if principal.plan else FREE_PLAN_NAME

    def _result(
        self,
        capability_id: str,
        allowed: bool,
        source: AccessSource,
        plan_name: Optional[str] = None,
    ) -> AccessResult:
        display_name = self.registry.display_name(capability_id)
        minimum_tier = tier_display_name(minimum_tier_for(capability_id))

        upgrade_message = None
        if not allowed:
            if minimum_tier:
                upgrade_message = f"{display_name} requires {minimum_tier} plan or higher"
            else:
                upgrade_message = f"{display_name} is not available on your current plan"

        return AccessResult(
            capability_id=capability_id,
            can_access=allowed,
            requires_upgrade=not allowed,
            capability_display_name=display_name,
            resolved_plan_name=plan_name,
            source=source,
            minimum_tier=minimum_tier,
            upgrade_message=upgrade_message,
        )
