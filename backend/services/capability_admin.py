"""Capability Admin Service - plan grant management for administrators.

Wraps the grant store with:
- (ok, message, details) result tuples carrying an error_code on failure
- an audit entry for every mutation
- read-only reporting views (plans with grants, tier matrix, catalog)

Error codes:
- PLAN_NOT_FOUND: the plan id does not exist
- INVALID_CAPABILITY: blank capability identifier
- STORE_ERROR: the underlying store failed
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from pymongo.errors import PyMongoError

from models import AuditAction, UserRole
from services.capability_registry import CapabilityRegistry
from services.entitlement_errors import InvalidCapabilityError, PlanNotFoundError, StoreError
from services.grant_store import GrantStore
from services.principal_loader import PLAN_PROJECTION, legacy_text_lines
from services.tier_defaults import TIER_ORDER, TIER_DEFAULTS, defaults_for, minimum_tier_for, resolve_tier
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

AdminResult = Tuple[bool, Optional[str], Optional[Dict[str, Any]]]


def _failure(error: Exception) -> AdminResult:
    if isinstance(error, PlanNotFoundError):
        return False, str(error), {"error_code": "PLAN_NOT_FOUND", "plan_id": error.plan_id}
    if isinstance(error, InvalidCapabilityError):
        return False, str(error), {"error_code": "INVALID_CAPABILITY", "capability_id": error.capability_id}
    return False, "Entitlement store unavailable", {"error_code": "STORE_ERROR", "detail": str(error)}


class CapabilityAdminService:
    """Admin operations over plan capability grants."""

    def __init__(self, db, grant_store: GrantStore, registry: CapabilityRegistry):
        self.db = db
        self.grant_store = grant_store
        self.registry = registry

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def grant(self, plan_id: str, capability_id: str, actor_id: Optional[str] = None) -> AdminResult:
        try:
            provisioned = not self.registry.exists((capability_id or "").strip())
            created = await self.grant_store.grant(plan_id, capability_id)
        except (PlanNotFoundError, InvalidCapabilityError, StoreError) as e:
            logger.warning(f"Grant {capability_id} -> {plan_id} failed: {e}")
            return _failure(e)

        capability_id = capability_id.strip()
        if provisioned:
            await create_audit_log(
                action=AuditAction.CAPABILITY_AUTO_PROVISIONED,
                actor_role=UserRole.ROLE_ADMIN,
                actor_id=actor_id,
                resource_type="capability",
                resource_id=capability_id,
                metadata={"plan_id": plan_id},
            )

        if created:
            await create_audit_log(
                action=AuditAction.CAPABILITY_GRANTED,
                actor_role=UserRole.ROLE_ADMIN,
                actor_id=actor_id,
                resource_type="plan",
                resource_id=plan_id,
                metadata={"capability_id": capability_id},
            )

        message = "Capability granted" if created else "Capability already granted"
        return True, message, {"plan_id": plan_id, "capability_id": capability_id, "created": created}

    async def revoke(self, plan_id: str, capability_id: str, actor_id: Optional[str] = None) -> AdminResult:
        try:
            deleted = await self.grant_store.revoke(plan_id, capability_id)
        except (PlanNotFoundError, InvalidCapabilityError, StoreError) as e:
            logger.warning(f"Revoke {capability_id} from {plan_id} failed: {e}")
            return _failure(e)

        capability_id = capability_id.strip()
        if deleted:
            await create_audit_log(
                action=AuditAction.CAPABILITY_REVOKED,
                actor_role=UserRole.ROLE_ADMIN,
                actor_id=actor_id,
                resource_type="plan",
                resource_id=plan_id,
                metadata={"capability_id": capability_id},
            )

        message = "Capability revoked" if deleted else "Capability was not granted"
        return True, message, {"plan_id": plan_id, "capability_id": capability_id, "deleted": deleted}

    async def replace_grants(
        self,
        plan_id: str,
        capability_ids: Iterable[str],
        actor_id: Optional[str] = None,
    ) -> AdminResult:
        """Replace the plan's whole grant set; an empty list reverts it to text/tier fallback."""
        try:
            before = sorted(await self.grant_store.grants_for(plan_id))
            after = await self.grant_store.replace_grants(plan_id, capability_ids)
        except (PlanNotFoundError, InvalidCapabilityError, StoreError) as e:
            logger.warning(f"Replace grants for {plan_id} failed: {e}")
            return _failure(e)

        await create_audit_log(
            action=AuditAction.PLAN_CAPABILITIES_REPLACED,
            actor_role=UserRole.ROLE_ADMIN,
            actor_id=actor_id,
            resource_type="plan",
            resource_id=plan_id,
            before_state={"capabilities": before},
            after_state={"capabilities": after},
        )
        return True, f"Plan now has {len(after)} capabilities", {"plan_id": plan_id, "capabilities": after}

    async def seed_tier_defaults(self, actor_id: Optional[str] = None) -> AdminResult:
        """Give every plan without structured grants the default set of its tier.

        Plans that already have grants are left alone, so running this twice
        changes nothing the second time. Each plan is audited as soon as it is
        seeded; on a store failure the details list the plans already done.
        """
        seeded: Dict[str, List[str]] = {}
        skipped: List[str] = []
        try:
            plans = await self._load_plans()
            for plan in plans:
                plan_id = plan["plan_id"]
                if await self.grant_store.grants_for(plan_id):
                    skipped.append(plan_id)
                    continue
                capabilities = await self.grant_store.replace_grants(plan_id, defaults_for(plan.get("tier")))
                seeded[plan_id] = capabilities
                await create_audit_log(
                    action=AuditAction.PLAN_CAPABILITIES_SEEDED,
                    actor_role=UserRole.ROLE_ADMIN,
                    actor_id=actor_id,
                    resource_type="plan",
                    resource_id=plan_id,
                    after_state={"capabilities": capabilities},
                )
        except (PlanNotFoundError, InvalidCapabilityError, StoreError) as e:
            logger.error(f"Seeding tier defaults failed after {len(seeded)} plans: {e}")
            ok, message, details = _failure(e)
            details.update({"seeded": seeded, "skipped": skipped})
            return ok, message, details

        logger.info(f"Seeded tier defaults: {len(seeded)} plans seeded, {len(skipped)} skipped")
        return True, f"Seeded {len(seeded)} plans", {"seeded": seeded, "skipped": skipped}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def grants_for(self, plan_id: str) -> AdminResult:
        try:
            if not await self.grant_store.plan_exists(plan_id):
                raise PlanNotFoundError(plan_id)
            grants = await self.grant_store.grants_for(plan_id)
        except (PlanNotFoundError, StoreError) as e:
            return _failure(e)
        return True, None, {"plan_id": plan_id, "capabilities": sorted(grants)}

    async def list_plans_with_capabilities(self) -> AdminResult:
        """Every plan, cheapest first, with its grants and legacy text lines."""
        try:
            plans = await self._load_plans()
            result = []
            for plan in plans:
                grants = sorted(await self.grant_store.grants_for(plan["plan_id"]))
                result.append({
                    "plan_id": plan["plan_id"],
                    "name": plan.get("name") or plan["plan_id"],
                    "tier": resolve_tier(plan.get("tier")).value,
                    "price_monthly": plan.get("price_monthly"),
                    "capabilities": [
                        {
                            "capability_id": capability_id,
                            "display_name": self.registry.display_name(capability_id),
                            "category": self.registry.category(capability_id),
                        }
                        for capability_id in grants
                    ],
                    "legacy_features": legacy_text_lines(plan.get("features")),
                })
        except StoreError as e:
            return _failure(e)
        return True, None, {"plans": result}

    def entitlement_matrix(self) -> List[Dict[str, Any]]:
        """Capability x tier table of the default sets."""
        matrix = []
        for capability in self.registry.all():
            minimum = minimum_tier_for(capability.capability_id)
            matrix.append({
                "capability_id": capability.capability_id,
                "display_name": capability.display_name,
                "category": capability.category,
                "minimum_tier": minimum.value if minimum else None,
                "tiers": {
                    tier.value: capability.capability_id in TIER_DEFAULTS[tier]
                    for tier in TIER_ORDER
                },
            })
        return matrix

    def catalog_by_category(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            category: [capability.model_dump() for capability in capabilities]
            for category, capabilities in self.registry.by_category().items()
        }

    async def _load_plans(self) -> List[Dict[str, Any]]:
        try:
            plans = await self.db.plans.find({}, PLAN_PROJECTION).to_list(length=None)
        except PyMongoError as e:
            raise StoreError(f"Failed to list plans: {e}") from e
        plans = [p for p in plans if p.get("plan_id")]
        return sorted(plans, key=lambda p: (p.get("price_monthly") or 0, p["plan_id"]))
