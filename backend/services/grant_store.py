"""Grant Store - authoritative (plan_id, capability_id) associations.

Backed by the `plan_capability_grants` collection, which carries a unique
index on (plan_id, capability_id). Every write is a single-document upsert or
delete, so grant/revoke are atomic per key and need no multi-row locking.

Semantics:
- grant: idempotent upsert. Unknown capability ids are auto-provisioned in the
  registry (and the `capabilities` collection) first, so catalog drift never
  blocks an admin. Unknown plan ids fail with PlanNotFoundError.
- revoke: delete-if-exists. Revoking an absent grant is a successful no-op;
  an unknown plan id still fails.
- grants_for: read-only; empty set when the plan has no grants.

Any PyMongoError is re-raised as StoreError.
"""
from datetime import datetime, timezone
from typing import Iterable, List, Set
import logging

from pymongo.errors import DuplicateKeyError, PyMongoError

from services.capability_registry import CapabilityRegistry
from services.entitlement_errors import InvalidCapabilityError, PlanNotFoundError, StoreError

logger = logging.getLogger(__name__)


def _validate_capability_id(capability_id: str) -> str:
    if not isinstance(capability_id, str) or not capability_id.strip():
        raise InvalidCapabilityError(capability_id)
    return capability_id.strip()


class GrantStore:
    """MongoDB-backed grant store."""

    def __init__(self, db, registry: CapabilityRegistry):
        self.db = db
        self.registry = registry

    async def plan_exists(self, plan_id: str) -> bool:
        if not plan_id:
            return False
        try:
            plan = await self.db.plans.find_one({"plan_id": plan_id}, {"_id": 0, "plan_id": 1})
        except PyMongoError as e:
            raise StoreError(f"Failed to load plan {plan_id}: {e}") from e
        return plan is not None

    async def _require_plan(self, plan_id: str) -> None:
        if not await self.plan_exists(plan_id):
            raise PlanNotFoundError(plan_id)

    async def _provision_capability(self, capability_id: str) -> bool:
        """Make sure the capability exists in the catalog collection and the registry.

        The document is written before the registry learns the id, so a failed
        write leaves the id unknown and the next grant retries the persist.
        """
        if self.registry.exists(capability_id):
            return False

        capability = self.registry.derive(capability_id)
        try:
            await self.db.capabilities.update_one(
                {"capability_id": capability_id},
                {"$setOnInsert": capability.model_dump()},
                upsert=True,
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to persist capability {capability_id}: {e}") from e

        _, created = self.registry.ensure(capability_id)
        return created

    async def grant(self, plan_id: str, capability_id: str) -> bool:
        """Grant a capability to a plan. Returns True if a new grant row was written."""
        capability_id = _validate_capability_id(capability_id)
        await self._require_plan(plan_id)
        await self._provision_capability(capability_id)

        try:
            result = await self.db.plan_capability_grants.update_one(
                {"plan_id": plan_id, "capability_id": capability_id},
                {"$setOnInsert": {
                    "plan_id": plan_id,
                    "capability_id": capability_id,
                    "granted_at": datetime.now(timezone.utc).isoformat(),
                }},
                upsert=True,
            )
        except DuplicateKeyError:
            # Lost an upsert race on the unique index: the row exists, which is the goal
            logger.info(f"Concurrent grant already present: plan={plan_id} capability={capability_id}")
            return False
        except PyMongoError as e:
            raise StoreError(f"Failed to grant {capability_id} to plan {plan_id}: {e}") from e

        created = result.upserted_id is not None
        logger.info(f"Grant {capability_id} -> plan {plan_id}: {'created' if created else 'already present'}")
        return created

    async def revoke(self, plan_id: str, capability_id: str) -> bool:
        """Revoke a capability from a plan. Returns True if a grant row was deleted."""
        capability_id = _validate_capability_id(capability_id)
        await self._require_plan(plan_id)

        try:
            result = await self.db.plan_capability_grants.delete_one(
                {"plan_id": plan_id, "capability_id": capability_id}
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to revoke {capability_id} from plan {plan_id}: {e}") from e

        deleted = result.deleted_count > 0
        logger.info(f"Revoke {capability_id} from plan {plan_id}: {'deleted' if deleted else 'not granted'}")
        return deleted

    async def grants_for(self, plan_id: str) -> Set[str]:
        try:
            docs = await self.db.plan_capability_grants.find(
                {"plan_id": plan_id},
                {"_id": 0, "capability_id": 1}
            ).to_list(length=None)
        except PyMongoError as e:
            raise StoreError(f"Failed to load grants for plan {plan_id}: {e}") from e
        return {doc["capability_id"] for doc in docs if doc.get("capability_id")}

    async def replace_grants(self, plan_id: str, capability_ids: Iterable[str]) -> List[str]:
        """Replace a plan's whole grant set. Returns the sorted new set.

        Wanted rows are upserted before the rest are deleted, so the plan never
        passes through an empty grant set unless the new set is empty.
        """
        wanted = sorted({_validate_capability_id(c) for c in capability_ids})
        await self._require_plan(plan_id)
        for capability_id in wanted:
            await self._provision_capability(capability_id)

        granted_at = datetime.now(timezone.utc).isoformat()
        try:
            for capability_id in wanted:
                try:
                    await self.db.plan_capability_grants.update_one(
                        {"plan_id": plan_id, "capability_id": capability_id},
                        {"$setOnInsert": {
                            "plan_id": plan_id,
                            "capability_id": capability_id,
                            "granted_at": granted_at,
                        }},
                        upsert=True,
                    )
                except DuplicateKeyError:
                    # Concurrent grant of the same key already wrote the row
                    pass
            await self.db.plan_capability_grants.delete_many(
                {"plan_id": plan_id, "capability_id": {"$nin": wanted}}
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to replace grants for plan {plan_id}: {e}") from e

        logger.info(f"Replaced grants for plan {plan_id}: {len(wanted)} capabilities")
        return wanted
