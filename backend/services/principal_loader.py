"""Principal loader - reads an account together with its plan.

Produces the PrincipalPlan view the resolution engine works from:
account -> plan_id -> plan document + structured grants (via the grant store)
+ legacy feature text lines stored on the plan.

Returns None when the account does not exist, or when it references a plan
that cannot be found. Both are "NotFound" for the engine. Store failures
raise StoreError.
"""
from typing import Any, List, Optional
import logging

from pymongo.errors import PyMongoError

from models import PlanSnapshot, PrincipalPlan
from services.entitlement_errors import StoreError
from services.grant_store import GrantStore

logger = logging.getLogger(__name__)

PLAN_PROJECTION = {
    "_id": 0,
    "plan_id": 1,
    "name": 1,
    "tier": 1,
    "price_monthly": 1,
    "features": 1,
}


def legacy_text_lines(features: Any) -> List[str]:
    """Normalise the plan's legacy `features` field.

    Older plans store plain strings, newer ones {"text": ...} documents.
    """
    lines = []
    for entry in features or []:
        if isinstance(entry, str):
            lines.append(entry)
        elif isinstance(entry, dict) and isinstance(entry.get("text"), str):
            lines.append(entry["text"])
    return lines


class PrincipalLoader:
    """MongoDB-backed loadPrincipalWithPlan."""

    def __init__(self, db, grant_store: GrantStore):
        self.db = db
        self.grant_store = grant_store

    async def load_principal_with_plan(self, principal_id: str) -> Optional[PrincipalPlan]:
        try:
            account = await self.db.accounts.find_one(
                {"account_id": principal_id},
                {"_id": 0, "account_id": 1, "plan_id": 1}
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to load account {principal_id}: {e}") from e

        if not account:
            return None

        plan_id = account.get("plan_id")
        if not plan_id:
            return PrincipalPlan(principal_id=principal_id, plan=None)

        plan = await self.load_plan(plan_id)
        if plan is None:
            logger.warning(f"Account {principal_id} references missing plan {plan_id}")
            return None

        return PrincipalPlan(principal_id=principal_id, plan=plan)

    async def load_plan(self, plan_id: str) -> Optional[PlanSnapshot]:
        try:
            plan_doc = await self.db.plans.find_one({"plan_id": plan_id}, PLAN_PROJECTION)
        except PyMongoError as e:
            raise StoreError(f"Failed to load plan {plan_id}: {e}") from e

        if not plan_doc:
            return None

        grants = await self.grant_store.grants_for(plan_id)

        return PlanSnapshot(
            plan_id=plan_id,
            name=plan_doc.get("name") or plan_id,
            tier=plan_doc.get("tier"),
            price_monthly=plan_doc.get("price_monthly"),
            structured_grants=grants,
            legacy_text_lines=legacy_text_lines(plan_doc.get("features")),
        )
