"""Error types for the capability entitlement engine.

Only AccessDenied is meant to escape to callers (from require()). Everything
else is recovered inside the resolution engine as a denial, or turned into an
(ok, message, details) failure tuple by the admin service.
"""
from typing import Optional


class EntitlementError(Exception):
    """Base class for entitlement engine errors."""


class StoreError(EntitlementError):
    """Underlying data store failed (connection, timeout, server error)."""


class PlanNotFoundError(EntitlementError):
    """Admin operation referenced a plan that does not exist."""
    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Plan '{plan_id}' not found")


class InvalidCapabilityError(EntitlementError):
    """Capability identifier is blank or otherwise unusable."""
    def __init__(self, capability_id: Optional[str]):
        self.capability_id = capability_id
        super().__init__(f"Invalid capability identifier: {capability_id!r}")


class AccessDenied(EntitlementError):
    """Raised by require() when a principal may not use a capability."""
    def __init__(
        self,
        capability_id: str,
        capability_name: str,
        plan_name: Optional[str] = None,
        minimum_tier: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.capability_id = capability_id
        self.capability_name = capability_name
        self.plan_name = plan_name
        self.minimum_tier = minimum_tier
        self.message = message or f"{capability_name} is not available on your current plan"
        super().__init__(self.message)
