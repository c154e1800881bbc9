from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, Dict, Any, List, FrozenSet, Tuple
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class CapabilityCategory(str, Enum):
    CONTENT = "content"
    VIDEO = "video"
    AUDIO = "audio"
    MEDIA = "media"
    AUTOMATION = "automation"
    SOCIAL = "social"
    SETTINGS = "settings"
    OTHER = "other"

class PlanTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"

class AccessSource(str, Enum):
    """Which source decided an access check."""
    ALWAYS_ACCESSIBLE = "ALWAYS_ACCESSIBLE"
    STRUCTURED_GRANTS = "STRUCTURED_GRANTS"
    LEGACY_TEXT = "LEGACY_TEXT"
    TIER_DEFAULTS = "TIER_DEFAULTS"
    UNRESOLVED = "UNRESOLVED"  # Principal/plan not loadable or store failure

class MatchRule(str, Enum):
    DIRECT_ID = "DIRECT_ID"
    DISPLAY_NAME = "DISPLAY_NAME"
    KEYWORD = "KEYWORD"

class UserRole(str, Enum):
    ROLE_USER = "ROLE_USER"
    ROLE_ADMIN = "ROLE_ADMIN"

class AuditAction(str, Enum):
    # Grant store
    CAPABILITY_GRANTED = "CAPABILITY_GRANTED"
    CAPABILITY_REVOKED = "CAPABILITY_REVOKED"
    PLAN_CAPABILITIES_REPLACED = "PLAN_CAPABILITIES_REPLACED"
    PLAN_CAPABILITIES_SEEDED = "PLAN_CAPABILITIES_SEEDED"

    # Registry
    CAPABILITY_AUTO_PROVISIONED = "CAPABILITY_AUTO_PROVISIONED"

    # Enforcement
    CAPABILITY_ACCESS_DENIED = "CAPABILITY_ACCESS_DENIED"

# ============================================================================
# CATALOG
# ============================================================================

class Capability(BaseModel):
    model_config = ConfigDict(extra="ignore")

    capability_id: str
    display_name: str
    category: str = CapabilityCategory.OTHER.value
    is_active: bool = True
    description: Optional[str] = None

# ============================================================================
# PLAN / PRINCIPAL VIEW (read-only input to the resolution engine)
# ============================================================================

class PlanSnapshot(BaseModel):
    """A plan as the resolution engine sees it.

    Structured grants and legacy text lines are independent collections;
    an empty collection is stored as None so that grant_source() only has
    to look at presence.
    """
    model_config = ConfigDict(frozen=True)

    plan_id: str
    name: str
    tier: Optional[str] = None
    price_monthly: Optional[float] = None
    structured_grants: Optional[FrozenSet[str]] = None
    legacy_text_lines: Optional[Tuple[str, ...]] = None

    @field_validator("structured_grants", mode="before")
    @classmethod
    def _empty_grants_to_none(cls, value):
        return frozenset(value) if value else None

    @field_validator("legacy_text_lines", mode="before")
    @classmethod
    def _drop_blank_lines(cls, value):
        cleaned = tuple(line for line in (value or ()) if line and line.strip())
        return cleaned or None

    def grant_source(self) -> AccessSource:
        """Authoritative source for this plan: grants, then legacy text, then tier defaults."""
        if self.structured_grants is not None:
            return AccessSource.STRUCTURED_GRANTS
        if self.legacy_text_lines is not None:
            return AccessSource.LEGACY_TEXT
        return AccessSource.TIER_DEFAULTS

class PrincipalPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    principal_id: str
    plan: Optional[PlanSnapshot] = None

# ============================================================================
# ENGINE OUTPUT
# ============================================================================

class AccessResult(BaseModel):
    """Outcome of a single capability check, populated on denial as well as on grant.

    resolved_plan_name is None on the always-accessible path (the principal is
    not loaded there) and on UNRESOLVED denials. minimum_tier is None when no
    tier default set includes the capability; upgrade_message is None when
    access is granted.
    """
    capability_id: str
    can_access: bool
    requires_upgrade: bool
    capability_display_name: str
    resolved_plan_name: Optional[str] = None
    source: AccessSource
    minimum_tier: Optional[str] = None
    upgrade_message: Optional[str] = None

# ============================================================================
# AUDIT
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[UserRole] = None
    actor_id: Optional[str] = None
    account_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

# ============================================================================
# API REQUEST MODELS
# ============================================================================

class CapabilityCheckRequest(BaseModel):
    capability_id: str

class GrantCapabilityRequest(BaseModel):
    capability_id: str

class ReplaceGrantsRequest(BaseModel):
    capability_ids: List[str] = Field(default_factory=list)
