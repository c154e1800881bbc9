"""Tier Default Sets - static fallback capabilities per plan tier.

Used only when a plan has neither structured grants nor legacy text lines,
and for principals with no plan at all. Each tier is defined as the tier
below it plus its own additions, so the sets form a superset chain:

    free ⊆ starter ⊆ professional ⊆ enterprise

Unknown, blank or missing tier labels resolve to the free set. The free set
is deliberately non-empty: an unassigned account still gets the basics.
"""
from typing import Dict, FrozenSet, List, Optional

from models import PlanTier

# Ordered lowest to highest; minimum_tier_for() walks this order.
TIER_ORDER: List[PlanTier] = [
    PlanTier.FREE,
    PlanTier.STARTER,
    PlanTier.PROFESSIONAL,
    PlanTier.ENTERPRISE,
]

TIER_ALIASES: Dict[str, PlanTier] = {
    "pro": PlanTier.PROFESSIONAL,
}

TIER_DISPLAY_NAMES: Dict[PlanTier, str] = {
    PlanTier.FREE: "Free",
    PlanTier.STARTER: "Starter",
    PlanTier.PROFESSIONAL: "Professional",
    PlanTier.ENTERPRISE: "Enterprise",
}

DEFAULT_FREE_PLAN_CAPABILITIES: FrozenSet[str] = frozenset({
    "ai-assistant",
    "creative-assistant",
    "social-integrations",
    "media-library",
    "profile-settings",
    # Video tools are part of the free tier
    "video-suite",
    "video-generator",
    "video-editor",
    "video-pipeline",
    "script-generator",
    "video-from-url",
    "topic-researcher",
})

DEFAULT_STARTER_PLAN_CAPABILITIES: FrozenSet[str] = DEFAULT_FREE_PLAN_CAPABILITIES | {
    "stock-media",
    "ai-image-generator",
    "background-remover",
    "social-analytics",
    "brand-kit",
}

DEFAULT_PROFESSIONAL_PLAN_CAPABILITIES: FrozenSet[str] = DEFAULT_STARTER_PLAN_CAPABILITIES | {
    "thumbnail-tester",
    "magic-clips",
    "voice-over",
    "image-to-video",
    "persona-studio",
    "flux-pro",
    "ai-agents",
    "social-scheduler",
}

DEFAULT_ENTERPRISE_PLAN_CAPABILITIES: FrozenSet[str] = DEFAULT_PROFESSIONAL_PLAN_CAPABILITIES | {
    "voice-cloning",
    "n8n-integrations",
}

TIER_DEFAULTS: Dict[PlanTier, FrozenSet[str]] = {
    PlanTier.FREE: DEFAULT_FREE_PLAN_CAPABILITIES,
    PlanTier.STARTER: DEFAULT_STARTER_PLAN_CAPABILITIES,
    PlanTier.PROFESSIONAL: DEFAULT_PROFESSIONAL_PLAN_CAPABILITIES,
    PlanTier.ENTERPRISE: DEFAULT_ENTERPRISE_PLAN_CAPABILITIES,
}


def resolve_tier(tier: Optional[str]) -> PlanTier:
    """Map a free-form tier label to a PlanTier; anything unrecognised is FREE."""
    if not tier:
        return PlanTier.FREE
    normalized = tier.strip().lower()
    try:
        return PlanTier(normalized)
    except ValueError:
        return TIER_ALIASES.get(normalized, PlanTier.FREE)


def defaults_for(tier: Optional[str]) -> FrozenSet[str]:
    return TIER_DEFAULTS[resolve_tier(tier)]


def minimum_tier_for(capability_id: str) -> Optional[PlanTier]:
    """Lowest tier whose default set contains the capability, or None."""
    for tier in TIER_ORDER:
        if capability_id in TIER_DEFAULTS[tier]:
            return tier
    return None


def tier_display_name(tier: Optional[PlanTier]) -> Optional[str]:
    return TIER_DISPLAY_NAMES.get(tier) if tier else None
