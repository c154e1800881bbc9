"""
Tier default set tests.
Superset chain, tier label resolution and minimum tier lookups.
"""
import sys
from pathlib import Path

# Ensure backend root is on path
backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from models import PlanTier
from services.capability_registry import CAPABILITY_CATALOG
from services.tier_defaults import (
    DEFAULT_ENTERPRISE_PLAN_CAPABILITIES,
    DEFAULT_FREE_PLAN_CAPABILITIES,
    DEFAULT_PROFESSIONAL_PLAN_CAPABILITIES,
    DEFAULT_STARTER_PLAN_CAPABILITIES,
    TIER_DEFAULTS,
    TIER_ORDER,
    defaults_for,
    minimum_tier_for,
    resolve_tier,
    tier_display_name,
)


class TestSupersetChain:
    """free ⊆ starter ⊆ professional ⊆ enterprise."""

    def test_each_tier_contains_the_tier_below(self):
        for lower, higher in zip(TIER_ORDER, TIER_ORDER[1:]):
            assert TIER_DEFAULTS[lower] <= TIER_DEFAULTS[higher], f"{lower} not in {higher}"

    def test_free_is_non_empty(self):
        assert DEFAULT_FREE_PLAN_CAPABILITIES

    def test_enterprise_covers_whole_catalog(self):
        assert set(CAPABILITY_CATALOG) == DEFAULT_ENTERPRISE_PLAN_CAPABILITIES

    def test_tier_specific_additions(self):
        assert "stock-media" in DEFAULT_STARTER_PLAN_CAPABILITIES
        assert "stock-media" not in DEFAULT_FREE_PLAN_CAPABILITIES
        assert "voice-over" in DEFAULT_PROFESSIONAL_PLAN_CAPABILITIES
        assert "voice-cloning" not in DEFAULT_PROFESSIONAL_PLAN_CAPABILITIES
        assert "voice-cloning" in DEFAULT_ENTERPRISE_PLAN_CAPABILITIES

    def test_every_default_is_a_catalog_id(self):
        for defaults in TIER_DEFAULTS.values():
            assert defaults <= set(CAPABILITY_CATALOG)


class TestResolveTier:
    """Tier label normalisation."""

    def test_canonical_labels(self):
        assert resolve_tier("starter") is PlanTier.STARTER
        assert resolve_tier("enterprise") is PlanTier.ENTERPRISE

    def test_case_and_whitespace_insensitive(self):
        assert resolve_tier("  Professional ") is PlanTier.PROFESSIONAL

    def test_pro_alias(self):
        assert resolve_tier("pro") is PlanTier.PROFESSIONAL
        assert defaults_for("PRO") == DEFAULT_PROFESSIONAL_PLAN_CAPABILITIES

    def test_unknown_blank_and_missing_resolve_to_free(self):
        assert resolve_tier("platinum") is PlanTier.FREE
        assert resolve_tier("") is PlanTier.FREE
        assert resolve_tier(None) is PlanTier.FREE
        assert defaults_for("platinum") == DEFAULT_FREE_PLAN_CAPABILITIES


class TestMinimumTier:
    """Lowest tier whose default set contains a capability."""

    def test_minimum_tier(self):
        assert minimum_tier_for("ai-assistant") is PlanTier.FREE
        assert minimum_tier_for("brand-kit") is PlanTier.STARTER
        assert minimum_tier_for("magic-clips") is PlanTier.PROFESSIONAL
        assert minimum_tier_for("n8n-integrations") is PlanTier.ENTERPRISE

    def test_unknown_capability_has_no_minimum_tier(self):
        assert minimum_tier_for("teleporter") is None

    def test_tier_display_name(self):
        assert tier_display_name(PlanTier.ENTERPRISE) == "Enterprise"
        assert tier_display_name(None) is None
