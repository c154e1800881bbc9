"""
Capability registry tests.
Catalog lookups, fallbacks for unknown ids, auto-provisioning and
hydration from the capabilities collection.
"""
import pytest
import sys
import threading
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Ensure backend root is on path
backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from models import Capability
from services.capability_registry import (
    ALWAYS_ACCESSIBLE_CAPABILITIES,
    CAPABILITY_CATALOG,
    CAPABILITY_KEYWORDS,
    CapabilityRegistry,
)


class TestCatalog:
    """Static catalog contents."""

    def test_catalog_has_27_capabilities(self):
        assert len(CAPABILITY_CATALOG) == 27

    def test_allowlist_is_profile_settings_and_media_library(self):
        assert ALWAYS_ACCESSIBLE_CAPABILITIES == {"profile-settings", "media-library"}

    def test_allowlist_entries_are_in_catalog(self):
        for capability_id in ALWAYS_ACCESSIBLE_CAPABILITIES:
            assert capability_id in CAPABILITY_CATALOG

    def test_keyword_table_covers_14_capabilities(self):
        assert len(CAPABILITY_KEYWORDS) == 14
        assert CAPABILITY_KEYWORDS["voice-cloning"] == ("voice", "clone", "cloning")


class TestLookups:
    """Known and unknown id lookups."""

    def test_display_name_known(self, registry):
        assert registry.display_name("voice-cloning") == "Voice Cloning"
        assert registry.display_name("persona-studio") == "Persona Avatar Studio"

    def test_display_name_unknown_falls_back_to_id(self, registry):
        assert registry.display_name("teleporter") == "teleporter"

    def test_category_known_and_unknown(self, registry):
        assert registry.category("voice-cloning") == "audio"
        assert registry.category("teleporter") == "other"

    def test_unknown_capability_counts_as_active(self, registry):
        assert registry.is_active("teleporter") is True

    def test_keywords_for_unknown_is_empty(self, registry):
        assert registry.keywords_for("teleporter") == ()

    def test_is_always_accessible(self, registry):
        assert registry.is_always_accessible("media-library") is True
        assert registry.is_always_accessible("voice-cloning") is False

    def test_by_category_groups_every_capability(self, registry):
        grouped = registry.by_category()
        assert sum(len(v) for v in grouped.values()) == 27
        assert {c.capability_id for c in grouped["audio"]} == {"voice-over", "voice-cloning"}

    def test_custom_catalog_and_allowlist(self):
        registry = CapabilityRegistry(
            catalog={"alpha": {"display_name": "Alpha"}},
            always_accessible={"alpha"},
            keywords={},
        )
        assert registry.exists("alpha")
        assert not registry.exists("voice-cloning")
        assert registry.category("alpha") == "other"
        assert registry.always_accessible == frozenset({"alpha"})


class TestEnsure:
    """Auto-provisioning of unknown capability ids."""

    def test_ensure_existing_returns_not_created(self, registry):
        capability, created = registry.ensure("voice-cloning")
        assert created is False
        assert capability.display_name == "Voice Cloning"

    def test_ensure_unknown_creates_with_id_as_display_name(self, registry):
        capability, created = registry.ensure("hologram-export")
        assert created is True
        assert capability.display_name == "hologram-export"
        assert capability.category == "other"
        assert registry.exists("hologram-export")

    def test_ensure_twice_creates_once(self, registry):
        _, first = registry.ensure("hologram-export")
        _, second = registry.ensure("hologram-export")
        assert (first, second) == (True, False)

    def test_concurrent_ensure_does_not_crash(self, registry):
        results = []

        def provision():
            results.append(registry.ensure("race-cap")[1])

        threads = [threading.Thread(target=provision) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert registry.display_name("race-cap") == "race-cap"

    def test_all_reads_under_lock(self, registry):
        registry._lock = MagicMock()

        registry.all()

        registry._lock.__enter__.assert_called_once()
        registry._lock.__exit__.assert_called_once()

    def test_listing_while_provisioning(self, registry):
        errors = []

        def provision():
            for i in range(500):
                registry.ensure(f"bulk-cap-{i}")

        def list_all():
            try:
                for _ in range(200):
                    registry.by_category()
            except RuntimeError as e:
                errors.append(e)

        threads = [threading.Thread(target=provision), threading.Thread(target=list_all)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(registry.all()) == 27 + 500


class TestHydrate:
    """Loading stored capabilities over the static catalog."""

    @pytest.mark.asyncio
    async def test_hydrate_overrides_and_extends(self, registry):
        db = MagicMock()
        db.capabilities.find = MagicMock(return_value=MagicMock(to_list=AsyncMock(return_value=[
            {"capability_id": "voice-cloning", "display_name": "Voice Cloning", "category": "audio", "is_active": False},
            {"capability_id": "hologram-export", "display_name": "Hologram Export", "category": "video"},
            {"display_name": "no id, skipped"},
        ])))

        count = await registry.hydrate(db)

        assert count == 3
        assert registry.is_active("voice-cloning") is False
        assert registry.display_name("hologram-export") == "Hologram Export"
        assert registry.category("hologram-export") == "video"

    def test_register_overwrites(self, registry):
        registry.register(Capability(capability_id="brand-kit", display_name="Brand Studio", category="settings"))
        assert registry.display_name("brand-kit") == "Brand Studio"
