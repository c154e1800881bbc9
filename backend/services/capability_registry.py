"""Capability Registry - catalog of every licensable capability.

Maps a stable lowercase-hyphenated capability id ("voice-cloning") to its
display name and category, and holds two fixed tables used elsewhere:

- ALWAYS_ACCESSIBLE_CAPABILITIES: kept by every account regardless of plan,
  so that a missing or broken plan can never lock an account out completely.
- CAPABILITY_KEYWORDS: synonym table used only by the legacy text matcher.
  Keyword order is declaration order; matching is first-match-wins with no
  specificity ranking ("video" appears under several capabilities).

The registry is an injected instance, constructed once at process start and
shared by the resolution engine and the grant store. Unknown ids are never an
error: lookups fall back to the raw id / "other", and the grant store
auto-provisions them through ensure().
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging
import threading

from models import Capability, CapabilityCategory

logger = logging.getLogger(__name__)


# ============================================================================
# STATIC CATALOG
# ============================================================================
CAPABILITY_CATALOG: Dict[str, Dict[str, Any]] = {
    # Content
    "ai-assistant": {"display_name": "AI Assistant", "category": CapabilityCategory.CONTENT},
    "creative-assistant": {"display_name": "Creative Assistant", "category": CapabilityCategory.CONTENT},
    "topic-researcher": {"display_name": "Topic Researcher", "category": CapabilityCategory.CONTENT},
    "thumbnail-tester": {"display_name": "Thumbnail Tester", "category": CapabilityCategory.CONTENT},
    "script-generator": {"display_name": "Script Generator", "category": CapabilityCategory.CONTENT},
    "video-from-url": {"display_name": "Video from URL", "category": CapabilityCategory.CONTENT},

    # Video
    "video-suite": {"display_name": "Video Suite", "category": CapabilityCategory.VIDEO},
    "video-generator": {"display_name": "Video Generator", "category": CapabilityCategory.VIDEO},
    "video-pipeline": {"display_name": "Video Pipeline", "category": CapabilityCategory.VIDEO},
    "video-editor": {"display_name": "Video Editor", "category": CapabilityCategory.VIDEO},
    "magic-clips": {"display_name": "Magic Clips", "category": CapabilityCategory.VIDEO},
    "image-to-video": {"display_name": "Image to Video", "category": CapabilityCategory.VIDEO},
    "persona-studio": {"display_name": "Persona Avatar Studio", "category": CapabilityCategory.VIDEO},

    # Audio
    "voice-over": {"display_name": "Voice Over", "category": CapabilityCategory.AUDIO},
    "voice-cloning": {"display_name": "Voice Cloning", "category": CapabilityCategory.AUDIO},

    # Media
    "stock-media": {"display_name": "Stock Media Library", "category": CapabilityCategory.MEDIA},
    "ai-image-generator": {"display_name": "AI Image Generator", "category": CapabilityCategory.MEDIA},
    "flux-pro": {"display_name": "Flux Pro Editor", "category": CapabilityCategory.MEDIA},
    "background-remover": {"display_name": "Background Remover", "category": CapabilityCategory.MEDIA},
    "media-library": {"display_name": "Media Library", "category": CapabilityCategory.MEDIA},

    # Automation
    "ai-agents": {"display_name": "AI Agent Builder", "category": CapabilityCategory.AUTOMATION},
    "n8n-integrations": {"display_name": "N8n/Make Integrations", "category": CapabilityCategory.AUTOMATION},

    # Social
    "social-analytics": {"display_name": "Social Analytics", "category": CapabilityCategory.SOCIAL},
    "social-scheduler": {"display_name": "Social Scheduler", "category": CapabilityCategory.SOCIAL},
    "social-integrations": {"display_name": "Social Integrations", "category": CapabilityCategory.SOCIAL},

    # Settings
    "profile-settings": {"display_name": "Profile Settings", "category": CapabilityCategory.SETTINGS},
    "brand-kit": {"display_name": "Brand Kit", "category": CapabilityCategory.SETTINGS},
}

ALWAYS_ACCESSIBLE_CAPABILITIES = frozenset({
    "profile-settings",
    "media-library",
})

CAPABILITY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "video-suite": ("video", "editing", "creation"),
    "video-generator": ("video", "generator", "render", "text to video"),
    "ai-assistant": ("ai", "assistant", "chat"),
    "voice-cloning": ("voice", "clone", "cloning"),
    "background-remover": ("background", "remove", "remover"),
    "social-analytics": ("social", "analytics", "insights"),
    "social-scheduler": ("social", "schedule", "scheduling"),
    "magic-clips": ("magic", "clips", "highlights"),
    "script-generator": ("script", "generator", "writing"),
    "voice-over": ("voice", "over", "voiceover", "narration"),
    "image-to-video": ("image", "video", "conversion"),
    "stock-media": ("stock", "media", "library"),
    "ai-agents": ("agent", "automation", "workflow"),
    "brand-kit": ("brand", "kit", "branding"),
}


def _category_value(category) -> str:
    return category.value if isinstance(category, CapabilityCategory) else str(category)


# ============================================================================
# REGISTRY
# ============================================================================
class CapabilityRegistry:
    """Thread-safe capability catalog.

    Point lookups are lock-free dict reads. all() copies the values under the
    lock, and ensure()/register() take it only around the insert; two racing
    provisions of the same id settle on whichever wrote first.
    """

    def __init__(
        self,
        catalog: Optional[Dict[str, Dict[str, Any]]] = None,
        always_accessible: Optional[Iterable[str]] = None,
        keywords: Optional[Dict[str, Tuple[str, ...]]] = None,
    ):
        self._lock = threading.Lock()
        self._capabilities: Dict[str, Capability] = {}
        self._always_accessible = frozenset(
            ALWAYS_ACCESSIBLE_CAPABILITIES if always_accessible is None else always_accessible
        )
        self._keywords = dict(CAPABILITY_KEYWORDS if keywords is None else keywords)

        for capability_id, info in (CAPABILITY_CATALOG if catalog is None else catalog).items():
            self._capabilities[capability_id] = Capability(
                capability_id=capability_id,
                display_name=info["display_name"],
                category=_category_value(info.get("category", CapabilityCategory.OTHER)),
                is_active=info.get("is_active", True),
            )

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def exists(self, capability_id: str) -> bool:
        return capability_id in self._capabilities

    def display_name(self, capability_id: str) -> str:
        """Human-readable name; the raw id when unknown."""
        capability = self._capabilities.get(capability_id)
        return capability.display_name if capability else capability_id

    def category(self, capability_id: str) -> str:
        capability = self._capabilities.get(capability_id)
        return capability.category if capability else CapabilityCategory.OTHER.value

    def is_active(self, capability_id: str) -> bool:
        """Unknown ids count as active; only an explicit is_active=False disables."""
        capability = self._capabilities.get(capability_id)
        return capability.is_active if capability else True

    def is_always_accessible(self, capability_id: str) -> bool:
        return capability_id in self._always_accessible

    @property
    def always_accessible(self) -> frozenset:
        return self._always_accessible

    def keywords_for(self, capability_id: str) -> Tuple[str, ...]:
        return self._keywords.get(capability_id, ())

    def all(self) -> List[Capability]:
        with self._lock:
            snapshot = list(self._capabilities.values())
        return sorted(snapshot, key=lambda c: (c.category, c.display_name))

    def by_category(self) -> Dict[str, List[Capability]]:
        grouped: Dict[str, List[Capability]] = {}
        for capability in self.all():
            grouped.setdefault(capability.category, []).append(capability)
        return grouped

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    @staticmethod
    def derive(capability_id: str) -> Capability:
        """Capability for an unknown id: the id verbatim as display name, category "other"."""
        return Capability(
            capability_id=capability_id,
            display_name=capability_id,
            category=CapabilityCategory.OTHER.value,
        )

    def ensure(self, capability_id: str) -> Tuple[Capability, bool]:
        """Return the capability, creating it from derive() if unknown.

        Returns (capability, created). Callers that persist the catalog write
        the derived document first and call this afterwards, so a failed write
        leaves the id unknown and the next attempt persists it again.
        """
        existing = self._capabilities.get(capability_id)
        if existing is not None:
            return existing, False

        with self._lock:
            existing = self._capabilities.get(capability_id)
            if existing is not None:
                return existing, False
            capability = self.derive(capability_id)
            self._capabilities[capability_id] = capability

        logger.info(f"Auto-provisioned capability: {capability_id}")
        return capability, True

    def register(self, capability: Capability) -> None:
        """Insert or overwrite a capability (used when hydrating from the store)."""
        with self._lock:
            self._capabilities[capability.capability_id] = capability

    async def hydrate(self, db) -> int:
        """Load every persisted capability document over the static catalog."""
        docs = await db.capabilities.find({}, {"_id": 0}).to_list(length=None)
        for doc in docs:
            if not doc.get("capability_id"):
                continue
            doc.setdefault("display_name", doc["capability_id"])
            self.register(Capability(**doc))
        logger.info(f"Capability registry hydrated: {len(docs)} stored capabilities")
        return len(docs)
