"""Legacy Text Matcher - heuristic match of free-text plan lines to capability ids.

Plans created before structured grants existed carry only free-form feature
lines ("AI Voice Cloning", "5 Video Exports / mo"). A line covers a capability
when, case-insensitively, it contains any of:

1. the capability id with hyphens replaced by spaces ("voice cloning")
2. the registry display name ("voice cloning")
3. any keyword registered for the capability ("voice", "clone", ...)

Rules are tried in that order per line, lines in their stored order, and the
first hit wins. There is no specificity ranking: a generic keyword such as
"video" matches every line mentioning video. This is a known coarse-matching
limitation kept for compatibility with existing plan text.
"""
from typing import NamedTuple, Optional, Sequence

from models import MatchRule
from services.capability_registry import CapabilityRegistry


class TextMatch(NamedTuple):
    rule: MatchRule
    line: str
    term: str


class LegacyTextMatcher:
    """Matches legacy plan text lines against a capability id."""

    def __init__(self, registry: CapabilityRegistry):
        self.registry = registry

    def explain(self, plan_text_lines: Sequence[str], capability_id: str) -> Optional[TextMatch]:
        """Return the first (rule, line, term) that matches, or None."""
        if not capability_id or not capability_id.strip():
            return None

        search_id = capability_id.lower().replace("-", " ")
        display_name = self.registry.display_name(capability_id).lower()
        keywords = [k.lower() for k in self.registry.keywords_for(capability_id) if k]

        for line in plan_text_lines or ():
            if not line:
                continue
            text = line.lower()

            if search_id in text:
                return TextMatch(MatchRule.DIRECT_ID, line, search_id)

            if display_name and display_name in text:
                return TextMatch(MatchRule.DISPLAY_NAME, line, display_name)

            for keyword in keywords:
                if keyword in text:
                    return TextMatch(MatchRule.KEYWORD, line, keyword)

        return None

    def matches(self, plan_text_lines: Sequence[str], capability_id: str) -> bool:
        return self.explain(plan_text_lines, capability_id) is not None
