"""Model routing: pick the cheap or the capable tier from the user's wording."""

from __future__ import annotations

import re

from starbase.core.types import ModelTier

# Financial analysis, sequenced instructions, comparisons/recommendations,
# periodic reports, bulk finance edits, and judgement questions.
SMART_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"budget.*summary|spending.*breakdown|financial.*review",
        r"create.*and.*then|first.*then.*finally",
        r"analyze|compare|recommend|suggest|plan",
        r"weekly.*review|daily.*brief|monthly.*report",
        r"split.*transaction|recategorize.*all",
        r"what.*should|how.*much.*can|am.*i.*on.*track",
    )
)


def classify(message: str) -> ModelTier:
    """Return SMART when any complexity pattern matches, FAST otherwise."""
    lower = message.lower()
    if any(p.search(lower) for p in SMART_PATTERNS):
        return ModelTier.SMART
    return ModelTier.FAST
