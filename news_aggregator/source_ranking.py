"""Source credibility tiers — maps free-text source names onto tier1/2/3."""

from typing import Dict, List, Sequence, Tuple

from .matching import contains_either, normalise
from .models import Article, SourcePriority

# Premium international outlets
TIER1_SOURCES: Tuple[str, ...] = (
    "bbc", "cnn", "reuters", "al jazeera", "aljazeera",
    "associated press", "ap news", "new york times", "nytimes",
    "the guardian", "washington post", "france24", "deutsche welle",
    "npr", "pbs", "abc news", "cbs news", "nbc news",
)

# Regional and specialised outlets
TIER2_SOURCES: Tuple[str, ...] = (
    "jerusalem post", "middle east eye", "al-monitor", "press tv",
    "tehran times", "radio free europe", "the hindu", "india today",
    "channel news asia", "prothom alo", "daily star",
)

# Local outlets; tier3 is also the default for anything unknown
TIER3_SOURCES: Tuple[str, ...] = (
    "bangla tribune", "bd24live", "risingbd", "bangladesh diplomat",
    "energy bangla", "jagonews24", "daily bangladesh", "blitz",
)

TIER_PRIORITY: Dict[str, int] = {"tier1": 100, "tier2": 70, "tier3": 40}

# tier -> (multiplier, flat bonus)
TIER_WEIGHTS: Dict[str, Tuple[float, int]] = {
    "tier1": (3.0, 200),
    "tier2": (1.8, 80),
    "tier3": (1.0, 0),
}

_BADGES: Dict[str, Dict[str, str]] = {
    "tier1": {"label": "Premium", "color": "#DC2626", "bg_color": "#FEE2E2"},
    "tier2": {"label": "Regional", "color": "#D97706", "bg_color": "#FEF3C7"},
    "tier3": {"label": "Local", "color": "#059669", "bg_color": "#D1FAE5"},
}

_TIERS: Sequence[Tuple[str, Sequence[str]]] = (
    ("tier1", TIER1_SOURCES),
    ("tier2", TIER2_SOURCES),
    ("tier3", TIER3_SOURCES),
)


def classify(source_name: str) -> SourcePriority:
    """Classify a source name. Total: unknown or blank names fall to tier3."""
    name = source_name or ""
    if normalise(name):
        for tier, sources in _TIERS:
            if any(contains_either(name, s) for s in sources):
                return SourcePriority(source=name, tier=tier, priority=TIER_PRIORITY[tier])
    return SourcePriority(source=name, tier="tier3", priority=TIER_PRIORITY["tier3"])


def score_with_source(base_score: float, source_name: str) -> int:
    multiplier, bonus = TIER_WEIGHTS[classify(source_name).tier]
    return int(round(base_score * multiplier + bonus))


def tier_badge(source_name: str) -> Dict[str, str]:
    return dict(_BADGES[classify(source_name).tier])


def sort_by_source_priority(articles: List[Article]) -> List[Article]:
    """Order by tier priority (desc), then newest first. Stable for full ties."""
    return sorted(
        articles,
        key=lambda a: (-classify(a.source).priority, -a.published.timestamp()),
    )
