"""Latest developments — short category summaries of recent Middle East war articles."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from .feeds import strip_html
from .matching import contains, match_keywords
from .models import format_timestamp
from .store import RecordStore, UpstreamFetchError

log = logging.getLogger(__name__)

ARTICLES_TABLE = "middleeastwararticles"
_MAX_DEVELOPMENTS = 8
_MAX_CONFIDENCE = 95
_TRUSTED_SOURCES = ("reuters", "bbc", "associated press")

DEVELOPMENT_PATTERNS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "ceasefire": {
        "keywords": (
            "ceasefire", "truce", "peace talks", "negotiation", "mediation", "agreement",
            "diplomatic solution", "peace process", "talks resume", "dialogue", "armistice",
        ),
        "titles": ("CEASEFIRE TALKS", "PEACE NEGOTIATIONS", "DIPLOMATIC BREAKTHROUGH"),
    },
    "humanitarian": {
        "keywords": (
            "humanitarian aid", "medical supplies", "food assistance", "refugee",
            "displaced", "evacuation", "relief convoy", "red cross", "un aid",
            "emergency assistance", "shelter", "water shortage", "civilian casualties",
        ),
        "titles": ("HUMANITARIAN AID", "RELIEF EFFORTS", "CIVILIAN ASSISTANCE"),
    },
    "diplomatic": {
        "keywords": (
            "diplomatic", "ambassador", "foreign minister", "summit", "meeting",
            "international community", "un security council", "sanctions",
            "diplomatic pressure", "international law", "mediation", "envoy",
        ),
        "titles": ("DIPLOMATIC PROGRESS", "INTERNATIONAL MEDIATION", "PEACE INITIATIVE"),
    },
    "military": {
        "keywords": (
            "military", "forces", "troops", "deployment", "operation", "strike",
            "attack", "defense", "offensive", "strategic", "tactical", "combat",
            "airstrike", "missile", "bombing", "rocket",
        ),
        "titles": ("MILITARY UPDATE", "OPERATIONAL CHANGE", "STRATEGIC DEVELOPMENT"),
    },
    "civilian": {
        "keywords": (
            "civilian", "casualties", "hospital", "school", "infrastructure",
            "power grid", "water supply", "residential", "non-combatant",
            "evacuation", "shelter", "humanitarian crisis",
        ),
        "titles": ("CIVILIAN IMPACT", "INFRASTRUCTURE UPDATE", "POPULATION SAFETY"),
    },
}

# Checked in order; the first level with any hit wins.
URGENCY_INDICATORS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("critical", ("breaking", "urgent", "emergency", "immediate", "critical", "alert", "major escalation")),
    ("high", ("important", "significant", "major", "substantial", "escalating", "serious")),
    ("medium", ("developing", "ongoing", "continues", "reports indicate", "sources say")),
    ("low", ("minor", "small", "limited", "isolated", "local")),
)

URGENCY_ORDER = {"critical": 4, "high": 3, "medium": 2, "low": 1}


@dataclass
class WarDevelopment:
    id: str
    title: str
    description: str
    category: str
    urgency: str
    timestamp: str
    confidence: int
    sources: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def _best_category(content: str) -> Tuple[Optional[str], List[str]]:
    best, best_matches = None, []
    for category, pattern in DEVELOPMENT_PATTERNS.items():
        matches = match_keywords(content, pattern["keywords"])
        if len(matches) > len(best_matches):
            best, best_matches = category, matches
    return best, best_matches


def _urgency(content: str) -> Tuple[str, int]:
    for level, indicators in URGENCY_INDICATORS:
        hits = match_keywords(content, indicators)
        if hits:
            return level, len(hits) * 10
    return "low", 0


def _any_in(text: str, terms: Tuple[str, ...]) -> bool:
    return any(contains(text, t) for t in terms)


def development_summary(category: str, keywords: List[str], title: str, description: str) -> str:
    """One-sentence summary for a development, falling back to the trimmed description."""
    content = f"{title} {description}"
    matched = " ".join(keywords)

    if category == "ceasefire" and _any_in(matched, ("talks", "negotiation", "mediation")):
        if contains(content, "resume"):
            return "Negotiations have resumed with international mediators present. Both sides report cautious optimism."
        if contains(title, "progress") or contains(description, "breakthrough"):
            return "Significant progress reported in peace negotiations with potential breakthrough imminent."
        return "Diplomatic efforts continue as parties engage in ceasefire discussions."

    if category == "humanitarian" and _any_in(matched, ("aid", "relief", "assistance", "evacuation")):
        if contains(content, "convoy"):
            return "New convoy reaches affected areas with medical supplies and food assistance."
        if "evacuation" in keywords:
            return "Emergency evacuation operations underway to move civilians from conflict zones."
        return "Humanitarian organizations mobilize resources to assist affected populations."

    if category == "diplomatic":
        if "summit" in keywords or "meeting" in keywords:
            return "Regional leaders express support for ongoing peace initiatives and dialogue."
        if "sanctions" in keywords:
            return "International community considers additional diplomatic measures and sanctions."
        return "Diplomatic channels remain active as international pressure mounts for resolution."

    if category == "military":
        if _any_in(description, ("reduced", "decrease", "pullback")):
            return "International observers report reduced military activity along disputed borders."
        if "deployment" in keywords:
            return "Military forces adjust positions as strategic situation evolves."
        return "Military developments continue to shape the operational landscape."

    if category == "civilian":
        if "hospital" in keywords:
            return "Medical facilities report increased casualties requiring urgent international assistance."
        if "infrastructure" in keywords:
            return "Critical infrastructure damage affects civilian population access to essential services."
        return "Civilian population faces mounting challenges as conflict impacts daily life."

    clean = strip_html(description)
    return clean[:117] + "..." if len(clean) > 120 else clean


def development_title(category: str, content: str) -> str:
    if category == "ceasefire":
        if _any_in(content, ("breakthrough", "agreement")):
            return "PEACE BREAKTHROUGH"
        if _any_in(content, ("resume", "continue")):
            return "CEASEFIRE TALKS"
    elif category == "humanitarian":
        if _any_in(content, ("convoy", "delivery")):
            return "HUMANITARIAN AID"
        if contains(content, "evacuation"):
            return "EMERGENCY EVACUATION"
    elif category == "military":
        if _any_in(content, ("reduced", "pullback")):
            return "MILITARY PULLBACK"
        if contains(content, "escalation"):
            return "MILITARY ESCALATION"
    return DEVELOPMENT_PATTERNS[category]["titles"][0]


def analyze_development(article: Dict, now: Optional[datetime] = None) -> Optional[WarDevelopment]:
    """Classify one article into a development, or None when no pattern matches."""
    title = article.get("title") or ""
    description = article.get("description") or ""
    source = article.get("source") or ""
    content = f"{title} {description}"

    category, keywords = _best_category(content)
    if category is None:
        return None

    urgency, urgency_score = _urgency(content)
    trusted = 20 if _any_in(source, _TRUSTED_SOURCES) else 0
    confidence = min(_MAX_CONFIDENCE, 50 + len(keywords) * 15 + urgency_score + trusted)

    return WarDevelopment(
        id=f"dev-{article.get('id')}",
        title=development_title(category, content),
        description=development_summary(category, keywords, title, description),
        category=category,
        urgency=urgency,
        timestamp=article.get("published_date") or format_timestamp(now or datetime.now(timezone.utc)),
        confidence=confidence,
        sources=[source],
        keywords=keywords,
    )


def run_development_analysis(
    store: RecordStore,
    limit: int = 50,
    hours: int = 24,
    now: Optional[datetime] = None,
) -> Dict[str, object]:
    """Summarise the most urgent developments among war articles from the last ``hours``."""
    now = now or datetime.now(timezone.utc)
    cutoff = format_timestamp(now - timedelta(hours=hours))
    try:
        articles = (
            store.select(ARTICLES_TABLE)
            .filter("published_date", "gte", cutoff)
            .order("published_date", descending=True)
            .limit(limit)
            .execute()
        )
    except UpstreamFetchError as exc:
        log.error("War development analysis failed: %s", exc)
        return {"success": False, "error": str(exc), "timestamp": format_timestamp(now)}

    if not articles:
        return {
            "success": True,
            "developments": [],
            "message": "No recent articles found for analysis",
            "articlesAnalyzed": 0,
        }

    developments = [d for d in (analyze_development(a, now) for a in articles) if d is not None]
    developments.sort(key=lambda d: (URGENCY_ORDER[d.urgency], d.confidence), reverse=True)
    log.info("Found %d developments in %d articles", len(developments), len(articles))

    return {
        "success": True,
        "developments": [d.to_dict() for d in developments[:_MAX_DEVELOPMENTS]],
        "articlesAnalyzed": len(articles),
        "totalDevelopments": len(developments),
        "lastUpdated": format_timestamp(now),
        "timeRange": f"{hours} hours",
    }
