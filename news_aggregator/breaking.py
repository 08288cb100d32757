"""Breaking-news classification, display admission and expiry."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence

from .feeds import strip_html
from .matching import match_keywords
from .models import BreakingNewsItem, BreakingNewsSource, RawItem, format_timestamp, parse_timestamp
from .source_ranking import classify as classify_source
from .store import RecordStore, UpstreamFetchError

log = logging.getLogger(__name__)

BREAKING_NEWS_KEYWORDS = (
    "breaking", "urgent", "alert", "emergency", "immediate",
    "missile strike", "airstrike", "bombing", "attack", "explosion",
    "casualties", "killed", "wounded", "dead", "injured",
    "nuclear", "chemical", "radiation", "evacuation", "shelter",
    "ceasefire", "peace talks", "escalation", "retaliation",
)

CONFLICT_KEYWORDS = (
    "iran", "israel", "gaza", "hamas", "hezbollah", "idf", "irgc",
    "tehran", "jerusalem", "tel aviv", "beirut", "damascus",
    "middle east", "persian gulf", "strait of hormuz",
)

TABLE = "breaking_news"
ALERTS_TABLE = "breaking_news_alerts"

_DEFAULT_URGENCY = 50
_TTL = timedelta(hours=24)
_TITLE_MAX = 500
_DESCRIPTION_MAX = 1000
_SEVERITY_RANK = {"critical": 3, "high": 2, "medium": 1}

UrgencyScorer = Callable[[str, str, int], Optional[float]]


def is_breaking(title: str, description: str = "", source_keywords: Sequence[str] = ()) -> bool:
    """Needs a breaking term AND either a conflict term or a source filter keyword."""
    text = f"{title} {description or ''}"
    if not match_keywords(text, BREAKING_NEWS_KEYWORDS):
        return False
    return bool(match_keywords(text, CONFLICT_KEYWORDS) or match_keywords(text, source_keywords))


def priority_level(urgency: float) -> str:
    if urgency >= 80:
        return "critical"
    if urgency >= 60:
        return "high"
    return "medium"


def extract_keywords(title: str, description: str = "") -> List[str]:
    text = f"{title} {description or ''}"
    found = match_keywords(text, BREAKING_NEWS_KEYWORDS)
    found += [k for k in match_keywords(text, CONFLICT_KEYWORDS) if k not in found]
    return found


def heuristic_urgency_score(title: str, description: str, credibility: int) -> int:
    text = f"{title} {description or ''}"
    score = 20.0
    score += min(len(match_keywords(text, BREAKING_NEWS_KEYWORDS)) * 12, 48)
    score += min(len(match_keywords(text, CONFLICT_KEYWORDS)) * 5, 15)
    score += (credibility or 0) * 0.25
    return int(round(max(0.0, min(100.0, score))))


def store_urgency_scorer(store: RecordStore) -> UrgencyScorer:
    """Urgency via the store's ``calculate_urgency_score`` function; None on failure."""
    def scorer(title: str, description: str, credibility: int) -> Optional[float]:
        try:
            result = store.rpc("calculate_urgency_score", {
                "title_text": title,
                "description_text": description or "",
                "source_credibility": credibility,
            })
        except UpstreamFetchError as exc:
            log.warning("Urgency RPC failed, using default: %s", exc)
            return None
        try:
            return float(result) if result is not None else None
        except (TypeError, ValueError):
            return None
    return scorer


def classify(
    item: RawItem,
    source: BreakingNewsSource,
    urgency_scorer: UrgencyScorer,
    now: datetime,
) -> Optional[BreakingNewsItem]:
    if not item.title or not item.link:
        return None
    if not is_breaking(item.title, item.description, source.keywords_filter):
        log.debug("Not breaking: %s", item.title)
        return None

    title = strip_html(item.title)[:_TITLE_MAX]
    description = strip_html(item.description)[:_DESCRIPTION_MAX]
    raw = urgency_scorer(title, description, source.credibility_score)
    urgency = _DEFAULT_URGENCY if raw is None else int(round(max(0.0, min(100.0, float(raw)))))

    try:
        published = parse_timestamp(item.pub_date) if item.pub_date else now
    except ValueError:
        published = now

    return BreakingNewsItem(
        title=title,
        description=description,
        url=item.link,
        image_url=item.image_url,
        source=source.name,
        priority_level=priority_level(urgency),
        urgency_score=urgency,
        keywords=extract_keywords(title, description),
        published=published,
        detected_at=now,
        expires_at=now + _TTL,
    )


def admit_for_display(item: BreakingNewsItem) -> bool:
    """High-urgency claims must come from sufficiently credible sources."""
    tier = classify_source(item.source).tier
    if item.urgency_score >= 80:
        return tier == "tier1"
    if item.urgency_score >= 60:
        return tier in ("tier1", "tier2")
    return True


def expire_old_breaking_news(store: RecordStore, now: datetime) -> int:
    """Deactivate items past ``expires_at``. Conditional update, safe to re-run."""
    count = store.update(
        TABLE,
        {"is_active": False},
        [("is_active", "eq", True), ("expires_at", "lt", format_timestamp(now))],
    )
    if count:
        log.info("Expired %d breaking news items", count)
    return count


def active_breaking_news(
    store: RecordStore,
    now: datetime,
    limit: int = 10,
    dismissed_ids: Iterable[str] = (),
) -> List[BreakingNewsItem]:
    rows = (
        store.select(TABLE)
        .filter("is_active", "eq", True)
        .filter("expires_at", "gt", format_timestamp(now))
        .order("urgency_score", descending=True)
        .order("detected_at", descending=True)
        .limit(limit * 2)
        .execute()
    )
    dismissed = {str(d) for d in dismissed_ids}
    items = [BreakingNewsItem.from_record(r) for r in rows if str(r.get("id")) not in dismissed]
    return items[:limit]


def rank_alerts(items: Iterable[BreakingNewsItem], limit: int = 6) -> List[BreakingNewsItem]:
    admitted = [i for i in items if admit_for_display(i)]
    admitted.sort(
        key=lambda i: (_SEVERITY_RANK.get(i.priority_level, 0), i.detected_at.timestamp()),
        reverse=True,
    )
    return admitted[:limit]
