"""Relevance scoring — recency decay, source tier, keywords, tags and urgency."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .matching import contains, match_keywords, normalise
from .models import Article, FeedContext, ScoredArticle
from .source_ranking import classify, score_with_source

log = logging.getLogger(__name__)

_TITLE_KEYWORD_POINTS = 25
_DESCRIPTION_KEYWORD_POINTS = 15
_MULTI_MATCH_POINTS = 10
_TAG_POINTS = 5
_CATEGORY_POINTS = 10
_URGENCY_TERMS = ("breaking", "urgent", "alert")
_URGENCY_POINTS = 50

WAR_PRIORITY_KEYWORDS = (
    "iran", "israel", "airstrike", "missile", "gaza", "hezbollah", "idf", "irgc",
    "nuclear", "civilian casualties", "hospital", "breaking", "urgent", "attack",
    "bombing", "rocket", "drone", "ballistic", "precision strike", "operation",
    "escalation", "emergency", "evacuation", "humanitarian crisis", "refugee",
    "iron dome", "air defense", "regional spillover", "sanctions", "diplomacy",
)


def recency_score(published: datetime, now: datetime, decay_rate: float = 5.0) -> float:
    """100 at publication, losing ``decay_rate`` points per day, floored at 0."""
    hours_old = max(0.0, (now - published).total_seconds() / 3600.0)
    return max(0.0, 100.0 - (hours_old / 24.0) * decay_rate)


def keyword_score(article: Article, keywords: Sequence[str]) -> int:
    if not keywords:
        return 0
    title_hits = match_keywords(article.title, keywords)
    desc_hits = [
        kw for kw in match_keywords(article.description or "", keywords)
        if kw not in title_hits
    ]
    score = len(title_hits) * _TITLE_KEYWORD_POINTS + len(desc_hits) * _DESCRIPTION_KEYWORD_POINTS
    matched = len(title_hits) + len(desc_hits)
    if matched > 1:
        score += matched * _MULTI_MATCH_POINTS
    return score


def tag_score(article: Article, relevant_categories: Sequence[str] = ()) -> int:
    score = 0
    for tag in article.tags:
        score += _TAG_POINTS
        if tag.relevance_score > 80:
            score += 20
        elif tag.relevance_score > 60:
            score += 10
    if relevant_categories and normalise(article.category) in {normalise(c) for c in relevant_categories}:
        score += _CATEGORY_POINTS
    return score


def breaking_boost(article: Article) -> int:
    if any(contains(article.text, t) for t in _URGENCY_TERMS):
        return _URGENCY_POINTS
    return 0


def score(article: Article, context: FeedContext, now: datetime) -> int:
    """Composite priority score. Deterministic for a fixed ``now``."""
    recency = recency_score(article.published, now, context.decay_rate)
    total = score_with_source(recency, article.source)
    total += keyword_score(article, context.topic_keywords)
    total += tag_score(article, context.relevant_categories)
    total += breaking_boost(article)
    return int(round(total))


def score_article(article: Article, context: FeedContext, now: datetime) -> ScoredArticle:
    secondary = None
    if context.region_profile is not None:
        secondary = regional_relevance(article, context.region_profile)
    return ScoredArticle(
        article=article,
        priority_score=score(article, context, now),
        source_tier=classify(article.source).tier,
        secondary_score=secondary,
    )


def load_articles(records: Iterable[Dict[str, Any]]) -> List[Article]:
    """Build Articles from store rows, skipping (and logging) malformed ones."""
    articles: List[Article] = []
    for record in records:
        try:
            articles.append(Article.from_record(record))
        except (KeyError, ValueError) as exc:
            log.warning("Skipping malformed article %r: %s", record.get("id"), exc)
    return articles


def score_batch(articles: Iterable[Article], context: FeedContext, now: datetime) -> List[ScoredArticle]:
    scored: List[ScoredArticle] = []
    for article in articles:
        try:
            scored.append(score_article(article, context, now))
        except (AttributeError, TypeError, ValueError) as exc:
            log.warning("Skipping unscorable article %r: %s", getattr(article, "id", None), exc)
    return scored


# ── Regional relevance ──

@dataclass(frozen=True)
class RegionProfile:
    name: str
    keywords: Tuple[str, ...]
    sources: Tuple[str, ...]
    region_weights: Dict[str, int] = field(default_factory=dict)
    relevant_categories: Tuple[str, ...] = ()
    source_points: int = 60
    keyword_points: int = 20
    title_points: int = 15
    category_points: int = 10
    related_threshold: int = 15


BANGLADESH_PROFILE = RegionProfile(
    name="bangladesh",
    keywords=(
        "bangladesh", "bengal", "dhaka", "chittagong", "sylhet", "rajshahi", "khulna",
        "barisal", "rangpur", "mymensingh",
        "awami league", "bnp", "jatiya party", "sheikh hasina", "khaleda zia",
        "parliament", "jatiya sangsad",
        "cox's bazar", "sundarbans", "padma", "jamuna", "meghna", "rohingya", "saint martin",
        "bengali", "bangla", "pohela boishakh", "durga puja", "eid", "ramadan",
        "victory day", "independence day",
        "taka", "garments", "rmg", "textile", "jute", "tea", "shrimp", "hilsa",
        "brac", "grameen", "yunus", "microcredit", "bangladesh bank", "dse", "cse",
    ),
    sources=(
        "bangla tribune", "bd24live", "risingbd", "bangladesh diplomat",
        "the dhaka post", "energy bangla", "daily jagaran", "jagonews24.com",
        "daily bangladesh", "blitz",
    ),
    region_weights={"bangladesh": 100, "asia": 20},
    relevant_categories=("politics", "general", "business", "sports"),
)


def regional_relevance(article: Article, profile: RegionProfile = BANGLADESH_PROFILE) -> int:
    region = normalise(article.region)
    score = profile.region_weights.get(region, 0)
    if any(contains(article.source, s) for s in profile.sources):
        score += profile.source_points
    score += len(match_keywords(article.text, profile.keywords)) * profile.keyword_points
    score += len(match_keywords(article.title, profile.keywords)) * profile.title_points
    if normalise(article.category) in profile.relevant_categories:
        score += profile.category_points
    return score


def is_region_related(article: Article, profile: RegionProfile = BANGLADESH_PROFILE) -> bool:
    if normalise(article.region) == profile.name:
        return True
    return regional_relevance(article, profile) >= profile.related_threshold


# ── Ingest-time Bangladesh marking ──

BANGLADESH_PRIORITY_KEYWORDS = (
    "bangladesh", "bengal", "dhaka", "chittagong", "sylhet", "rajshahi", "khulna", "barisal",
    "awami league", "bnp", "sheikh hasina", "khaleda zia", "parliament", "jatiya sangsad",
    "cox's bazar", "sundarbans", "padma", "jamuna", "rohingya", "bengali", "bangla",
    "taka", "garments", "rmg", "textile", "grameen", "yunus", "bangladesh bank",
)


def bangladesh_priority_relevance(title: str, description: Optional[str] = None) -> int:
    """+10 per keyword found in the title, +5 per keyword found only in the description."""
    score = 0
    for kw in match_keywords(f"{title} {description or ''}", BANGLADESH_PRIORITY_KEYWORDS):
        score += 10 if contains(title, kw) else 5
    return score

