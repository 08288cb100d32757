"""Content analysis and the translate-and-categorize pass."""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .matching import match_keywords
from .models import format_timestamp
from .store import RecordStore, UpstreamFetchError
from .translate import GeminiTranslator, Translator, detect_language, translate_to_english

log = logging.getLogger(__name__)

ARTICLES_TABLE = "news_articles"
_MAX_ERRORS = 10

CONTENT_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "technology": (
        "ai", "artificial intelligence", "machine learning", "blockchain", "cryptocurrency",
        "software", "app", "digital", "cyber", "tech", "innovation", "startup",
        "internet", "online", "mobile", "computer", "data", "algorithm", "robot",
        "automation", "cloud", "programming", "coding", "development",
    ),
    "business": (
        "business", "company", "corporate", "industry", "market", "economy", "economic",
        "financial", "finance", "bank", "banking", "investment", "stock", "trade",
        "commerce", "entrepreneur", "startup", "profit", "revenue", "sales",
        "merger", "acquisition", "ipo", "earnings", "growth",
    ),
    "politics": (
        "government", "minister", "parliament", "election", "vote", "political",
        "policy", "law", "legislation", "prime minister", "president", "party",
        "democracy", "governance", "administration", "cabinet", "opposition",
        "coalition", "referendum", "campaign", "diplomat", "foreign policy",
    ),
    "culture": (
        "culture", "cultural", "art", "artist", "music", "film", "movie", "book",
        "literature", "festival", "celebration", "tradition", "heritage",
        "language", "religion", "community", "society", "lifestyle",
        "entertainment", "celebrity", "fashion", "food", "cuisine",
    ),
    "sports": (
        "cricket", "football", "soccer", "match", "tournament", "championship",
        "olympics", "sports", "player", "team", "game", "victory", "defeat",
        "league", "club", "athlete", "coach", "stadium", "score", "goal",
    ),
    "health": (
        "health", "medical", "hospital", "doctor", "patient", "medicine", "treatment",
        "vaccine", "disease", "covid", "pandemic", "healthcare", "clinic", "surgery",
        "therapy", "diagnosis", "prevention", "wellness", "fitness", "nutrition",
    ),
    "education": (
        "education", "school", "university", "student", "teacher", "academic",
        "exam", "graduation", "scholarship", "learning", "curriculum", "research",
        "study", "college", "degree", "course", "training", "knowledge",
    ),
    "environment": (
        "environment", "climate", "weather", "pollution", "green", "renewable",
        "sustainability", "conservation", "nature", "forest", "wildlife",
        "carbon", "emission", "global warming", "recycling", "energy",
    ),
}

CONTENT_TYPES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("news", ("breaking", "reported", "announced", "confirmed", "according to", "sources say")),
    ("opinion", ("opinion", "editorial", "commentary", "analysis", "perspective", "view", "believe")),
    ("feature", ("profile", "interview", "investigation", "in-depth", "special report", "feature")),
    ("tutorial", ("how to", "guide", "tutorial", "step by step", "instructions", "tips")),
    ("review", ("review", "rating", "evaluation", "assessment", "critique")),
)

AUDIENCE_INDICATORS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("general", ("public", "everyone", "citizens", "people", "community", "society")),
    ("professional", ("industry", "experts", "professionals", "specialists", "executives")),
    ("students", ("students", "learners", "academic", "educational", "university", "college")),
    ("technical", ("developers", "engineers", "technical", "advanced", "implementation")),
)


@dataclass
class ContentAnalysis:
    primary_category: str
    secondary_categories: List[str]
    content_type: str
    audience_level: str
    themes: List[str]
    tags: List[str]


def _first_match(text: str, table, default: str) -> str:
    for name, indicators in table:
        if match_keywords(text, indicators):
            return name
    return default


def analyze_content(title: str, description: str = "", content: str = "") -> ContentAnalysis:
    text = f"{title} {description or ''} {content or ''}".lower()

    scores = {cat: len(match_keywords(text, patterns)) for cat, patterns in CONTENT_PATTERNS.items()}
    primary = "general"
    best = 0
    for cat, score in scores.items():
        if score > best:
            primary, best = cat, score

    secondary = [
        cat for cat, score in sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
        if cat != primary and score > 0
    ][:2]

    content_type = _first_match(text, CONTENT_TYPES, "news")
    audience = _first_match(text, AUDIENCE_INDICATORS, "general")

    counts = Counter(w for w in text.split() if len(w) > 3)
    themes = [w for w, _ in counts.most_common(3)]

    tags = list(dict.fromkeys([primary, content_type, audience, *secondary, *themes[:2]]))[:7]
    return ContentAnalysis(primary, secondary, content_type, audience, themes, tags)


def _process_article(article: Dict, translator: Translator, now: datetime) -> Tuple[Dict, bool]:
    title = article.get("title") or ""
    description = article.get("description") or ""
    full_text = article.get("full_text") or ""

    new_title = translate_to_english(title, translator)
    new_description = translate_to_english(description, translator) if description else None
    new_content = translate_to_english(full_text, translator) if full_text else None
    translated = any(t is not None for t in (new_title, new_description, new_content))

    title = new_title or title
    description = new_description or description
    full_text = new_content or full_text

    analysis = analyze_content(title, description, full_text)
    stamp = format_timestamp(now)
    update = {
        "primary_category": analysis.primary_category,
        "secondary_categories": analysis.secondary_categories,
        "content_type": analysis.content_type,
        "audience_level": analysis.audience_level,
        "main_themes": analysis.themes,
        "auto_tags": analysis.tags,
        "analysis_completed_at": stamp,
    }
    if translated:
        update.update({
            "translated_title": title,
            "translated_description": description or None,
            "translated_content": full_text or None,
            "original_language": detect_language(article.get("title")),
            "translation_completed_at": stamp,
        })
    return update, translated


def run_translate_and_categorize(
    store: RecordStore,
    limit: int = 50,
    force: bool = False,
    translator: Optional[Translator] = None,
    now: Optional[datetime] = None,
) -> Dict[str, object]:
    now = now or datetime.now(timezone.utc)
    translator = translator or GeminiTranslator()

    query = store.select(ARTICLES_TABLE).order("created_at", descending=True).limit(limit)
    if not force:
        query = query.filter("analysis_completed_at", "is", None)
    articles = query.execute()

    if not articles:
        return {
            "success": True,
            "message": "No articles need translation/categorization",
            "processed": 0,
            "translated": 0,
            "totalArticles": 0,
        }

    processed = 0
    translated_count = 0
    errors: List[str] = []
    for article in articles:
        try:
            update, translated = _process_article(article, translator, now)
            store.update(ARTICLES_TABLE, update, [("id", "eq", article["id"])])
        except UpstreamFetchError as exc:
            log.error("Error updating article %s: %s", article.get("id"), exc)
            errors.append(f"Article {article.get('title')}: {exc}")
            continue
        processed += 1
        if translated:
            translated_count += 1

    log.info("Categorized %d articles (%d translated)", processed, translated_count)
    result: Dict[str, object] = {
        "success": True,
        "message": f"Processed {processed} articles, translated {translated_count}",
        "processed": processed,
        "translated": translated_count,
        "totalArticles": len(articles),
    }
    if errors:
        result["errors"] = errors[:_MAX_ERRORS]
    return result
