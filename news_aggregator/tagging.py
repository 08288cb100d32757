"""Rule-based article tagging and the batch tagging pass."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .matching import contains, match_keywords, normalise
from .store import RecordStore, UpstreamFetchError

log = logging.getLogger(__name__)

ARTICLES_TABLE = "news_articles"
TAGS_TABLE = "article_tags"
ASSIGNMENTS_TABLE = "article_tag_assignments"

_MAX_TAGS = 5
_MIN_TAG_SCORE = 20
_MAX_ERRORS = 10

TAG_PATTERNS: Dict[str, Tuple[str, ...]] = {
    # Industry
    "technology": (
        "ai", "artificial intelligence", "machine learning", "blockchain", "cryptocurrency",
        "software", "app", "digital", "cyber", "tech", "innovation", "startup",
        "internet", "online", "mobile", "computer", "data", "algorithm",
    ),
    "healthcare": (
        "health", "medical", "hospital", "doctor", "patient", "medicine", "treatment",
        "vaccine", "disease", "covid", "pandemic", "healthcare", "clinic", "surgery",
    ),
    "finance": (
        "bank", "banking", "loan", "credit", "investment", "stock", "market", "economy",
        "financial", "money", "currency", "trade", "business", "profit", "revenue",
    ),
    "education": (
        "school", "university", "student", "teacher", "education", "academic", "exam",
        "graduation", "scholarship", "learning", "curriculum", "research",
    ),
    "agriculture": (
        "farm", "farmer", "crop", "harvest", "agriculture", "rice", "wheat", "food",
        "irrigation", "pesticide", "fertilizer", "livestock", "fishing",
    ),
    "energy": (
        "power", "electricity", "energy", "solar", "renewable", "coal", "gas", "oil",
        "nuclear", "grid", "utility", "fuel", "battery",
    ),
    "textiles": (
        "garments", "textile", "rmg", "clothing", "fashion", "fabric", "export",
        "apparel", "manufacturing", "factory",
    ),
    # Region
    "bangladesh": (
        "bangladesh", "bengal", "dhaka", "chittagong", "sylhet", "rajshahi", "khulna",
        "barisal", "rangpur", "mymensingh", "bengali", "bangla",
    ),
    "asia": (
        "asia", "asian", "india", "china", "pakistan", "myanmar", "thailand", "vietnam",
        "indonesia", "malaysia", "singapore", "japan", "korea",
    ),
    "global": ("international", "global", "worldwide", "world", "united nations", "foreign"),
    # Topic
    "politics": (
        "government", "minister", "parliament", "election", "vote", "political",
        "policy", "law", "legislation", "prime minister", "president", "party",
    ),
    "sports": (
        "cricket", "football", "soccer", "match", "tournament", "championship",
        "olympics", "sports", "player", "team", "game", "victory", "defeat",
    ),
    "crime": (
        "police", "arrest", "crime", "murder", "theft", "robbery", "court", "trial",
        "investigation", "criminal", "law enforcement", "justice",
    ),
    "weather": (
        "weather", "rain", "flood", "cyclone", "storm", "temperature", "climate",
        "drought", "monsoon", "disaster", "natural disaster",
    ),
    # Event
    "election": ("election", "vote", "ballot", "candidate", "campaign", "polling", "electoral"),
    "protest": ("protest", "demonstration", "rally", "march", "strike", "movement", "activist"),
    "disaster": (
        "disaster", "emergency", "rescue", "evacuation", "damage", "casualties",
        "relief", "aid", "humanitarian",
    ),
    "conference": ("conference", "summit", "meeting", "forum", "symposium", "convention"),
}

_CATEGORY_ALIGNMENT = {
    "technology": ("technology", "tech"),
    "politics": ("politics", "political"),
    "sports": ("sports", "sport"),
    "healthcare": ("health", "medical"),
    "finance": ("business", "finance", "economy"),
    "education": ("education", "academic"),
}

_REGION_ALIGNMENT = {
    "bangladesh": ("asia", "south asia"),
    "asia": ("asia",),
    "global": ("global", "world", "international"),
}

_CATEGORY_TAGS = {
    "politics": "politics",
    "sports": "sports",
    "technology": "technology",
    "health": "healthcare",
    "business": "finance",
    "entertainment": "entertainment",
    "general": "breaking-news",
}

_REGION_TAGS = {
    "asia": "asia",
    "south asia": "south-asia",
    "global": "global",
    "international": "global",
}

_TIME_SENSITIVITY = (
    ("urgent", ("breaking", "urgent", "alert")),
    ("developing", ("developing", "ongoing", "continues")),
    ("trending", ("trending", "viral", "popular")),
)


def _time_sensitivity(text: str) -> Optional[str]:
    for tag, terms in _TIME_SENSITIVITY:
        if match_keywords(text, terms):
            return tag
    return None


def analyze_article_for_tags(
    title: str,
    description: Optional[str] = None,
    category: str = "",
    region: str = "",
) -> Dict[str, int]:
    """Return up to five tag slugs mapped to relevance (20..100), best first."""
    text = f"{title} {description or ''}"
    scores: Dict[str, int] = {}

    for slug, patterns in TAG_PATTERNS.items():
        matched = match_keywords(text, patterns)
        if not matched:
            continue
        score = sum(20 if contains(title, p) else 10 for p in matched)
        score += min(len(matched) * 5, 25)
        if any(contains(category, c) for c in _CATEGORY_ALIGNMENT.get(slug, ())):
            score += 15
        if any(contains(region, r) for r in _REGION_ALIGNMENT.get(slug, ())):
            score += 10
        if score >= _MIN_TAG_SCORE:
            scores[slug] = min(score, 100)

    fixed = (
        (_CATEGORY_TAGS.get(normalise(category)), 90),
        (_REGION_TAGS.get(normalise(region)), 85),
        (_time_sensitivity(text), 75),
    )
    for slug, score in fixed:
        if slug and slug not in scores:
            scores[slug] = score

    ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)[:_MAX_TAGS]
    return dict(ranked)


# ── Middle East war feed ──

WAR_ARTICLES_TABLE = "middleeastwararticles"
WAR_TAGS_TABLE = "middleeastwartagtable"
WAR_ASSIGNMENTS_TABLE = "middleeastwar_tag_assignments"
WAR_FEED_TAG = "middle-east-war"

_WAR_MAX_TAGS = 8
_WAR_FEED_TAG_SCORE = 95

WAR_TAG_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "iran-israel-airstrike": ("iran", "israel", "airstrike", "air strike", "bombing", "attack"),
    "missile-barrage": ("missile", "barrage", "rocket", "projectile", "ballistic"),
    "sejjil-missile": ("sejjil", "sejil"),
    "ballistic-drone-attacks": ("drone", "uav", "unmanned", "ballistic"),
    "civilian-casualties": ("civilian", "casualties", "deaths", "killed", "wounded", "injured"),
    "hospital-damage": ("hospital", "medical", "clinic", "healthcare", "damage"),
    "idf": ("idf", "israel defense forces", "israeli military", "israeli army"),
    "irgc": ("irgc", "revolutionary guard", "iranian guard", "quds force"),
    "hezbollah-involvement-warning": ("hezbollah", "hizbollah", "lebanon", "lebanese"),
    "iron-dome": ("iron dome", "missile defense", "air defense", "interception"),
    "gaza-humanitarian-crisis": ("gaza", "humanitarian", "crisis", "aid", "relief"),
    "palestinian-casualties": ("palestinian", "gaza", "west bank", "palestine"),
    "nuclear-contamination": ("nuclear", "radiation", "contamination", "radioactive"),
    "un-emergency-sessions": ("un", "united nations", "security council", "emergency"),
    "regional-spillover": ("regional", "spillover", "escalation", "expansion"),
    "energy-market-impact": ("oil", "energy", "market", "price", "petroleum"),
    "cyber-sabotage": ("cyber", "hacking", "digital", "internet", "network"),
    "refugee-displacement": ("refugee", "displaced", "evacuation", "flee"),
    "airspace-closure": ("airspace", "flight", "aviation", "airport", "closure"),
    "precision-strikes": ("precision", "targeted", "surgical", "strike"),
    "f35-participation": ("f-35", "f35", "fighter jet", "aircraft"),
    "operation-rising-lion": ("operation rising lion", "rising lion"),
    "operation-true-promise-ii": ("operation true promise", "true promise"),
    "operation-days-of-repentance": ("days of repentance", "operation days"),
    "yemen-houthi-attack": ("yemen", "houthi", "ansarullah", "yemeni"),
    "strait-of-hormuz-stakes": ("strait of hormuz", "hormuz", "persian gulf"),
    "sanctions-enforcement": ("sanctions", "embargo", "economic pressure"),
    "expert-analysis": ("expert", "analysis", "analyst", "commentary"),
    "breaking-news": ("breaking", "urgent", "alert", "developing"),
}


def analyze_war_article_for_tags(title: str, description: Optional[str] = None) -> Dict[str, int]:
    """Up to eight war-feed tag slugs mapped to relevance, best first.

    Every article also carries the ``middle-east-war`` feed tag (95).
    """
    text = f"{title} {description or ''}"
    scores: Dict[str, int] = {}
    for slug, patterns in WAR_TAG_PATTERNS.items():
        matched = match_keywords(text, patterns)
        if not matched:
            continue
        score = sum(25 if contains(title, p) else 15 for p in matched)
        score += min(len(matched) * 10, 50)
        if score >= _MIN_TAG_SCORE:
            scores[slug] = min(score, 100)
    scores.setdefault(WAR_FEED_TAG, _WAR_FEED_TAG_SCORE)

    ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)[:_WAR_MAX_TAGS]
    return dict(ranked)


# ── Batch passes ──

@dataclass(frozen=True)
class TagTables:
    articles: str
    tags: str
    assignments: str


NEWS_TABLES = TagTables(ARTICLES_TABLE, TAGS_TABLE, ASSIGNMENTS_TABLE)
WAR_TABLES = TagTables(WAR_ARTICLES_TABLE, WAR_TAGS_TABLE, WAR_ASSIGNMENTS_TABLE)

ArticleAnalyzer = Callable[[Dict], Dict[str, int]]


def _analyze_news_article(article: Dict) -> Dict[str, int]:
    return analyze_article_for_tags(
        article.get("title") or "",
        article.get("description"),
        article.get("category") or "",
        article.get("region") or "",
    )


def _analyze_war_article(article: Dict) -> Dict[str, int]:
    return analyze_war_article_for_tags(article.get("title") or "", article.get("description"))


def _tagged_article_ids(store: RecordStore, table: str) -> List[str]:
    rows = store.select(table).execute()
    return sorted({str(r["article_id"]) for r in rows})


def _run_tagging(
    store: RecordStore,
    tables: TagTables,
    analyze: ArticleAnalyzer,
    noun: str,
    limit: int,
    force: bool,
) -> Dict[str, object]:
    query = store.select(tables.articles).order("created_at", descending=True).limit(limit)
    if not force:
        tagged = _tagged_article_ids(store, tables.assignments)
        if tagged:
            query = query.filter("id", "not_in", tagged)
    articles = query.execute()

    if not articles:
        return {"success": True, "message": f"No {noun} need tagging", "tagged": 0, "processed": 0}

    tag_ids = {
        t["slug"]: t["id"]
        for t in store.select(tables.tags).filter("is_active", "eq", True).execute()
    }

    tagged_count = 0
    errors: List[str] = []
    for article in articles:
        try:
            if force:
                store.delete(tables.assignments, [("article_id", "eq", article["id"])])
            assignments = [
                {"article_id": article["id"], "tag_id": tag_ids[slug], "relevance_score": score}
                for slug, score in analyze(article).items()
                if slug in tag_ids
            ]
            if assignments:
                store.insert(tables.assignments, assignments)
                tagged_count += 1
        except UpstreamFetchError as exc:
            log.error("Error tagging article %s: %s", article.get("id"), exc)
            errors.append(f"Article {article.get('title')}: {exc}")

    log.info("Tagged %d of %d %s", tagged_count, len(articles), noun)
    result: Dict[str, object] = {
        "success": True,
        "message": f"Tagged {tagged_count} {noun} out of {len(articles)} processed",
        "tagged": tagged_count,
        "processed": len(articles),
    }
    if errors:
        result["errors"] = errors[:_MAX_ERRORS]
    return result


def run_tagging(store: RecordStore, limit: int = 100, force: bool = False) -> Dict[str, object]:
    """Tag recent articles. Without ``force`` only untagged articles are touched."""
    return _run_tagging(store, NEWS_TABLES, _analyze_news_article, "articles", limit, force)


def run_war_tagging(store: RecordStore, limit: int = 100, force: bool = False) -> Dict[str, object]:
    """Tag recent Middle East war articles with the war-feed vocabulary."""
    return _run_tagging(store, WAR_TABLES, _analyze_war_article, "Middle East war articles", limit, force)
