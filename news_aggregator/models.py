from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence


_REQUIRED_FIELDS = ("id", "title", "published_date", "source")


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


@dataclass
class TagAssignment:
    slug: str
    relevance_score: int = 50


def _embedded_tags(record: Dict[str, Any]) -> List[TagAssignment]:
    """Tags from an embedded ``*_tag_assignments(relevance_score, <tags>(slug))`` relation."""
    tags = []
    for key, assignments in record.items():
        if not key.endswith("_tag_assignments") or not isinstance(assignments, list):
            continue
        for a in assignments:
            if not isinstance(a, dict):
                continue
            tag = next((v for v in a.values() if isinstance(v, dict) and v.get("slug")), None)
            if tag is not None:
                tags.append(TagAssignment(tag["slug"], int(a.get("relevance_score") or 50)))
    return tags


@dataclass
class Article:
    id: str
    title: str
    published: datetime
    source: str
    url: str = ""
    description: Optional[str] = None
    full_text: Optional[str] = None
    image_url: Optional[str] = None
    category: str = "general"
    region: str = ""
    tags: List[TagAssignment] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Article":
        """Build an Article from a store row; raises ValueError when malformed."""
        missing = [k for k in _REQUIRED_FIELDS if not record.get(k)]
        if missing:
            raise ValueError(f"Article record missing fields: {', '.join(missing)}")
        try:
            published = parse_timestamp(record["published_date"])
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Bad published_date {record['published_date']!r}") from exc

        tags = []
        for t in record.get("tags") or []:
            if isinstance(t, TagAssignment):
                tags.append(t)
            elif isinstance(t, dict) and t.get("slug"):
                tags.append(TagAssignment(t["slug"], int(t.get("relevance_score", 50))))
        tags.extend(_embedded_tags(record))

        return cls(
            id=str(record["id"]),
            title=str(record["title"]),
            published=published,
            source=str(record["source"]),
            url=record.get("article_url") or record.get("url") or "",
            description=record.get("description"),
            full_text=record.get("full_text"),
            image_url=record.get("image_url"),
            category=record.get("category") or "general",
            region=record.get("region") or "",
            tags=tags,
        )

    @property
    def text(self) -> str:
        return f"{self.title} {self.description or ''}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "url": self.url,
            "image_url": self.image_url,
            "source": self.source,
            "category": self.category,
            "region": self.region,
            "published_date": format_timestamp(self.published),
            "tags": [asdict(t) for t in self.tags],
        }


@dataclass(frozen=True)
class SourcePriority:
    source: str
    tier: str  # "tier1" | "tier2" | "tier3"
    priority: int


@dataclass
class ScoredArticle:
    article: Article
    priority_score: int
    source_tier: str
    secondary_score: Optional[int] = None

    @property
    def id(self) -> str:
        return self.article.id

    def to_dict(self) -> Dict[str, Any]:
        data = self.article.to_dict()
        data["priority_score"] = self.priority_score
        data["source_tier"] = self.source_tier
        if self.secondary_score is not None:
            data["secondary_score"] = self.secondary_score
        return data


@dataclass
class Page:
    items: List[ScoredArticle]
    has_more: bool
    total: int
    page_index: int = 0


@dataclass
class FeedContext:
    """Per-feed scoring knobs. Defaults describe the general news feed."""
    topic_keywords: Sequence[str] = ()
    relevant_categories: Sequence[str] = ()
    decay_rate: float = 5.0
    category: Optional[str] = None
    region: Optional[str] = None
    search: Optional[str] = None
    region_profile: Optional[Any] = None  # relevance.RegionProfile
    noise_threshold: int = 10
    overfetch: int = 100
    fetch_cap: int = 300
    table: str = "news_articles"
    tag_relation: Optional[str] = None

    def __post_init__(self):
        if not 3 <= self.decay_rate <= 10:
            raise ValueError(f"decay_rate must be within 3..10, got {self.decay_rate}")


# ── Breaking news ──

@dataclass
class RawItem:
    title: str
    link: str
    description: str = ""
    pub_date: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class BreakingNewsSource:
    id: str
    name: str
    rss_url: str
    credibility_score: int = 50
    priority_weight: int = 1
    keywords_filter: List[str] = field(default_factory=list)
    is_active: bool = True
    success_rate: Optional[float] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "BreakingNewsSource":
        return cls(
            id=str(record["id"]),
            name=record["name"],
            rss_url=record["rss_url"],
            credibility_score=int(record.get("credibility_score") or 50),
            priority_weight=int(record.get("priority_weight") or 1),
            keywords_filter=list(record.get("keywords_filter") or []),
            is_active=bool(record.get("is_active", True)),
            success_rate=record.get("success_rate"),
        )


@dataclass
class BreakingNewsItem:
    title: str
    url: str
    source: str
    priority_level: str
    urgency_score: int
    published: datetime
    detected_at: datetime
    expires_at: datetime
    description: str = ""
    full_text: str = ""
    image_url: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    is_active: bool = True
    id: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "full_text": self.full_text,
            "article_url": self.url,
            "image_url": self.image_url,
            "source": self.source,
            "priority_level": self.priority_level,
            "urgency_score": self.urgency_score,
            "keywords": list(self.keywords),
            "is_active": self.is_active,
            "published_date": format_timestamp(self.published),
            "detected_at": format_timestamp(self.detected_at),
            "expires_at": format_timestamp(self.expires_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "BreakingNewsItem":
        detected = parse_timestamp(record["detected_at"])
        return cls(
            id=str(record["id"]) if record.get("id") is not None else None,
            title=record["title"],
            url=record["article_url"],
            source=record["source"],
            priority_level=record.get("priority_level") or "medium",
            urgency_score=int(record.get("urgency_score") or 0),
            published=parse_timestamp(record.get("published_date") or detected),
            detected_at=detected,
            expires_at=parse_timestamp(record["expires_at"]),
            description=record.get("description") or "",
            full_text=record.get("full_text") or "",
            image_url=record.get("image_url"),
            keywords=list(record.get("keywords") or []),
            is_active=bool(record.get("is_active", True)),
        )


# ── Recommendations ──

@dataclass
class UserPreference:
    article_id: str
    title: str
    category: str
    source: str
    region: str
    keywords: List[str]
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserPreference":
        return cls(
            article_id=str(data["article_id"]),
            title=data.get("title", ""),
            category=data.get("category", ""),
            source=data.get("source", ""),
            region=data.get("region", ""),
            keywords=list(data.get("keywords") or []),
            timestamp=float(data.get("timestamp", 0)),
        )


@dataclass
class Recommendation:
    article: Article
    score: int
    reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = self.article.to_dict()
        data["recommendationScore"] = self.score
        data["reasons"] = list(self.reasons)
        return data


@dataclass
class RecommendationResponse:
    recommendations: List[Recommendation]
    timestamp: float
    cache_status: str  # "hit" | "miss" | "expired"
    last_update: float
    error: Optional[str] = None

    @property
    def has_recommendations(self) -> bool:
        return len(self.recommendations) > 0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "hasRecommendations": self.has_recommendations,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "timestamp": self.timestamp,
            "cacheStatus": self.cache_status,
            "lastUpdate": self.last_update,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class CacheEntry:
    data: List[Recommendation]
    timestamp: float
    expires_at: float
    category: str
    exclude_ids: List[str]
