"""Feed ranking and pagination.

``load_page`` serves stateless page requests: every page ranks the same
fixed candidate window (``fetch_cap`` rows), so pages over an unchanged
store are disjoint and complete. ``FeedSession`` is the infinite-scroll
reader: its window grows with the page index and it remembers delivered
ids, so late arrivals are served once without repeating earlier items.
"""

import functools
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

from .dedup import deduplicate
from .models import Article, FeedContext, Page, ScoredArticle
from .relevance import BANGLADESH_PROFILE, WAR_PRIORITY_KEYWORDS, load_articles, score_batch
from .store import RecordStore

log = logging.getLogger(__name__)

ARTICLES_TABLE = "news_articles"
ALL_CATEGORIES = "Today"
_TIER_ORDER = {"tier1": 0, "tier2": 1, "tier3": 2}

FEEDS: Dict[str, Dict[str, object]] = {
    "news": {
        "table": ARTICLES_TABLE,
        "tag_relation": "article_tag_assignments(relevance_score,article_tags(slug))",
    },
    "bangladesh": {
        "table": ARTICLES_TABLE,
        "tag_relation": "article_tag_assignments(relevance_score,article_tags(slug))",
        "region_profile": BANGLADESH_PROFILE,
        "relevant_categories": BANGLADESH_PROFILE.relevant_categories,
    },
    "middle-east-war": {
        "table": "middleeastwararticles",
        "tag_relation": "middleeastwar_tag_assignments(relevance_score,middleeastwartagtable(slug))",
        "topic_keywords": WAR_PRIORITY_KEYWORDS,
        "decay_rate": 10.0,
        "overfetch": 200,
        "fetch_cap": 600,
    },
}


def feed_context(name: str = "news", **overrides) -> FeedContext:
    """Scoring knobs for a named feed, with per-request filters layered on top."""
    try:
        preset = FEEDS[name]
    except KeyError:
        raise ValueError(f"Unknown feed: {name!r} (expected one of {', '.join(FEEDS)})") from None
    return FeedContext(**{**preset, **overrides})


def _compare(a: ScoredArticle, b: ScoredArticle, noise_threshold: int) -> int:
    tier_a = _TIER_ORDER.get(a.source_tier, 2)
    tier_b = _TIER_ORDER.get(b.source_tier, 2)
    if tier_a != tier_b:
        return tier_a - tier_b

    # Secondary relevance only decides when the gap is above the noise floor.
    # Not transitive: secondary 0, 8 and 16 at equal priority give 16 > 0 while
    # both sit level with 8. Such groups come out in the order the merge sort
    # visits them, which is fixed for a given input order.
    if a.secondary_score is not None and b.secondary_score is not None:
        gap = b.secondary_score - a.secondary_score
        if abs(gap) > noise_threshold:
            return gap

    if a.priority_score != b.priority_score:
        return b.priority_score - a.priority_score

    ta, tb = a.article.published, b.article.published
    if ta != tb:
        return -1 if ta > tb else 1
    return 0


def rank(articles: List[Article], context: FeedContext, now: datetime) -> List[ScoredArticle]:
    """Score and order a candidate set. Stable: full ties keep input order."""
    unique = deduplicate(articles, by_url=False)
    scored = score_batch(unique, context, now)
    key = functools.cmp_to_key(lambda a, b: _compare(a, b, context.noise_threshold))
    return sorted(scored, key=key)


def paginate(ordered: List[ScoredArticle], page_size: int, page_index: int) -> Page:
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    if page_index < 0:
        raise ValueError("page_index must be >= 0")
    start = page_index * page_size
    end = start + page_size
    return Page(
        items=ordered[start:end],
        has_more=end < len(ordered),
        total=len(ordered),
        page_index=page_index,
    )


def fetch_limit(page_index: int, page_size: int, overfetch: int = 100, cap: int = 300) -> int:
    return min((page_index + 1) * page_size + overfetch, cap)


def fetch_candidates(store: RecordStore, context: FeedContext, limit: int) -> List[Article]:
    query = store.select(context.table).order("published_date", descending=True).limit(limit)
    if context.tag_relation:
        query = query.embed(context.tag_relation)
    if context.category and context.category != ALL_CATEGORIES:
        query = query.filter("category", "eq", context.category.lower())
    if context.region:
        query = query.filter("region", "eq", context.region.lower())
    if context.search:
        query = query.search(("title", "description"), context.search)
    return deduplicate(load_articles(query.execute()))


def load_page(
    store: RecordStore,
    context: FeedContext,
    page_index: int,
    page_size: int,
    now: Optional[datetime] = None,
) -> Page:
    now = now or datetime.now(timezone.utc)
    candidates = fetch_candidates(store, context, context.fetch_cap)
    page = paginate(rank(candidates, context, now), page_size, page_index)
    log.info(
        "Feed page %d: %d items from %d candidates (limit %d)",
        page_index, len(page.items), len(candidates), context.fetch_cap,
    )
    return page


class FeedSession:
    """Infinite-scroll reader that never serves the same article id twice."""

    def __init__(
        self,
        store: RecordStore,
        context: FeedContext,
        page_size: int = 10,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.store = store
        self.context = context
        self.page_size = page_size
        self.clock = clock
        self.page_index = 0
        self._delivered: Set[str] = set()

    @property
    def delivered(self) -> Set[str]:
        return set(self._delivered)

    def reset(self) -> None:
        self.page_index = 0
        self._delivered.clear()

    def load_more(self) -> Page:
        limit = fetch_limit(self.page_index, self.page_size, self.context.overfetch, self.context.fetch_cap)
        ranked = rank(fetch_candidates(self.store, self.context, limit), self.context, self.clock())
        fresh = [s for s in ranked if s.id not in self._delivered]
        items = fresh[:self.page_size]
        self._delivered.update(s.id for s in items)

        window_full = len(ranked) >= limit and limit < self.context.fetch_cap
        page = Page(
            items=items,
            has_more=len(fresh) > len(items) or window_full,
            total=len(ranked),
            page_index=self.page_index,
        )
        self.page_index += 1
        return page
