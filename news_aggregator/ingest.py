"""Bangladesh priority fetch: pull Asia-region source feeds into news_articles."""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .feeds import strip_html
from .models import RawItem, format_timestamp, parse_timestamp
from .monitor import FeedFetcher
from .relevance import bangladesh_priority_relevance
from .store import RecordStore, UpstreamFetchError

log = logging.getLogger(__name__)

SOURCES_TABLE = "news_sources"
ARTICLES_TABLE = "news_articles"
_TEXT_MAX = 500


def _article_record(item: RawItem, source: Dict, relevance: int, now: datetime) -> Dict[str, object]:
    try:
        published = parse_timestamp(item.pub_date) if item.pub_date else now
    except ValueError:
        published = now
    description = strip_html(item.description)[:_TEXT_MAX] if item.description else None
    return {
        "title": strip_html(item.title)[:_TEXT_MAX],
        "description": description,
        "published_date": format_timestamp(published),
        "article_url": item.link,
        "image_url": item.image_url,
        "source": source["name"],
        "category": source.get("category") or "general",
        "region": "bangladesh" if relevance > 0 else (source.get("region") or ""),
        "source_id": source.get("id"),
    }


def _fetch_source(store: RecordStore, source: Dict, fetch: FeedFetcher, now: datetime) -> Dict[str, int]:
    items = fetch(source["rss_url"])
    log.info("Parsed %d items from %s", len(items), source["name"])
    added = 0
    related = 0
    for item in items:
        if not item.title or not item.link:
            continue
        if store.select(ARTICLES_TABLE).filter("article_url", "eq", item.link).count() > 0:
            continue
        relevance = bangladesh_priority_relevance(item.title, item.description)
        try:
            store.insert(ARTICLES_TABLE, [_article_record(item, source, relevance, now)])
        except UpstreamFetchError as exc:
            log.error("Error inserting article from %s: %s", source["name"], exc)
            continue
        added += 1
        if relevance > 0:
            related += 1

    store.update(SOURCES_TABLE, {"last_fetched": format_timestamp(now)}, [("id", "eq", source["id"])])
    return {"added": added, "related": related}


def run_bangladesh_fetch(
    store: RecordStore,
    fetch: Optional[FeedFetcher] = None,
    now: Optional[datetime] = None,
) -> Dict[str, object]:
    """Fetch every active Asia-region source. Bangladesh-related items are stored under region ``bangladesh``."""
    now = now or datetime.now(timezone.utc)
    if fetch is None:
        from .feeds import fetch_feed
        fetch = fetch_feed

    try:
        sources = (
            store.select(SOURCES_TABLE)
            .filter("active", "eq", True)
            .filter("region", "eq", "asia")
            .execute()
        )
    except UpstreamFetchError as exc:
        log.error("Bangladesh priority fetch failed: %s", exc)
        return {"success": False, "error": str(exc), "timestamp": format_timestamp(now)}

    if not sources:
        return {"success": True, "message": "No Bangladesh news sources found", "totalArticles": 0}

    total = 0
    related = 0
    errors: List[str] = []
    for source in sources:
        log.info("Fetching Bangladesh news from: %s", source["name"])
        try:
            result = _fetch_source(store, source, fetch, now)
        except UpstreamFetchError as exc:
            errors.append(f"Error fetching {source['name']}: {exc}")
            continue
        total += result["added"]
        related += result["related"]

    response: Dict[str, object] = {
        "success": True,
        "message": (
            f"Processed {len(sources)} Bangladesh sources, added {total} new articles "
            f"({related} Bangladesh-related)"
        ),
        "totalArticles": total,
        "bangladeshArticles": related,
        "sourcesProcessed": len(sources),
    }
    if errors:
        response["errors"] = errors
    return response
