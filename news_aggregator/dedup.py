"""Deduplication — drops repeated articles by id and by canonical URL."""

import logging
from typing import List, Set
from urllib.parse import urlparse, urlunparse

from .models import Article

log = logging.getLogger(__name__)


def canonical_url(url: str) -> str:
    """Lower-case host, drop query/fragment, www. prefix and trailing slash."""
    if not url:
        return ""
    parts = urlparse(url.strip())
    host = (parts.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    path = parts.path.rstrip("/")
    return urlunparse((parts.scheme.lower() or "https", host, path, "", "", ""))


def deduplicate(articles: List[Article], by_url: bool = True) -> List[Article]:
    """Keep the first occurrence of every id (and canonical URL), preserving order."""
    if len(articles) <= 1:
        return list(articles)

    seen_ids: Set[str] = set()
    seen_urls: Set[str] = set()
    result: List[Article] = []
    for article in articles:
        url = canonical_url(article.url) if by_url else ""
        if article.id in seen_ids or (url and url in seen_urls):
            log.debug("Dedup: dropped %s (%s)", article.id, article.title)
            continue
        seen_ids.add(article.id)
        if url:
            seen_urls.add(url)
        result.append(article)

    if len(result) != len(articles):
        log.info("Deduplicated %d → %d articles", len(articles), len(result))
    return result
