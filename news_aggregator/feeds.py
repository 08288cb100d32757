"""RSS/Atom fetching for the breaking-news monitor."""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import feedparser
import requests
from bs4 import BeautifulSoup

from .models import RawItem
from .store import UpstreamFetchError

log = logging.getLogger(__name__)

_TIMEOUT = 15
_HEADERS = {
    "User-Agent": "BreakingNewsMonitor/1.0",
    "Accept": "application/rss+xml, application/xml, text/xml",
}


def strip_html(html: Optional[str]) -> str:
    if not html:
        return ""
    if "<" not in html:
        return html.strip()
    return BeautifulSoup(html, "html.parser").get_text(" ", strip=True)


def _entry_date(entry) -> Optional[str]:
    published = entry.get("published_parsed") or entry.get("updated_parsed")
    if published:
        return datetime(*published[:6], tzinfo=timezone.utc).isoformat()
    return None


def _entry_image(entry) -> Optional[str]:
    for media in entry.get("media_content") or []:
        if media.get("url"):
            return media["url"]
    for enc in entry.get("enclosures") or []:
        if (enc.get("type") or "").startswith("image/") and enc.get("href"):
            return enc["href"]
    return None


def parse_feed(content: str) -> List[RawItem]:
    """Parse RSS/Atom text into RawItems. Entries without a title or link are dropped."""
    parsed = feedparser.parse(content)
    items: List[RawItem] = []
    for entry in parsed.entries:
        title = entry.get("title", "")
        link = entry.get("link", "")
        if not title or not link:
            continue
        items.append(RawItem(
            title=title,
            link=link,
            description=entry.get("summary", "") or entry.get("description", ""),
            pub_date=_entry_date(entry),
            image_url=_entry_image(entry),
        ))
    return items


def fetch_feed(url: str, timeout: int = _TIMEOUT) -> List[RawItem]:
    try:
        resp = requests.get(url, headers=_HEADERS, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise UpstreamFetchError(f"Feed fetch failed for {url}: {exc}") from exc

    if not resp.text or not resp.text.strip():
        raise UpstreamFetchError(f"Empty RSS feed content from {url}")

    items = parse_feed(resp.text)
    log.info("Parsed %d items from %s", len(items), url)
    return items
