"""Breaking-news monitor — one pass over every active source feed."""

import json
import logging
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .breaking import (
    ALERTS_TABLE,
    TABLE,
    UrgencyScorer,
    classify,
    expire_old_breaking_news,
    store_urgency_scorer,
)
from .models import BreakingNewsSource, RawItem, format_timestamp
from .store import RecordStore, UpstreamFetchError

log = logging.getLogger(__name__)

SOURCES_TABLE = "breaking_news_sources"
_MAX_ERRORS = 5

FeedFetcher = Callable[[str], List[RawItem]]

_LOG_LOCK = threading.Lock()


def _run_log_path() -> Path:
    try:
        from .config import get_settings
        return get_settings().logs_dir / f"monitor-{date.today().isoformat()}.jsonl"
    except RuntimeError:
        return Path("/tmp") / "logs" / f"monitor-{date.today().isoformat()}.jsonl"


def _log_skipped(reason: str, url: str, log_file: Path) -> None:
    """Best-effort run log — silently skip on read-only filesystems (Vercel)."""
    line = json.dumps({"reason": reason, "url": url}) + "\n"
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with _LOG_LOCK:
            with log_file.open("a", encoding="utf-8") as f:
                f.write(line)
    except OSError:
        try:
            tmp_log = Path("/tmp") / "logs" / log_file.name
            tmp_log.parent.mkdir(parents=True, exist_ok=True)
            with _LOG_LOCK:
                with tmp_log.open("a", encoding="utf-8") as f:
                    f.write(line)
        except OSError:
            pass


def _already_stored(store: RecordStore, url: str) -> bool:
    return store.select(TABLE).filter("article_url", "eq", url).count() > 0


def _monitor_source(
    store: RecordStore,
    source: BreakingNewsSource,
    fetch: FeedFetcher,
    scorer: UrgencyScorer,
    now: datetime,
    log_file: Path,
) -> Dict[str, object]:
    items = fetch(source.rss_url)
    found = 0
    errors: List[str] = []
    for item in items:
        if not item.title or not item.link:
            _log_skipped("missing_title_or_link", item.link, log_file)
            continue
        try:
            breaking = classify(item, source, scorer, now)
            if breaking is None:
                continue
            if _already_stored(store, breaking.url):
                _log_skipped("duplicate_url", breaking.url, log_file)
                continue
            inserted = store.insert(TABLE, [breaking.to_record()])
            found += 1
            log.info(
                "BREAKING NEWS DETECTED: %s (priority %s, score %d)",
                breaking.title, breaking.priority_level, breaking.urgency_score,
            )
            store.insert(ALERTS_TABLE, [{
                "breaking_news_id": inserted[0].get("id") if inserted else None,
                "alert_type": "new",
                "alert_message": f"Breaking: {breaking.title}",
                "severity": breaking.priority_level,
            }])
        except UpstreamFetchError as exc:
            errors.append(f"{source.name}: {exc}")
            _log_skipped(f"insert_failed_{type(exc).__name__}", item.link, log_file)

    processed = len(items)
    success_rate = 1.0 if not errors else max(0.0, 1.0 - len(errors) / max(processed, 1))
    store.update(
        SOURCES_TABLE,
        {"last_checked": format_timestamp(now), "success_rate": success_rate},
        [("id", "eq", source.id)],
    )
    return {"found": found, "processed": processed, "errors": errors}


def run_monitor(
    store: RecordStore,
    fetch: Optional[FeedFetcher] = None,
    urgency_scorer: Optional[UrgencyScorer] = None,
    now: Optional[datetime] = None,
    log_file: Optional[Path] = None,
) -> Dict[str, object]:
    """Poll all active sources, store new breaking items, then expire stale ones.

    Safe to repeat: items already stored (by article URL) are skipped.
    """
    now = now or datetime.now(timezone.utc)
    log_file = log_file or _run_log_path()
    if fetch is None:
        from .feeds import fetch_feed
        fetch = fetch_feed
    scorer = urgency_scorer or store_urgency_scorer(store)

    try:
        rows = (
            store.select(SOURCES_TABLE)
            .filter("is_active", "eq", True)
            .order("priority_weight", descending=True)
            .execute()
        )
    except UpstreamFetchError as exc:
        log.error("Breaking news monitor failed: %s", exc)
        return {"success": False, "error": str(exc), "timestamp": format_timestamp(now)}

    if not rows:
        return {
            "success": True,
            "message": "No active sources to monitor",
            "sourcesMonitored": 0,
            "breakingNewsFound": 0,
            "totalProcessed": 0,
            "timestamp": format_timestamp(now),
        }

    total_found = 0
    total_processed = 0
    errors: List[str] = []
    for row in rows:
        source = BreakingNewsSource.from_record(row)
        log.info("Monitoring breaking news from: %s", source.name)
        try:
            result = _monitor_source(store, source, fetch, scorer, now, log_file)
        except UpstreamFetchError as exc:
            errors.append(f"Error monitoring {source.name}: {exc}")
            _log_skipped(f"source_failed_{source.name}", source.rss_url, log_file)
            continue
        total_found += result["found"]
        total_processed += result["processed"]
        errors.extend(result["errors"])

    try:
        expire_old_breaking_news(store, now)
    except UpstreamFetchError as exc:
        errors.append(f"Expiry sweep failed: {exc}")

    response: Dict[str, object] = {
        "success": True,
        "message": (
            f"Monitored {len(rows)} sources, found {total_found} breaking news items "
            f"out of {total_processed} articles processed"
        ),
        "breakingNewsFound": total_found,
        "sourcesMonitored": len(rows),
        "totalProcessed": total_processed,
        "timestamp": format_timestamp(now),
    }
    if errors:
        response["errors"] = errors[:_MAX_ERRORS]
    return response
