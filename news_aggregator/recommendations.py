"""Preference-based recommendations with a TTL cache and request coalescing.

Concurrent callers asking for the same (category, excluded ids) share one
upstream fetch: the first caller claims the key and the rest wait on its
future. The cache check and the claim happen under one lock.
"""

import concurrent.futures
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .models import CacheEntry, Recommendation, RecommendationResponse
from .preferences import PreferenceProfile, UserPreferences
from .relevance import load_articles
from .store import RecordStore

log = logging.getLogger(__name__)

ARTICLES_TABLE = "news_articles"
DEFAULT_CATEGORY = "Today"
TIMEOUT_MESSAGE = "Request timeout - recommendations unavailable"
CANCELLED_MESSAGE = "Request superseded"

_CACHE_TTL = 5 * 60
_CACHE_MAX_SIZE = 50
_MIN_SCORE = 15
_BATCH_SIZE = 100
_TIMEOUT = 2.0
_POLL_INTERVAL = 0.05


class RecommendationTimeout(RuntimeError):
    pass


def cache_key(category: str, exclude_ids: Iterable[str] = ()) -> str:
    return f"{category}:{','.join(sorted(str(i) for i in exclude_ids))}"


@dataclass
class Claim:
    status: str  # "hit" | "pending" | "miss" | "expired"
    entry: Optional[CacheEntry] = None
    future: Optional[concurrent.futures.Future] = None
    owner: bool = False


class RecommendationCache:
    def __init__(
        self,
        ttl: float = _CACHE_TTL,
        max_size: int = _CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self.max_size = max_size
        self.clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._pending: Dict[str, concurrent.futures.Future] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        """Fresh entry or None. Expired entries are left for the next claim to replace."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at > self.clock():
                return entry
            return None

    def _put_locked(self, key: str, data: List[Recommendation], category: str, exclude_ids: Sequence[str]) -> CacheEntry:
        now = self.clock()
        entry = CacheEntry(
            data=list(data),
            timestamp=now,
            expires_at=now + self.ttl,
            category=category,
            exclude_ids=list(exclude_ids),
        )
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("Recommendation cache evicted %s", evicted)
        self._entries[key] = entry
        return entry

    def put(self, key: str, data: List[Recommendation], category: str, exclude_ids: Sequence[str] = ()) -> CacheEntry:
        with self._lock:
            return self._put_locked(key, data, category, exclude_ids)

    def claim(self, key: str, force_refresh: bool = False) -> Claim:
        """Atomically: join an in-flight fetch, serve a fresh entry, or register a new fetch."""
        with self._lock:
            pending = self._pending.get(key)
            if pending is not None:
                return Claim(status="pending", future=pending)

            entry = self._entries.get(key)
            fresh = entry is not None and entry.expires_at > self.clock()
            if fresh and not force_refresh:
                return Claim(status="hit", entry=entry)

            future: concurrent.futures.Future = concurrent.futures.Future()
            self._pending[key] = future
            return Claim(status="expired" if entry is not None else "miss", future=future, owner=True)

    def complete(self, key: str, future: concurrent.futures.Future, data: List[Recommendation],
                 category: str, exclude_ids: Sequence[str]) -> None:
        with self._lock:
            self._put_locked(key, data, category, exclude_ids)
            if self._pending.get(key) is future:
                del self._pending[key]

    def release(self, key: str, future: concurrent.futures.Future) -> None:
        with self._lock:
            if self._pending.get(key) is future:
                del self._pending[key]

    def invalidate(self, category: Optional[str] = None) -> int:
        with self._lock:
            if category is None:
                count = len(self._entries)
                self._entries.clear()
                return count
            stale = [k for k, e in self._entries.items() if e.category == category]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def stats(self) -> Dict[str, object]:
        with self._lock:
            return {"size": len(self._entries), "keys": list(self._entries.keys())}


class RecommendationEngine:
    def __init__(
        self,
        store: RecordStore,
        preferences: UserPreferences,
        cache: Optional[RecommendationCache] = None,
        min_score: int = _MIN_SCORE,
        timeout: float = _TIMEOUT,
        batch_size: int = _BATCH_SIZE,
        max_workers: int = 4,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.preferences = preferences
        self.cache = cache or RecommendationCache(clock=clock)
        self.min_score = min_score
        self.timeout = timeout
        self.batch_size = batch_size
        self.clock = clock
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="recommend",
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── Upstream work ──

    def _fetch_candidates(self, category: str, exclude_ids: Sequence[str]):
        query = (
            self.store.select(ARTICLES_TABLE)
            .order("published_date", descending=True)
            .limit(self.batch_size)
        )
        if category != DEFAULT_CATEGORY:
            query = query.filter("category", "eq", category.lower())
        if exclude_ids:
            query = query.filter("id", "not_in", list(exclude_ids))
        return load_articles(query.execute())

    def score_candidates(self, articles, profile: PreferenceProfile) -> List[Recommendation]:
        now = datetime.fromtimestamp(self.clock(), timezone.utc)
        recs = []
        for article in articles:
            score, reasons = profile.score(article, now)
            if score >= self.min_score:
                recs.append(Recommendation(article=article, score=score, reasons=reasons))
        recs.sort(key=lambda r: r.score, reverse=True)
        return recs

    def _compute(self, key: str, category: str, exclude_ids: Sequence[str],
                 profile: PreferenceProfile, abort: threading.Event,
                 future: concurrent.futures.Future) -> None:
        try:
            articles = self._fetch_candidates(category, exclude_ids)
            if abort.is_set():
                raise RecommendationTimeout(TIMEOUT_MESSAGE)
            recs = self.score_candidates(articles, profile)
            if abort.is_set():
                raise RecommendationTimeout(TIMEOUT_MESSAGE)
            self.cache.complete(key, future, recs, category, exclude_ids)
            future.set_result(recs)
        except Exception as exc:
            self.cache.release(key, future)
            future.set_exception(exc)

    # ── Public API ──

    def get_recommendations(
        self,
        category: str = DEFAULT_CATEGORY,
        exclude_ids: Iterable[str] = (),
        limit: int = 3,
        force_refresh: bool = False,
        cancel: Optional[threading.Event] = None,
    ) -> RecommendationResponse:
        now = self.clock()
        profile = self.preferences.profile()
        if not profile.size:
            return RecommendationResponse([], timestamp=now, cache_status="miss", last_update=now)

        exclude = sorted({str(i) for i in exclude_ids})
        key = cache_key(category, exclude)
        claim = self.cache.claim(key, force_refresh)
        if claim.entry is not None:
            return RecommendationResponse(
                claim.entry.data[:limit], timestamp=now, cache_status="hit",
                last_update=claim.entry.timestamp,
            )

        status = "miss" if claim.status == "pending" else claim.status
        abort = threading.Event()
        if claim.owner:
            self._executor.submit(self._compute, key, category, exclude, profile, abort, claim.future)

        deadline = time.monotonic() + self.timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                abort.set()
                log.warning("Recommendations for %s timed out after %.1fs", key, self.timeout)
                return self._error(now, status, TIMEOUT_MESSAGE)
            if cancel is not None and cancel.is_set():
                return self._error(now, status, CANCELLED_MESSAGE)
            try:
                recs = claim.future.result(timeout=min(_POLL_INTERVAL, remaining))
                break
            except concurrent.futures.TimeoutError:
                continue
            except Exception as exc:
                log.warning("Recommendations for %s failed: %s", key, exc)
                return self._error(now, status, str(exc) or type(exc).__name__)

        return RecommendationResponse(
            recs[:limit], timestamp=now, cache_status=status, last_update=self.clock(),
        )

    def _error(self, now: float, status: str, message: str) -> RecommendationResponse:
        return RecommendationResponse([], timestamp=now, cache_status=status, last_update=now, error=message)

    def invalidate_cache(self, category: Optional[str] = None) -> int:
        return self.cache.invalidate(category)

    def cache_stats(self) -> Dict[str, object]:
        return self.cache.stats()

    def batch_update(self, categories: Iterable[str]) -> Dict[str, RecommendationResponse]:
        return {c: self.get_recommendations(c, force_refresh=True) for c in categories}


class RecommendationSession:
    """Last request wins: a newer request cancels and discards older ones."""

    def __init__(self, engine: RecommendationEngine):
        self.engine = engine
        self.latest: Optional[RecommendationResponse] = None
        self._lock = threading.Lock()
        self._generation = 0
        self._cancel: Optional[threading.Event] = None

    def request(self, **kwargs) -> Optional[RecommendationResponse]:
        """Returns the response, or None when a newer request superseded this one."""
        with self._lock:
            self._generation += 1
            generation = self._generation
            if self._cancel is not None:
                self._cancel.set()
            cancel = self._cancel = threading.Event()

        response = self.engine.get_recommendations(cancel=cancel, **kwargs)

        with self._lock:
            if generation != self._generation:
                log.debug("Discarding superseded recommendation response")
                return None
            self.latest = response
            return response
