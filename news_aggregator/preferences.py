"""User preference history — liked articles, kept newest first, persisted as JSON."""

import json
import logging
import re
import threading
import time
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .models import Article, UserPreference

log = logging.getLogger(__name__)

MAX_PREFERENCES = 100
_STORAGE_KEY = "user_preferences"
_MAX_KEYWORDS = 10

_STOPWORDS = frozenset((
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "may", "might", "can", "must", "shall",
    "this", "that", "these", "those", "i", "you", "he", "she", "it", "we", "they",
    "me", "him", "her", "us", "them", "my", "your", "his", "its", "our", "their",
))


def _default_path() -> Path:
    """Preferences file — tries project logs first, falls back to /tmp."""
    try:
        from .config import get_settings
        settings = get_settings()
        p = settings.preferences_path or settings.logs_dir / "preferences.json"
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    except (RuntimeError, OSError):
        p = Path("/tmp") / "logs" / "preferences.json"
        p.parent.mkdir(parents=True, exist_ok=True)
        return p


class InMemoryKeyValueStore:
    def __init__(self):
        self._data: Dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.loads(json.dumps(value))

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """Whole-file JSON document; survives restarts. Write failures are logged, not raised."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else _default_path()
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Any]:
        try:
            if self.path.exists():
                data = json.loads(self.path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    return data
        except (OSError, ValueError) as exc:
            log.warning("Could not read preferences from %s: %s", self.path, exc)
        return {}

    def _save(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError:
            log.warning("Could not write preferences to %s", self.path)

    def get(self, key: str) -> Any:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._save(data)


def extract_keywords(title: str, description: Optional[str] = None) -> List[str]:
    text = f"{title} {description or ''}".lower()
    words = [
        w for w in re.sub(r"[^\w\s]", " ", text).split()
        if len(w) > 2 and w not in _STOPWORDS
    ][:_MAX_KEYWORDS]
    return list(dict.fromkeys(words))


class UserPreferences:
    def __init__(self, store=None, clock: Callable[[], float] = time.time):
        self.store = store if store is not None else InMemoryKeyValueStore()
        self.clock = clock
        # Serialises read-modify-write updates to the history.
        self._lock = threading.Lock()

    def all(self) -> List[UserPreference]:
        raw = self.store.get(_STORAGE_KEY) or []
        prefs = []
        for entry in raw:
            try:
                prefs.append(UserPreference.from_dict(entry))
            except (KeyError, TypeError, ValueError):
                log.warning("Dropping unreadable preference entry: %r", entry)
        return prefs

    def _write(self, prefs: List[UserPreference]) -> None:
        self.store.set(_STORAGE_KEY, [p.to_dict() for p in prefs])

    def __len__(self) -> int:
        return len(self.all())

    def add(self, article: Article) -> UserPreference:
        pref = UserPreference(
            article_id=article.id,
            title=article.title,
            category=article.category,
            source=article.source,
            region=article.region,
            keywords=extract_keywords(article.title, article.description),
            timestamp=self.clock(),
        )
        with self._lock:
            prefs = [p for p in self.all() if p.article_id != article.id]
            prefs.insert(0, pref)
            self._write(prefs[:MAX_PREFERENCES])
        return pref

    def remove(self, article_id: str) -> None:
        with self._lock:
            self._write([p for p in self.all() if p.article_id != article_id])

    def has(self, article_id: str) -> bool:
        return any(p.article_id == article_id for p in self.all())

    def clear(self) -> None:
        self.store.remove(_STORAGE_KEY)

    def profile(self) -> "PreferenceProfile":
        return PreferenceProfile(self.all())


class PreferenceProfile:
    """Frequency tables over a snapshot of the preference history."""

    def __init__(self, prefs: List[UserPreference]):
        self.size = len(prefs)
        self.categories = Counter(p.category for p in prefs)
        self.sources = Counter(p.source for p in prefs)
        self.regions = Counter(p.region for p in prefs)
        self.keywords = Counter(k for p in prefs for k in p.keywords)

    def score(self, article: Article, now: Optional[datetime] = None) -> Tuple[int, List[str]]:
        if not self.size:
            return 0, []
        now = now or datetime.now(timezone.utc)
        score = 0
        reasons: List[str] = []

        category_score = self.categories.get(article.category, 0) * 10
        if category_score:
            score += category_score
            reasons.append(f"Matches preferred category: {article.category}")

        source_score = self.sources.get(article.source, 0) * 8
        if source_score:
            score += source_score
            reasons.append(f"From preferred source: {article.source}")

        matched = [k for k in extract_keywords(article.title, article.description) if self.keywords.get(k)]
        if matched:
            score += sum(self.keywords[k] * 5 for k in matched)
            reasons.append(f"Contains preferred keywords: {', '.join(matched)}")

        if (now - article.published).total_seconds() < 86400:
            score += 5
            reasons.append("Recent article")

        region_score = self.regions.get(article.region, 0) * 3
        if region_score:
            score += region_score
            reasons.append(f"From preferred region: {article.region}")

        return int(round(score)), reasons
