"""Tests for the preference history and preference scoring."""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from news_aggregator.models import Article
from news_aggregator.preferences import (
    MAX_PREFERENCES,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    PreferenceProfile,
    UserPreferences,
    extract_keywords,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_article(id="1", title="Dhaka election results", category="politics",
                  source="Daily Star", region="bangladesh", days_ago=0, description=None):
    return Article(
        id=id, title=title, description=description, category=category,
        source=source, region=region, published=NOW - timedelta(days=days_ago),
    )


class _Clock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        self.now += 1
        return self.now


# ── Keyword extraction ──

def test_extract_keywords_drops_stopwords_and_short_words():
    assert extract_keywords("The Quick brown fox, jumps! over the fox") == [
        "quick", "brown", "fox", "jumps", "over",
    ]


def test_extract_keywords_limits_to_ten_before_dedupe():
    title = " ".join(f"word{i}" for i in range(15))
    assert len(extract_keywords(title)) == 10


def test_extract_keywords_includes_description():
    assert "parliament" in extract_keywords("Vote today", "Parliament session opens")


# ── History ──

def test_add_keeps_newest_first():
    prefs = UserPreferences(clock=_Clock())
    prefs.add(_make_article("1"))
    prefs.add(_make_article("2"))
    assert [p.article_id for p in prefs.all()] == ["2", "1"]


def test_re_adding_moves_entry_to_front_without_duplicates():
    prefs = UserPreferences(clock=_Clock())
    for i in ("1", "2", "3"):
        prefs.add(_make_article(i))
    prefs.add(_make_article("1"))
    assert [p.article_id for p in prefs.all()] == ["1", "3", "2"]


def test_history_is_capped():
    prefs = UserPreferences(clock=_Clock())
    for i in range(MAX_PREFERENCES + 5):
        prefs.add(_make_article(str(i)))
    entries = prefs.all()
    assert len(entries) == MAX_PREFERENCES
    assert entries[0].article_id == str(MAX_PREFERENCES + 4)
    assert not prefs.has("0")


def test_remove_and_clear():
    prefs = UserPreferences()
    prefs.add(_make_article("1"))
    prefs.add(_make_article("2"))
    prefs.remove("1")
    assert not prefs.has("1") and prefs.has("2")
    prefs.clear()
    assert len(prefs) == 0


def test_json_store_survives_restart(tmp_path):
    path = tmp_path / "prefs.json"
    UserPreferences(JsonFileKeyValueStore(path)).add(_make_article("42"))
    reloaded = UserPreferences(JsonFileKeyValueStore(path))
    assert reloaded.has("42")
    assert reloaded.all()[0].category == "politics"


def test_json_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text("{not json", encoding="utf-8")
    assert UserPreferences(JsonFileKeyValueStore(path)).all() == []


def test_concurrent_adds_are_all_kept(tmp_path):
    prefs = UserPreferences(JsonFileKeyValueStore(tmp_path / "prefs.json"))
    articles = [_make_article(str(i)) for i in range(8)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(prefs.add, articles))
    assert len(prefs) == 8
    assert {p.article_id for p in prefs.all()} == {str(i) for i in range(8)}


def test_in_memory_store_copies_values():
    store = InMemoryKeyValueStore()
    value = [{"a": 1}]
    store.set("k", value)
    value[0]["a"] = 2
    assert store.get("k") == [{"a": 1}]


# ── Scoring ──

def test_empty_profile_scores_zero():
    assert PreferenceProfile([]).score(_make_article(), NOW) == (0, [])


def test_score_components_and_reasons():
    prefs = UserPreferences(clock=_Clock())
    prefs.add(_make_article("1", title="Dhaka election results"))
    prefs.add(_make_article("2", title="Election commission meets"))

    candidate = _make_article("3", title="Election turnout", days_ago=0)
    score, reasons = prefs.profile().score(candidate, NOW)
    # category 2*10 + source 2*8 + keyword "election" 2*5 + recent 5 + region 2*3
    assert score == 57
    assert reasons == [
        "Matches preferred category: politics",
        "From preferred source: Daily Star",
        "Contains preferred keywords: election",
        "Recent article",
        "From preferred region: bangladesh",
    ]


def test_old_unrelated_article_scores_zero():
    prefs = UserPreferences()
    prefs.add(_make_article("1"))
    candidate = _make_article("9", title="Snow storm", category="weather", source="Other", region="europe", days_ago=3)
    assert prefs.profile().score(candidate, NOW) == (0, [])
