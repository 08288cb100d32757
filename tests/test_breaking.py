"""Tests for breaking-news qualification, urgency, display admission and expiry."""

from datetime import datetime, timedelta, timezone

from news_aggregator.breaking import (
    TABLE,
    active_breaking_news,
    admit_for_display,
    classify,
    expire_old_breaking_news,
    extract_keywords,
    heuristic_urgency_score,
    is_breaking,
    priority_level,
    rank_alerts,
    store_urgency_scorer,
)
from news_aggregator.models import BreakingNewsItem, BreakingNewsSource, RawItem
from news_aggregator.store import InMemoryRecordStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_source(name="Wire", keywords=None, credibility=80):
    return BreakingNewsSource(
        id="s1", name=name, rss_url="https://example.com/rss",
        credibility_score=credibility, keywords_filter=keywords or [],
    )


def _make_item(urgency=50, source="Reuters", level=None, detected_hours_ago=0, url="https://example.com/a"):
    detected = NOW - timedelta(hours=detected_hours_ago)
    return BreakingNewsItem(
        title="Breaking: explosion reported",
        url=url,
        source=source,
        priority_level=level or priority_level(urgency),
        urgency_score=urgency,
        published=detected,
        detected_at=detected,
        expires_at=detected + timedelta(hours=24),
    )


# ── Qualification ──

def test_is_breaking_requires_breaking_and_conflict_terms():
    assert is_breaking("Breaking: missile strike near Tehran")
    assert not is_breaking("Breaking: stocks rally on earnings")
    assert not is_breaking("Tehran weather this week")


def test_is_breaking_accepts_source_filter_keywords():
    assert is_breaking("Breaking: stocks rally on earnings", source_keywords=["stocks"])


def test_is_breaking_checks_description():
    assert is_breaking("Update", "Urgent: evacuation ordered in Beirut")


def test_priority_levels():
    assert priority_level(100) == "critical"
    assert priority_level(80) == "critical"
    assert priority_level(79) == "high"
    assert priority_level(60) == "high"
    assert priority_level(59) == "medium"
    assert priority_level(0) == "medium"


def test_extract_keywords_breaking_then_conflict_without_duplicates():
    assert extract_keywords("Breaking: Israel airstrike", "airstrike confirmed in Gaza") == [
        "breaking", "airstrike", "israel", "gaza",
    ]


# ── Classification ──

def test_classify_builds_item_with_expiry():
    raw = RawItem(
        title="<b>Breaking</b>: explosion in Beirut",
        link="https://example.com/beirut",
        description="<p>Casualties reported</p>",
    )
    item = classify(raw, _make_source(), lambda t, d, c: 85, NOW)
    assert item is not None
    assert "<b>" not in item.title
    assert "<p>" not in item.description
    assert item.urgency_score == 85
    assert item.priority_level == "critical"
    assert item.detected_at == NOW
    assert item.expires_at == NOW + timedelta(hours=24)
    assert item.source == "Wire"
    assert "beirut" in item.keywords


def test_classify_skips_non_breaking():
    raw = RawItem(title="Local bakery opens", link="https://example.com/bakery")
    assert classify(raw, _make_source(), lambda t, d, c: 90, NOW) is None


def test_classify_falls_back_to_default_urgency():
    raw = RawItem(title="Urgent: Gaza crossing closed", link="https://example.com/g")
    item = classify(raw, _make_source(), lambda t, d, c: None, NOW)
    assert item.urgency_score == 50
    assert item.priority_level == "medium"


def test_classify_clamps_urgency():
    raw = RawItem(title="Urgent: Gaza crossing closed", link="https://example.com/g")
    assert classify(raw, _make_source(), lambda t, d, c: 140, NOW).urgency_score == 100
    assert classify(raw, _make_source(), lambda t, d, c: -5, NOW).urgency_score == 0


def test_classify_truncates_title_and_description():
    raw = RawItem(
        title="Breaking Iran " + "x" * 800,
        link="https://example.com/long",
        description="alert " + "y" * 2000,
    )
    item = classify(raw, _make_source(), lambda t, d, c: 70, NOW)
    assert len(item.title) == 500
    assert len(item.description) == 1000


def test_classify_passes_credibility_to_scorer():
    seen = {}

    def scorer(title, description, credibility):
        seen["credibility"] = credibility
        return 60

    raw = RawItem(title="Breaking: Hezbollah statement", link="https://example.com/h")
    classify(raw, _make_source(credibility=92), scorer, NOW)
    assert seen["credibility"] == 92


def test_heuristic_urgency_is_bounded():
    low = heuristic_urgency_score("quiet", "", 0)
    high = heuristic_urgency_score(
        "Breaking urgent alert emergency explosion killed",
        "Iran Israel Gaza Tehran", 100,
    )
    assert 0 <= low <= 100
    assert high == 100
    assert heuristic_urgency_score("Breaking: Gaza", "", 80) > low


def test_store_urgency_scorer_uses_rpc():
    store = InMemoryRecordStore()
    store.register_rpc(
        "calculate_urgency_score",
        lambda title_text, description_text, source_credibility: 72,
    )
    assert store_urgency_scorer(store)("t", "d", 50) == 72.0


def test_store_urgency_scorer_returns_none_on_failure():
    assert store_urgency_scorer(InMemoryRecordStore())("t", "d", 50) is None


# ── Display admission ──

def test_high_urgency_from_tier3_rejected():
    assert not admit_for_display(_make_item(urgency=85, source="Blitz"))


def test_high_urgency_from_tier1_admitted():
    assert admit_for_display(_make_item(urgency=85, source="Reuters"))


def test_critical_needs_tier1_even_for_tier2():
    assert not admit_for_display(_make_item(urgency=80, source="The Hindu"))


def test_high_band_accepts_tier2():
    assert admit_for_display(_make_item(urgency=65, source="The Hindu"))
    assert not admit_for_display(_make_item(urgency=65, source="Random Blog"))


def test_low_urgency_always_admitted():
    assert admit_for_display(_make_item(urgency=40, source="Random Blog"))


def test_rank_alerts_orders_by_severity_then_recency():
    items = [
        _make_item(urgency=65, source="BBC", url="u1", detected_hours_ago=1),
        _make_item(urgency=90, source="Reuters", url="u2", detected_hours_ago=3),
        _make_item(urgency=70, source="CNN", url="u3", detected_hours_ago=0),
        _make_item(urgency=95, source="Blitz", url="u4"),
    ]
    ranked = rank_alerts(items)
    assert [i.url for i in ranked] == ["u2", "u3", "u1"]
    assert len(rank_alerts(items, limit=1)) == 1


# ── Store-backed lifecycle ──

def _store_with_items():
    store = InMemoryRecordStore()
    store.insert(TABLE, [
        {**_make_item(urgency=90, url="fresh-high").to_record(), "id": "1"},
        {**_make_item(urgency=60, url="fresh-low", detected_hours_ago=1).to_record(), "id": "2"},
        {**_make_item(urgency=95, url="stale", detected_hours_ago=30).to_record(), "id": "3"},
    ])
    return store


def test_expire_old_breaking_news_is_idempotent():
    store = _store_with_items()
    assert expire_old_breaking_news(store, NOW) == 1
    assert expire_old_breaking_news(store, NOW) == 0
    stale = [r for r in store.rows(TABLE) if r["article_url"] == "stale"][0]
    assert stale["is_active"] is False


def test_active_breaking_news_excludes_expired_and_dismissed():
    store = _store_with_items()
    items = active_breaking_news(store, NOW, limit=5)
    assert [i.url for i in items] == ["fresh-high", "fresh-low"]

    items = active_breaking_news(store, NOW, limit=5, dismissed_ids=["1"])
    assert [i.url for i in items] == ["fresh-low"]


def test_active_breaking_news_orders_by_urgency_before_limiting():
    store = InMemoryRecordStore()
    store.insert(TABLE, [
        {**_make_item(urgency=50, url=f"recent-{i}", detected_hours_ago=i * 0.1).to_record(), "id": f"r{i}"}
        for i in range(20)
    ])
    store.insert(TABLE, [{**_make_item(urgency=95, url="older-critical", detected_hours_ago=5).to_record(), "id": "c"}])

    items = active_breaking_news(store, NOW, limit=10)
    assert items[0].url == "older-critical"
    assert [i.url for i in items[1:4]] == ["recent-0", "recent-1", "recent-2"]
    assert len(items) == 10
