"""Tests for the Bangladesh priority fetch over Asia-region sources."""

from datetime import datetime, timezone

from news_aggregator.ingest import ARTICLES_TABLE, SOURCES_TABLE, run_bangladesh_fetch
from news_aggregator.models import RawItem, format_timestamp
from news_aggregator.store import InMemoryRecordStore, UpstreamFetchError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_source(id, name, url, region="asia", active=True):
    return {"id": id, "name": name, "rss_url": url, "region": region,
            "category": "general", "active": active}


def _make_fetch(feeds):
    def fetch(url):
        result = feeds[url]
        if isinstance(result, Exception):
            raise result
        return list(result)
    return fetch


def _feeds():
    return {
        "https://star.example/rss": [
            RawItem("Dhaka metro line opens", "https://star.example/1",
                    "<p>Commuters welcome the new line</p>", "2026-03-01T09:00:00+00:00"),
            RawItem("Tokyo stocks rise", "https://star.example/2", "Nikkei up"),
            RawItem("", "https://star.example/3"),
        ],
        "https://down.example/rss": UpstreamFetchError("timeout"),
    }


def _store(existing=None):
    return InMemoryRecordStore({
        SOURCES_TABLE: [
            _make_source("s1", "Daily Star", "https://star.example/rss"),
            _make_source("s2", "Down Wire", "https://down.example/rss"),
            _make_source("s3", "Euro News", "https://euro.example/rss", region="europe"),
            _make_source("s4", "Old Asia", "https://old.example/rss", active=False),
        ],
        ARTICLES_TABLE: existing or [],
    })


# ── Fetch pass ──

def test_bangladesh_items_are_marked_by_region():
    store = _store()
    result = run_bangladesh_fetch(store, fetch=_make_fetch(_feeds()), now=NOW)

    assert result["success"] is True
    assert result["sourcesProcessed"] == 2
    assert result["totalArticles"] == 2
    assert result["bangladeshArticles"] == 1
    assert result["errors"] == ["Error fetching Down Wire: timeout"]

    rows = {r["article_url"]: r for r in store.rows(ARTICLES_TABLE)}
    assert rows["https://star.example/1"]["region"] == "bangladesh"
    assert rows["https://star.example/1"]["description"] == "Commuters welcome the new line"
    assert rows["https://star.example/2"]["region"] == "asia"
    assert rows["https://star.example/2"]["source_id"] == "s1"


def test_known_urls_are_skipped_and_source_marked_fetched():
    store = _store(existing=[{"id": "x", "article_url": "https://star.example/1"}])
    result = run_bangladesh_fetch(store, fetch=_make_fetch(_feeds()), now=NOW)

    assert result["totalArticles"] == 1
    assert result["bangladeshArticles"] == 0
    source = next(s for s in store.rows(SOURCES_TABLE) if s["id"] == "s1")
    assert source["last_fetched"] == format_timestamp(NOW)


def test_missing_pub_date_falls_back_to_now():
    store = _store()
    run_bangladesh_fetch(store, fetch=_make_fetch(_feeds()), now=NOW)
    row = next(r for r in store.rows(ARTICLES_TABLE) if r["article_url"] == "https://star.example/2")
    assert row["published_date"] == format_timestamp(NOW)


def test_no_asia_sources():
    result = run_bangladesh_fetch(InMemoryRecordStore(), fetch=_make_fetch({}), now=NOW)
    assert result == {"success": True, "message": "No Bangladesh news sources found", "totalArticles": 0}
