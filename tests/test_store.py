"""Tests for the record-store query contract."""

import pytest
import requests

from news_aggregator.store import (
    InMemoryRecordStore,
    SupabaseRecordStore,
    UpstreamFetchError,
    _filter_params,
)


def _make_store():
    return InMemoryRecordStore({"news_articles": [
        {"id": "1", "title": "Gaza talks", "category": "politics", "published_date": "2026-03-01T10:00:00+00:00"},
        {"id": "2", "title": "Cricket final", "category": "sports", "published_date": "2026-03-01T12:00:00+00:00"},
        {"id": "3", "title": "Budget vote", "category": "politics", "published_date": None},
        {"id": "4", "title": "Tech fair", "category": "technology", "published_date": "2026-02-28T09:00:00+00:00"},
    ]})


def _ids(rows):
    return [r["id"] for r in rows]


# ── Filters ──

def test_eq_and_neq():
    store = _make_store()
    assert _ids(store.select("news_articles").filter("category", "eq", "politics").execute()) == ["1", "3"]
    assert _ids(store.select("news_articles").filter("category", "neq", "politics").execute()) == ["2", "4"]


def test_in_and_not_in():
    store = _make_store()
    assert _ids(store.select("news_articles").filter("id", "in", ["2", "4"]).execute()) == ["2", "4"]
    assert _ids(store.select("news_articles").filter("id", "not_in", ["2", "4"]).execute()) == ["1", "3"]


def test_is_null():
    store = _make_store()
    assert _ids(store.select("news_articles").filter("published_date", "is", None).execute()) == ["3"]


def test_range_filters_skip_nulls():
    store = _make_store()
    rows = store.select("news_articles").filter("published_date", "gte", "2026-03-01T00:00:00+00:00").execute()
    assert _ids(rows) == ["1", "2"]


def test_ilike_and_search():
    store = _make_store()
    assert _ids(store.select("news_articles").filter("title", "ilike", "%GAZA%").execute()) == ["1"]
    assert _ids(store.select("news_articles").search(("title", "category"), "tech").execute()) == ["4"]


def test_unknown_op_rejected():
    with pytest.raises(ValueError):
        _make_store().select("news_articles").filter("id", "like", "x")


# ── Order / limit / count ──

def test_order_descending_puts_nulls_last():
    rows = _make_store().select("news_articles").order("published_date", descending=True).execute()
    assert _ids(rows) == ["2", "1", "4", "3"]


def test_order_by_several_keys():
    store = InMemoryRecordStore({"breaking_news": [
        {"id": "a", "urgency_score": 50, "detected_at": "2026-03-01T11:00:00+00:00"},
        {"id": "b", "urgency_score": 95, "detected_at": "2026-03-01T06:00:00+00:00"},
        {"id": "c", "urgency_score": 50, "detected_at": "2026-03-01T11:30:00+00:00"},
        {"id": "d", "urgency_score": None, "detected_at": "2026-03-01T12:00:00+00:00"},
    ]})
    rows = (
        store.select("breaking_news")
        .order("urgency_score", descending=True)
        .order("detected_at", descending=True)
        .limit(3)
        .execute()
    )
    assert _ids(rows) == ["b", "c", "a"]


def test_limit_and_count():
    store = _make_store()
    q = store.select("news_articles").filter("category", "eq", "politics")
    assert q.count() == 2
    assert len(store.select("news_articles").limit(3).execute()) == 3


def test_select_calls_are_counted_per_table():
    store = _make_store()
    store.select("news_articles").execute()
    store.select("news_articles").execute()
    assert store.select_calls == {"news_articles": 2}


# ── Writes ──

def test_insert_assigns_ids():
    store = InMemoryRecordStore()
    rows = store.insert("tags", [{"slug": "a"}, {"slug": "b"}])
    assert all(r["id"] for r in rows)
    assert rows[0]["id"] != rows[1]["id"]


def test_update_and_delete_return_counts():
    store = _make_store()
    assert store.update("news_articles", {"category": "general"}, [("category", "eq", "politics")]) == 2
    assert store.select("news_articles").filter("category", "eq", "general").count() == 2
    assert store.delete("news_articles", [("id", "eq", "4")]) == 1
    assert store.select("news_articles").count() == 3


def test_returned_rows_are_copies():
    store = _make_store()
    row = store.select("news_articles").limit(1).execute()[0]
    row["title"] = "changed"
    assert store.rows("news_articles")[0]["title"] == "Gaza talks"


def test_unknown_rpc_raises_upstream_error():
    with pytest.raises(UpstreamFetchError):
        InMemoryRecordStore().rpc("missing", {})


# ── PostgREST translation ──

def test_filter_params_translate_to_postgrest():
    params = _filter_params([
        ("id", "not_in", ["1", "2"]),
        ("is_active", "eq", True),
        ("analysis_completed_at", "is", None),
        ("title", "ilike", "%gaza%"),
        ("urgency_score", "gte", 60),
    ])
    assert params == [
        ("id", 'not.in.("1","2")'),
        ("is_active", "eq.true"),
        ("analysis_completed_at", "is.null"),
        ("title", "ilike.*gaza*"),
        ("urgency_score", "gte.60"),
    ]


class _FailingSession(requests.Session):
    def request(self, *args, **kwargs):
        raise requests.ConnectionError("connection refused")


def test_supabase_transport_errors_become_upstream_errors():
    store = SupabaseRecordStore("https://db.example.com", "key", session=_FailingSession())
    with pytest.raises(UpstreamFetchError):
        store.select("news_articles").execute()
    with pytest.raises(UpstreamFetchError):
        store.rpc("expire_old_breaking_news", {})


class _RecordingSession(requests.Session):
    def __init__(self, body=b"[]"):
        super().__init__()
        self.body = body
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        resp = requests.Response()
        resp.status_code = 200
        resp._content = self.body
        return resp


def test_supabase_query_params_include_embeds_and_sort_keys():
    session = _RecordingSession()
    store = SupabaseRecordStore("https://db.example.com", "key", session=session)
    (
        store.select("news_articles")
        .embed("article_tag_assignments(relevance_score,article_tags(slug))")
        .order("urgency_score", descending=True)
        .order("detected_at", descending=False)
        .limit(5)
        .execute()
    )
    params = dict(session.calls[0][2]["params"])
    assert params["select"] == "*,article_tag_assignments(relevance_score,article_tags(slug))"
    assert params["order"] == "urgency_score.desc.nullslast,detected_at.asc.nullslast"
    assert params["limit"] == "5"


def test_supabase_non_json_body_becomes_upstream_error():
    store = SupabaseRecordStore("https://db.example.com", "key", session=_RecordingSession(b"<html>502</html>"))
    with pytest.raises(UpstreamFetchError):
        store.select("news_articles").execute()
    with pytest.raises(UpstreamFetchError):
        store.rpc("calculate_urgency_score", {})
    with pytest.raises(UpstreamFetchError):
        store.update("news_articles", {"category": "general"}, [("id", "eq", "1")])
