"""Tests for language detection, content analysis and the categorize pass."""

from news_aggregator.categorize import ARTICLES_TABLE, analyze_content, run_translate_and_categorize
from news_aggregator.store import InMemoryRecordStore
from news_aggregator.translate import detect_language, translate_to_english

DHAKA_BN = "ঢাকা"


def _make_store():
    return InMemoryRecordStore({ARTICLES_TABLE: [
        {"id": "b1", "title": f"{DHAKA_BN} news", "description": ""},
        {"id": "e1", "title": "Cricket match in Dhaka", "description": "The team won the tournament"},
        {"id": "done", "title": "Already analysed", "analysis_completed_at": "2026-03-01T00:00:00+00:00"},
    ]})


def _row(store, id):
    return next(r for r in store.rows(ARTICLES_TABLE) if r["id"] == id)


# ── Language ──

def test_detect_language():
    assert detect_language(DHAKA_BN) == "bangla"
    assert detect_language("Dhaka") == "english"
    assert detect_language(None) == "english"


def test_english_text_is_never_sent_to_translator():
    calls = []
    assert translate_to_english("Dhaka", lambda t: calls.append(t) or "x") is None
    assert calls == []


# ── Content analysis ──

def test_analyze_content_picks_primary_category():
    analysis = analyze_content("Cricket tournament final", "The team won the match")
    assert analysis.primary_category == "sports"
    assert analysis.content_type == "news"
    assert analysis.tags[0] == "sports"
    assert len(analysis.tags) <= 7


def test_analyze_content_defaults_to_general():
    analysis = analyze_content("Zzz", "")
    assert analysis.primary_category == "general"
    assert analysis.secondary_categories == []


# ── Batch pass ──

def test_run_translates_bangla_and_categorizes_all():
    store = _make_store()
    result = run_translate_and_categorize(store, translator=lambda text: "Dhaka news")

    assert result["success"] is True
    assert result["processed"] == 2
    assert result["translated"] == 1
    assert result["totalArticles"] == 2

    bangla = _row(store, "b1")
    assert bangla["translated_title"] == "Dhaka news"
    assert bangla["original_language"] == "bangla"
    assert bangla["analysis_completed_at"]

    english = _row(store, "e1")
    assert "translated_title" not in english
    assert english["primary_category"] == "sports"
    assert _row(store, "done").get("primary_category") is None


def test_failed_translation_is_not_counted():
    store = _make_store()
    result = run_translate_and_categorize(store, translator=lambda text: None)
    assert result["translated"] == 0
    assert result["processed"] == 2
    assert "translated_title" not in _row(store, "b1")


def test_force_reprocesses_analysed_articles():
    result = run_translate_and_categorize(_make_store(), force=True, translator=lambda text: None)
    assert result["processed"] == 3


def test_nothing_to_process():
    result = run_translate_and_categorize(InMemoryRecordStore(), translator=lambda text: None)
    assert result["processed"] == 0
    assert result["message"] == "No articles need translation/categorization"
