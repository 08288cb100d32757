"""Tests for recency decay, composite scoring and regional relevance."""

from datetime import datetime, timedelta, timezone

import pytest

from news_aggregator.models import Article, FeedContext, TagAssignment, format_timestamp
from news_aggregator.relevance import (
    BANGLADESH_PROFILE,
    bangladesh_priority_relevance,
    breaking_boost,
    is_region_related,
    keyword_score,
    load_articles,
    recency_score,
    regional_relevance,
    score,
    score_article,
    tag_score,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_article(title="Market update", source="Random Blog", days_ago=0, **kwargs):
    return Article(
        id=kwargs.pop("id", "a1"),
        title=title,
        source=source,
        published=NOW - timedelta(days=days_ago),
        **kwargs,
    )


# ── Recency ──

def test_recency_fresh_article_scores_100():
    assert recency_score(NOW, NOW) == 100


def test_recency_decays_per_day():
    assert recency_score(NOW - timedelta(days=1), NOW) == pytest.approx(95)
    assert recency_score(NOW - timedelta(days=2), NOW, decay_rate=10) == pytest.approx(80)


def test_recency_forty_days_old_is_zero():
    assert recency_score(NOW - timedelta(days=40), NOW) == 0


def test_future_dated_article_is_capped_at_100():
    assert recency_score(NOW + timedelta(hours=3), NOW) == 100


def test_decay_rate_outside_range_rejected():
    with pytest.raises(ValueError):
        FeedContext(decay_rate=2)
    with pytest.raises(ValueError):
        FeedContext(decay_rate=11)


# ── Composite score ──

def test_reuters_now_scores_at_least_200():
    article = _make_article(source="Reuters")
    result = score_article(article, FeedContext(), NOW)
    assert result.source_tier == "tier1"
    assert result.priority_score >= 200


def test_unknown_source_score_is_recency_only():
    article = _make_article(source="Random Blog", days_ago=2)
    assert score(article, FeedContext(), NOW) == 90


def test_forty_day_old_unknown_source_scores_zero():
    article = _make_article(source="Random Blog", days_ago=40)
    assert score(article, FeedContext(), NOW) == 0


def test_keyword_points_title_description_and_multi_match():
    article = _make_article(title="Iran talks resume", description="Israel responds to the offer")
    # title 25 + description 15 + 2 matches * 10
    assert keyword_score(article, ["iran", "israel"]) == 60


def test_single_keyword_gets_no_multi_match_bonus():
    article = _make_article(title="Gaza aid convoy")
    assert keyword_score(article, ["gaza", "hezbollah"]) == 25


def test_keyword_in_title_and_description_counts_once():
    article = _make_article(title="Gaza update", description="More from Gaza")
    assert keyword_score(article, ["gaza"]) == 25


def test_tag_points():
    article = _make_article(tags=[
        TagAssignment("politics", 90),
        TagAssignment("asia", 70),
        TagAssignment("weather", 10),
    ])
    assert tag_score(article) == 45


def test_category_alignment_bonus():
    article = _make_article(category="Politics")
    assert tag_score(article, ["politics"]) == 10
    assert tag_score(article, ["sports"]) == 0


def test_breaking_boost():
    assert breaking_boost(_make_article(title="BREAKING: port closed")) == 50
    assert breaking_boost(_make_article(title="Quiet day", description="weather alert issued")) == 50
    assert breaking_boost(_make_article(title="Quiet day")) == 0


def test_score_sums_all_components():
    article = _make_article(
        title="Breaking: Iran strike",
        source="Random Blog",
        days_ago=40,
        category="politics",
        tags=[TagAssignment("politics", 85)],
    )
    ctx = FeedContext(topic_keywords=["iran"], relevant_categories=["politics"])
    # recency 0, keyword 25, tag 5 + 20, category 10, breaking 50
    assert score(article, ctx, NOW) == 110


# ── Batch loading ──

def test_load_articles_skips_malformed_records():
    records = [
        {"id": "1", "title": "Ok", "source": "BBC", "published_date": format_timestamp(NOW)},
        {"id": "2", "title": "No source", "published_date": format_timestamp(NOW)},
        {"id": "3", "title": "Bad date", "source": "BBC", "published_date": "yesterday"},
        {"title": "No id", "source": "BBC", "published_date": format_timestamp(NOW)},
    ]
    articles = load_articles(records)
    assert [a.id for a in articles] == ["1"]


def test_article_from_record_parses_zulu_timestamps():
    article = Article.from_record({
        "id": 7, "title": "T", "source": "CNN", "published_date": "2026-03-01T10:00:00Z",
    })
    assert article.id == "7"
    assert article.published == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


# ── Regional relevance ──

def test_regional_relevance_components():
    article = _make_article(
        title="Dhaka floods",
        source="Bangla Tribune",
        region="Bangladesh",
        category="general",
    )
    # region 100 + source 60 + keyword 20 + title 15 + category 10
    assert regional_relevance(article, BANGLADESH_PROFILE) == 205


def test_asia_region_gets_small_bonus():
    article = _make_article(title="Markets close", region="Asia", category="lifestyle")
    assert regional_relevance(article) == 20


def test_region_marked_article_is_always_related():
    article = _make_article(title="Weather", region="bangladesh", category="lifestyle")
    assert is_region_related(article)


def test_region_related_threshold():
    unrelated = _make_article(title="Cricket results", source="Reuters", region="Europe", category="sports")
    related = _make_article(title="Dhaka votes", source="Reuters", region="Europe", category="sports")
    assert not is_region_related(unrelated)
    assert is_region_related(related)


def test_secondary_score_only_with_profile():
    article = _make_article(title="Dhaka floods", region="Bangladesh")
    assert score_article(article, FeedContext(), NOW).secondary_score is None
    assert score_article(article, FeedContext(region_profile=BANGLADESH_PROFILE), NOW).secondary_score > 100


# ── Ingest-time Bangladesh marking ──

def test_bangladesh_priority_relevance_weights_title_over_description():
    assert bangladesh_priority_relevance("Dhaka traffic eases", "Rohingya camp report") == 15


def test_bangladesh_priority_relevance_zero_without_keywords():
    assert bangladesh_priority_relevance("Weather in Oslo", None) == 0
