import json
import logging
from datetime import datetime, timezone

import click

from .categorize import run_translate_and_categorize
from .config import get_settings
from .developments import run_development_analysis
from .ingest import run_bangladesh_fetch
from .monitor import run_monitor
from .preferences import JsonFileKeyValueStore, UserPreferences
from .ranker import FEEDS, feed_context, load_page
from .recommendations import DEFAULT_CATEGORY, RecommendationEngine
from .source_ranking import tier_badge
from .store import SupabaseRecordStore
from .tagging import run_tagging, run_war_tagging


def _store():
    return SupabaseRecordStore.from_settings(get_settings())


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging.")
def main(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
def monitor():
    """Poll breaking-news sources once."""
    click.echo("Monitoring breaking news sources...")
    _echo_json(run_monitor(_store()))


@main.command()
@click.option("--limit", default=100, type=int, help="Max articles to tag.")
@click.option("--force", is_flag=True, default=False, help="Re-tag already tagged articles.")
def tag(limit, force):
    """Auto-tag recent articles."""
    _echo_json(run_tagging(_store(), limit=limit, force=force))


@main.command("war-tag")
@click.option("--limit", default=100, type=int, help="Max articles to tag.")
@click.option("--force", is_flag=True, default=False, help="Re-tag already tagged articles.")
def war_tag(limit, force):
    """Auto-tag recent Middle East war articles."""
    _echo_json(run_war_tagging(_store(), limit=limit, force=force))


@main.command()
@click.option("--limit", default=50, type=int, help="Max articles to analyse.")
@click.option("--hours", default=24, type=int, help="How far back to look.")
def developments(limit, hours):
    """Summarise the latest Middle East war developments."""
    _echo_json(run_development_analysis(_store(), limit=limit, hours=hours))


@main.command("fetch-bangladesh")
def fetch_bangladesh():
    """Pull Asia-region sources and mark Bangladesh-related articles."""
    _echo_json(run_bangladesh_fetch(_store()))


@main.command()
@click.option("--limit", default=50, type=int, help="Max articles to process.")
@click.option("--force", is_flag=True, default=False, help="Re-analyse processed articles.")
def categorize(limit, force):
    """Translate Bangla articles and categorize content."""
    _echo_json(run_translate_and_categorize(_store(), limit=limit, force=force))


@main.command()
@click.option("--page", default=0, type=int, help="Zero-based page index.")
@click.option("--category", default=None, help="Filter by category.")
@click.option("--region", default=None, help="Filter by region.")
@click.option("--search", "-q", default=None, help="Free-text search.")
@click.option("--feed", "feed_name", default="news", type=click.Choice(list(FEEDS)), help="Which feed to rank.")
def feed(page, category, region, search, feed_name):
    """Print one ranked feed page."""
    settings = get_settings()
    context = feed_context(feed_name, category=category, region=region, search=search)
    result = load_page(_store(), context, page, settings.page_size, datetime.now(timezone.utc))
    for item in result.items:
        badge = tier_badge(item.article.source)["label"]
        click.echo(f"  [{item.priority_score:>4}] ({badge}) {item.article.title} - {item.article.source}")
    click.echo(f"Page {page}: {len(result.items)} of {result.total} (more: {result.has_more})")


@main.command()
@click.option("--category", default=DEFAULT_CATEGORY, help="Category, or 'Today' for all.")
@click.option("--exclude", multiple=True, help="Article ids to exclude.")
@click.option("--limit", default=3, type=int, help="Max recommendations.")
def recommend(category, exclude, limit):
    """Recommend articles from the saved preference history."""
    settings = get_settings()
    prefs = UserPreferences(JsonFileKeyValueStore(settings.preferences_path))
    with RecommendationEngine(_store(), prefs, timeout=settings.recommendation_timeout) as engine:
        response = engine.get_recommendations(category, exclude, limit)
    _echo_json(response.to_dict())


if __name__ == "__main__":
    main()
