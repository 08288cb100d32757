"""Ranked news feed. Query params: page, category, region, q, feed (news, bangladesh,
middle-east-war). profile=bangladesh is accepted as an alias for feed=bangladesh.
"""

import json
import os
import sys
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler
from urllib.parse import parse_qs, urlparse

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from news_aggregator.breaking import active_breaking_news, rank_alerts
from news_aggregator.config import get_settings
from news_aggregator.ranker import feed_context, load_page
from news_aggregator.source_ranking import tier_badge
from news_aggregator.store import SupabaseRecordStore


class handler(BaseHTTPRequestHandler):
    def _send_json(self, status: int, payload: dict) -> None:
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(json.dumps(payload).encode())

    def do_GET(self):
        params = parse_qs(urlparse(self.path).query)
        try:
            page_index = int(params.get("page", ["0"])[0])
        except ValueError:
            page_index = -1
        if page_index < 0:
            self._send_json(400, {"error": "Invalid 'page'"})
            return

        feed = params.get("feed", [None])[0] or params.get("profile", ["news"])[0]
        try:
            context = feed_context(
                feed,
                category=params.get("category", [None])[0],
                region=params.get("region", [None])[0],
                search=params.get("q", [None])[0],
            )
        except ValueError as exc:
            self._send_json(400, {"error": str(exc)})
            return

        try:
            settings = get_settings()
            store = SupabaseRecordStore.from_settings(settings)
            now = datetime.now(timezone.utc)
            page = load_page(store, context, page_index, settings.page_size, now)
            alerts = rank_alerts(active_breaking_news(store, now, limit=20)) if page_index == 0 else []

            articles = []
            for item in page.items:
                data = item.to_dict()
                data["badge"] = tier_badge(item.article.source)
                articles.append(data)

            self._send_json(200, {
                "page": page_index,
                "articles": articles,
                "hasMore": page.has_more,
                "total": page.total,
                "alerts": [{**a.to_record(), "id": a.id} for a in alerts],
            })
        except Exception as exc:
            self._send_json(200, {
                "page": page_index,
                "articles": [],
                "hasMore": False,
                "error": str(exc),
            })

    def do_OPTIONS(self):
        """Handle CORS preflight requests."""
        self.send_response(200)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.end_headers()
