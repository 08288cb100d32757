"""Latest war developments. Query params: limit (default 50), hours (default 24)."""

import json
import os
import sys
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler
from urllib.parse import parse_qs, urlparse

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from news_aggregator.config import get_settings
from news_aggregator.developments import run_development_analysis
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
            limit = int(params.get("limit", ["50"])[0])
            hours = int(params.get("hours", ["24"])[0])
        except ValueError:
            self._send_json(400, {"success": False, "error": "Invalid 'limit' or 'hours'"})
            return

        try:
            store = SupabaseRecordStore.from_settings(get_settings())
            result = run_development_analysis(store, limit=limit, hours=hours)
            self._send_json(200 if result.get("success") else 500, result)
        except Exception as exc:
            self._send_json(500, {
                "success": False,
                "error": str(exc),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            })

    def do_OPTIONS(self):
        """Handle CORS preflight requests."""
        self.send_response(200)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "authorization, x-client-info, apikey, content-type")
        self.end_headers()
