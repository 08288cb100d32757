"""Auto-tagging trigger. Query params: limit (default 100), force=true to re-tag."""

import json
import os
import sys
from http.server import BaseHTTPRequestHandler
from urllib.parse import parse_qs, urlparse

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from news_aggregator.config import get_settings
from news_aggregator.store import SupabaseRecordStore
from news_aggregator.tagging import run_tagging


class handler(BaseHTTPRequestHandler):
    def _send_json(self, status: int, payload: dict) -> None:
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(json.dumps(payload).encode())

    def do_POST(self):
        params = parse_qs(urlparse(self.path).query)
        try:
            limit = int(params.get("limit", ["100"])[0])
        except ValueError:
            self._send_json(400, {"success": False, "error": "Invalid 'limit'"})
            return
        force = params.get("force", ["false"])[0] == "true"

        try:
            store = SupabaseRecordStore.from_settings(get_settings())
            self._send_json(200, run_tagging(store, limit=limit, force=force))
        except Exception as exc:
            self._send_json(500, {"success": False, "error": str(exc)})

    def do_OPTIONS(self):
        """Handle CORS preflight requests."""
        self.send_response(200)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "authorization, x-client-info, apikey, content-type")
        self.end_headers()
