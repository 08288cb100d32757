"""Bangladesh priority fetch trigger — pulls every active Asia-region source once per call."""

import json
import os
import sys
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from news_aggregator.config import get_settings
from news_aggregator.ingest import run_bangladesh_fetch
from news_aggregator.store import SupabaseRecordStore


class handler(BaseHTTPRequestHandler):
    def _send_json(self, status: int, payload: dict) -> None:
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(json.dumps(payload).encode())

    def do_POST(self):
        try:
            store = SupabaseRecordStore.from_settings(get_settings())
            result = run_bangladesh_fetch(store)
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
        self.send_header("Access-Control-Allow-Methods", "POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "authorization, x-client-info, apikey, content-type")
        self.end_headers()
