"""Record store — the query contract the pipeline reads and writes through.

Two implementations share the same ``Query`` builder:

* ``InMemoryRecordStore`` evaluates filters in-process (tests, local runs).
* ``SupabaseRecordStore`` translates them into PostgREST query strings.
"""

import copy
import itertools
import logging
import re
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import requests

from .models import format_timestamp

log = logging.getLogger(__name__)

_OPS = ("eq", "neq", "gt", "gte", "lt", "lte", "in", "not_in", "is", "ilike")
_TIMEOUT = 15

Filter = Tuple[str, str, Any]


class UpstreamFetchError(RuntimeError):
    """The store (or a remote feed) could not be reached or rejected the request."""


class Query:
    def __init__(self, store: "RecordStore", table: str):
        self.store = store
        self.table = table
        self.filters: List[Filter] = []
        self.search_fields: Sequence[str] = ()
        self.search_text: Optional[str] = None
        self.order_by: List[Tuple[str, bool]] = []
        self.embeds: List[str] = []
        self.row_limit: Optional[int] = None

    def filter(self, field: str, op: str, value: Any) -> "Query":
        if op not in _OPS:
            raise ValueError(f"Unsupported filter op: {op}")
        self.filters.append((field, op, value))
        return self

    def search(self, fields: Sequence[str], text: str) -> "Query":
        """OR of case-insensitive substring matches across ``fields``."""
        if text and text.strip():
            self.search_fields = tuple(fields)
            self.search_text = text.strip()
        return self

    def order(self, field: str, descending: bool = True) -> "Query":
        """Add a sort key. Earlier keys take precedence; nulls sort last."""
        self.order_by.append((field, descending))
        return self

    def embed(self, relation: str) -> "Query":
        """Include a related resource in each row, in PostgREST select syntax.

        e.g. ``article_tag_assignments(relevance_score,article_tags(slug))``
        """
        self.embeds.append(relation)
        return self

    def limit(self, n: int) -> "Query":
        self.row_limit = max(0, int(n))
        return self

    def execute(self) -> List[Dict[str, Any]]:
        return self.store.run(self)

    def count(self) -> int:
        return self.store.run_count(self)


class RecordStore:
    def select(self, table: str) -> Query:
        return Query(self, table)

    def run(self, query: Query) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def run_count(self, query: Query) -> int:
        raise NotImplementedError

    def insert(self, table: str, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def update(self, table: str, values: Dict[str, Any], filters: Sequence[Filter]) -> int:
        raise NotImplementedError

    def delete(self, table: str, filters: Sequence[Filter]) -> int:
        raise NotImplementedError

    def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        raise NotImplementedError


# ── In-memory ──

def _coerce(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


def _like(pattern: str) -> "re.Pattern":
    parts = [re.escape(p) for p in str(pattern).split("%")]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _matches(row: Dict[str, Any], field: str, op: str, value: Any) -> bool:
    actual = _coerce(row.get(field))
    value = _coerce(value)
    if op == "is":
        return actual is value or actual == value
    if op == "in":
        return actual in [_coerce(v) for v in value]
    if op == "not_in":
        return actual not in [_coerce(v) for v in value]
    if op == "eq":
        return actual == value
    if op == "neq":
        return actual != value
    if op == "ilike":
        return actual is not None and bool(_like(value).match(str(actual)))
    if actual is None:
        return False
    if op == "gt":
        return actual > value
    if op == "gte":
        return actual >= value
    if op == "lt":
        return actual < value
    if op == "lte":
        return actual <= value
    raise ValueError(f"Unsupported filter op: {op}")


def _row_matches(row: Dict[str, Any], filters: Sequence[Filter]) -> bool:
    return all(_matches(row, f, op, v) for f, op, v in filters)


class InMemoryRecordStore(RecordStore):
    """Thread-safe dict-of-lists store. Rows are copied in and out.

    Embedded relations are not joined: rows carry them as nested values, the
    way PostgREST returns them.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self._lock = threading.Lock()
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        self._ids = itertools.count(1)
        self._rpcs: Dict[str, Callable[..., Any]] = {}
        self.select_calls: Dict[str, int] = {}
        for table, rows in (tables or {}).items():
            self.insert(table, rows)

    def register_rpc(self, name: str, fn: Callable[..., Any]) -> None:
        self._rpcs[name] = fn

    def rows(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._tables.get(table, []))

    def _filtered(self, query: Query) -> List[Dict[str, Any]]:
        rows = [r for r in self._tables.get(query.table, []) if _row_matches(r, query.filters)]
        if query.search_text:
            needle = query.search_text.lower()
            rows = [
                r for r in rows
                if any(needle in str(r.get(f) or "").lower() for f in query.search_fields)
            ]
        return rows

    def run(self, query: Query) -> List[Dict[str, Any]]:
        with self._lock:
            self.select_calls[query.table] = self.select_calls.get(query.table, 0) + 1
            rows = self._filtered(query)
            for field, descending in reversed(query.order_by):
                present = [r for r in rows if r.get(field) is not None]
                missing = [r for r in rows if r.get(field) is None]
                present.sort(key=lambda r: _coerce(r[field]), reverse=descending)
                rows = present + missing
            if query.row_limit is not None:
                rows = rows[:query.row_limit]
            return copy.deepcopy(rows)

    def run_count(self, query: Query) -> int:
        with self._lock:
            return len(self._filtered(query))

    def insert(self, table: str, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        inserted = []
        with self._lock:
            target = self._tables.setdefault(table, [])
            for row in rows:
                row = {k: _coerce(v) for k, v in row.items()}
                if row.get("id") is None:
                    row["id"] = str(next(self._ids))
                target.append(row)
                inserted.append(copy.deepcopy(row))
        return inserted

    def update(self, table: str, values: Dict[str, Any], filters: Sequence[Filter]) -> int:
        values = {k: _coerce(v) for k, v in values.items()}
        with self._lock:
            hits = [r for r in self._tables.get(table, []) if _row_matches(r, filters)]
            for row in hits:
                row.update(values)
            return len(hits)

    def delete(self, table: str, filters: Sequence[Filter]) -> int:
        with self._lock:
            rows = self._tables.get(table, [])
            kept = [r for r in rows if not _row_matches(r, filters)]
            self._tables[table] = kept
            return len(rows) - len(kept)

    def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        fn = self._rpcs.get(name)
        if fn is None:
            raise UpstreamFetchError(f"Unknown rpc: {name}")
        return fn(**params)


# ── Supabase / PostgREST ──

def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return format_timestamp(value)
    return str(value)


def _list_literal(values: Iterable[Any]) -> str:
    return "(" + ",".join(f'"{_literal(v)}"' for v in values) + ")"


def _filter_params(filters: Sequence[Filter]) -> List[Tuple[str, str]]:
    params = []
    for field, op, value in filters:
        if op == "in":
            params.append((field, f"in.{_list_literal(value)}"))
        elif op == "not_in":
            params.append((field, f"not.in.{_list_literal(value)}"))
        elif op == "ilike":
            params.append((field, f"ilike.{str(value).replace('%', '*')}"))
        else:
            params.append((field, f"{op}.{_literal(value)}"))
    return params


class SupabaseRecordStore(RecordStore):
    def __init__(self, url: str, key: str, session: Optional[requests.Session] = None):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        })

    @classmethod
    def from_settings(cls, settings) -> "SupabaseRecordStore":
        return cls(settings.supabase_url, settings.supabase_key)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            resp = self.session.request(method, f"{self.base_url}/{path}", timeout=_TIMEOUT, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamFetchError(f"{method} {path} failed: {exc}") from exc
        return resp

    def _request_json(self, method: str, path: str, **kwargs) -> Any:
        resp = self._request(method, path, **kwargs)
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamFetchError(f"{method} {path} returned invalid JSON: {exc}") from exc

    def _query_params(self, query: Query) -> List[Tuple[str, str]]:
        params = [("select", ",".join(["*", *query.embeds]))] + _filter_params(query.filters)
        if query.search_text:
            term = query.search_text.replace(",", " ")
            clauses = ",".join(f"{f}.ilike.*{term}*" for f in query.search_fields)
            params.append(("or", f"({clauses})"))
        return params

    def run(self, query: Query) -> List[Dict[str, Any]]:
        params = self._query_params(query)
        if query.order_by:
            params.append(("order", ",".join(
                f"{field}.{'desc' if descending else 'asc'}.nullslast" for field, descending in query.order_by
            )))
        if query.row_limit is not None:
            params.append(("limit", str(query.row_limit)))
        return self._request_json("GET", query.table, params=params)

    def run_count(self, query: Query) -> int:
        resp = self._request(
            "HEAD", query.table,
            params=self._query_params(query),
            headers={"Prefer": "count=exact"},
        )
        content_range = resp.headers.get("Content-Range", "*/0")
        return int(content_range.rsplit("/", 1)[-1] or 0)

    def insert(self, table: str, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        payload = [{k: _coerce(v) for k, v in r.items()} for r in rows]
        return self._request_json("POST", table, json=payload, headers={"Prefer": "return=representation"})

    def update(self, table: str, values: Dict[str, Any], filters: Sequence[Filter]) -> int:
        rows = self._request_json(
            "PATCH", table,
            params=_filter_params(filters),
            json={k: _coerce(v) for k, v in values.items()},
            headers={"Prefer": "return=representation"},
        )
        return len(rows or [])

    def delete(self, table: str, filters: Sequence[Filter]) -> int:
        rows = self._request_json(
            "DELETE", table,
            params=_filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return len(rows or [])

    def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        return self._request_json("POST", f"rpc/{name}", json=params)
