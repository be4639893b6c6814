"""Ranked full-text search with a substring fallback."""
from __future__ import annotations

import logging
import time
from typing import Any

from docgraph import config
from docgraph.db.factory import get_document_repository
from docgraph.models import SearchResult
from docgraph.observability import record_search, start_span

logger = logging.getLogger("docgraph.search")


class InvalidQueryError(ValueError):
    """Raised for empty or oversized queries, before the store is touched."""


def validate_query(query: str | None) -> str:
    text = (query or "").strip()
    if not text:
        raise InvalidQueryError("Query must not be empty")
    if len(text) > config.SEARCH_MAX_QUERY_LENGTH:
        raise InvalidQueryError(
            f"Query exceeds {config.SEARCH_MAX_QUERY_LENGTH} characters"
        )
    return text


def query_terms(query: str) -> list[str]:
    terms: list[str] = []
    seen: set[str] = set()
    for word in query.split():
        key = word.lower()
        if key in seen:
            continue
        seen.add(key)
        terms.append(word)
    return terms


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return config.SEARCH_DEFAULT_LIMIT
    return max(1, min(int(limit), config.SEARCH_MAX_LIMIT))


def extract_excerpt(content: str, query: str, window: int | None = None) -> str:
    """Return a window of ``content`` centred on the densest query match.

    The centre is the offset where the most query words start (earliest
    offset on ties, 0 when nothing matches). Truncated sides get ``...``.
    """
    if not content:
        return ""
    window = config.EXCERPT_WINDOW if window is None else window
    half = max(0, window // 2)
    lowered = content.lower()

    hits: dict[int, int] = {}
    for word in {w for w in query.lower().split() if w}:
        position = lowered.find(word)
        while position != -1:
            hits[position] = hits.get(position, 0) + 1
            position = lowered.find(word, position + 1)

    best = 0
    if hits:
        best = min(hits, key=lambda offset: (-hits[offset], offset))

    start = max(0, best - half)
    end = min(len(content), best + half)
    excerpt = content[start:end]
    if start > 0:
        excerpt = "..." + excerpt
    if end < len(content):
        excerpt = excerpt + "..."
    return excerpt


def _match_fraction(row: dict[str, Any], terms: list[str]) -> float:
    if not terms:
        return 0.0
    haystack = f"{row.get('title') or ''}\n{row.get('content') or ''}".lower()
    matched = sum(1 for term in terms if term.lower() in haystack)
    return round(matched / len(terms), 6)


class SearchEngine:
    """Read-only search over stored documents."""

    def __init__(self, db: Any):
        self.db = db
        self.document_repo = get_document_repository(db)

    async def search(self, query: str, limit: int | None = None, match_all: bool = True) -> list[SearchResult]:
        """Search titles and content; results are ordered by descending rank.

        The ranked full-text index is tried first. When it returns nothing
        or fails, a case-insensitive substring match (any word) is used and
        ranked by the fraction of query words found. Errors from the
        fallback propagate.
        """
        text = validate_query(query)
        limit = clamp_limit(limit)
        terms = query_terms(text)
        started = time.monotonic()

        with start_span("docgraph.search", {"terms": len(terms), "limit": limit}):
            strategy = "fulltext"
            try:
                rows = await self.document_repo.search_fulltext(terms, limit, match_all=match_all)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Full-text search failed, using substring fallback: %s", exc)
                rows = []

            if not rows:
                strategy = "substring"
                try:
                    rows = await self.document_repo.search_like(terms, limit)
                except Exception:
                    record_search(strategy, "failure", (time.monotonic() - started) * 1000)
                    raise
                for row in rows:
                    row["rank"] = _match_fraction(row, terms)
                rows.sort(key=lambda row: row["rank"], reverse=True)

        results = [
            SearchResult(
                id=str(row.get("id") or ""),
                title=str(row.get("title") or ""),
                path=str(row.get("path") or ""),
                type=str(row.get("type") or ""),
                excerpt=extract_excerpt(str(row.get("content") or ""), text),
                rank=float(row.get("rank") or 0.0),
            )
            for row in rows[:limit]
        ]
        record_search(strategy, "success", (time.monotonic() - started) * 1000)
        logger.debug("Search %r returned %d result(s) via %s", text, len(results), strategy)
        return results
