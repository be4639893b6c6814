"""SQLite implementation of DocumentRepository."""
from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

import aiosqlite

# bm25() column weights: title, content
_BM25_WEIGHTS = (10.0, 1.0)


def _fts_phrase(term: str) -> str:
    return '"' + term.replace('"', '""') + '"'


class SqliteDocumentRepository:
    """SQLite-backed document storage keyed by path, with FTS5 search."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    def _build_where_clause(self, filters: dict | None = None) -> tuple[str, list[Any]]:
        filters = filters or {}
        clauses = ["1 = 1"]
        params: list[Any] = []

        if filters.get("type"):
            clauses.append("type = ?")
            params.append(str(filters["type"]))
        if filters.get("status"):
            clauses.append(
                """
                EXISTS (
                    SELECT 1 FROM tasks t
                    WHERE t.file_path = documents.path AND t.status = ?
                )
                """
            )
            params.append(str(filters["status"]).strip().upper())
        tags = [str(tag) for tag in filters.get("tags") or [] if str(tag).strip()]
        if tags:
            placeholders = ", ".join("?" for _ in tags)
            clauses.append(
                f"""
                EXISTS (
                    SELECT 1 FROM entity_tags et
                    JOIN tags tg ON tg.id = et.tag_id
                    WHERE et.entity_type = 'document'
                      AND et.entity_id = documents.id
                      AND tg.name IN ({placeholders})
                )
                """
            )
            params.extend(tags)
        if filters.get("search"):
            needle = f"%{str(filters['search']).strip().lower()}%"
            clauses.append("(lower(title) LIKE ? OR lower(content) LIKE ?)")
            params.extend([needle, needle])

        return " AND ".join(clauses), params

    async def upsert(self, doc_data: dict) -> dict:
        """Insert or update the document keyed by ``path``.

        ``id`` and ``created_at`` are kept on update; ``updated_at`` is
        refreshed on every call.
        """
        now = datetime.now(timezone.utc).isoformat()
        metadata = doc_data.get("metadata", {})
        metadata_json = json.dumps(metadata if isinstance(metadata, dict) else {})

        await self.db.execute(
            """INSERT INTO documents (
                id, path, title, content, type, metadata_json, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                title=excluded.title,
                content=excluded.content,
                type=excluded.type,
                metadata_json=excluded.metadata_json,
                updated_at=excluded.updated_at
            """,
            (
                doc_data.get("id") or uuid.uuid4().hex,
                doc_data["path"],
                doc_data.get("title", ""),
                doc_data.get("content", ""),
                doc_data.get("type", "documentation"),
                metadata_json,
                now,
                now,
            ),
        )
        await self.db.commit()
        row = await self.get_by_path(doc_data["path"])
        if row is None:
            raise RuntimeError(f"Document '{doc_data['path']}' could not be stored")
        return row

    async def get_by_path(self, path: str) -> dict | None:
        async with self.db.execute("SELECT * FROM documents WHERE path = ? LIMIT 1", (path,)) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_paginated(self, offset: int, limit: int, filters: dict | None = None) -> list[dict]:
        where_sql, params = self._build_where_clause(filters)
        query = f"""
            SELECT * FROM documents
            WHERE {where_sql}
            ORDER BY updated_at DESC, path ASC
            LIMIT ? OFFSET ?
        """
        params.extend([limit, offset])
        async with self.db.execute(query, params) as cur:
            return [dict(row) for row in await cur.fetchall()]

    async def count(self, filters: dict | None = None) -> int:
        where_sql, params = self._build_where_clause(filters)
        query = f"SELECT COUNT(*) AS total FROM documents WHERE {where_sql}"
        async with self.db.execute(query, params) as cur:
            row = await cur.fetchone()
            return int(row[0] if row else 0)

    async def list_all(self, types: list[str] | None = None) -> list[dict]:
        if types:
            placeholders = ", ".join("?" for _ in types)
            query = f"SELECT * FROM documents WHERE type IN ({placeholders}) ORDER BY created_at DESC, path"
            params: list[Any] = list(types)
        else:
            query = "SELECT * FROM documents ORDER BY created_at DESC, path"
            params = []
        async with self.db.execute(query, params) as cur:
            return [dict(row) for row in await cur.fetchall()]

    async def search_fulltext(self, terms: list[str], limit: int, match_all: bool = True) -> list[dict]:
        """Ranked FTS5 match; ``rank`` is the negated bm25 score (higher is better)."""
        if not terms:
            return []
        operator = " AND " if match_all else " OR "
        match_expr = operator.join(_fts_phrase(term) for term in terms)
        title_weight, content_weight = _BM25_WEIGHTS
        query = f"""
            SELECT d.*, -bm25(documents_fts, {title_weight}, {content_weight}) AS rank
            FROM documents_fts
            JOIN documents d ON d.rowid = documents_fts.rowid
            WHERE documents_fts MATCH ?
            ORDER BY bm25(documents_fts, {title_weight}, {content_weight})
            LIMIT ?
        """
        async with self.db.execute(query, (match_expr, limit)) as cur:
            return [dict(row) for row in await cur.fetchall()]

    async def search_like(self, terms: list[str], limit: int) -> list[dict]:
        """Case-insensitive substring match, OR across terms."""
        if not terms:
            return []
        clauses: list[str] = []
        params: list[Any] = []
        for term in terms:
            needle = f"%{term.lower()}%"
            clauses.append("(lower(title) LIKE ? OR lower(content) LIKE ?)")
            params.extend([needle, needle])
        query = f"""
            SELECT * FROM documents
            WHERE {' OR '.join(clauses)}
            ORDER BY updated_at DESC, path ASC
            LIMIT ?
        """
        params.append(limit)
        async with self.db.execute(query, params) as cur:
            return [dict(row) for row in await cur.fetchall()]

    async def delete_by_path(self, path: str) -> bool:
        doc = await self.get_by_path(path)
        if not doc:
            return False
        await self.db.execute(
            "DELETE FROM entity_tags WHERE entity_type = 'document' AND entity_id = ?",
            (doc["id"],),
        )
        await self.db.execute("DELETE FROM documents WHERE id = ?", (doc["id"],))
        await self.db.commit()
        return True
