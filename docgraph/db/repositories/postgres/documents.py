"""PostgreSQL implementation of DocumentRepository."""
from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

import asyncpg

# search_vector is left out of result rows
_COLUMNS = "id, path, title, content, type, metadata_json, created_at, updated_at"


class PostgresDocumentRepository:
    """Postgres-backed document storage with tsvector ranking."""

    def __init__(self, db: asyncpg.Connection):
        self.db = db

    def _build_where_clause(self, filters: dict | None = None) -> tuple[str, list[Any]]:
        filters = filters or {}
        clauses = ["1 = 1"]
        params: list[Any] = []

        def add_param(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if filters.get("type"):
            clauses.append(f"type = {add_param(str(filters['type']))}")
        if filters.get("status"):
            status = add_param(str(filters["status"]).strip().upper())
            clauses.append(
                f"""
                EXISTS (
                    SELECT 1 FROM tasks t
                    WHERE t.file_path = documents.path AND t.status = {status}
                )
                """
            )
        tags = [str(tag) for tag in filters.get("tags") or [] if str(tag).strip()]
        if tags:
            clauses.append(
                f"""
                EXISTS (
                    SELECT 1 FROM entity_tags et
                    JOIN tags tg ON tg.id = et.tag_id
                    WHERE et.entity_type = 'document'
                      AND et.entity_id = documents.id
                      AND tg.name = ANY({add_param(tags)}::text[])
                )
                """
            )
        if filters.get("search"):
            needle = add_param(f"%{str(filters['search']).strip()}%")
            clauses.append(f"(title ILIKE {needle} OR content ILIKE {needle})")

        return " AND ".join(clauses), params

    async def upsert(self, doc_data: dict) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        metadata = doc_data.get("metadata", {})
        metadata_json = json.dumps(metadata if isinstance(metadata, dict) else {})

        row = await self.db.fetchrow(
            f"""INSERT INTO documents (
                id, path, title, content, type, metadata_json, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT(path) DO UPDATE SET
                title=EXCLUDED.title,
                content=EXCLUDED.content,
                type=EXCLUDED.type,
                metadata_json=EXCLUDED.metadata_json,
                updated_at=EXCLUDED.updated_at
            RETURNING {_COLUMNS}
            """,
            doc_data.get("id") or uuid.uuid4().hex,
            doc_data["path"],
            doc_data.get("title", ""),
            doc_data.get("content", ""),
            doc_data.get("type", "documentation"),
            metadata_json,
            now,
            now,
        )
        return dict(row)

    async def get_by_path(self, path: str) -> dict | None:
        row = await self.db.fetchrow(f"SELECT {_COLUMNS} FROM documents WHERE path = $1 LIMIT 1", path)
        return dict(row) if row else None

    async def list_paginated(self, offset: int, limit: int, filters: dict | None = None) -> list[dict]:
        where_sql, params = self._build_where_clause(filters)
        limit_idx = len(params) + 1
        offset_idx = len(params) + 2
        query = f"""
            SELECT {_COLUMNS} FROM documents
            WHERE {where_sql}
            ORDER BY updated_at DESC, path ASC
            LIMIT ${limit_idx} OFFSET ${offset_idx}
        """
        rows = await self.db.fetch(query, *params, limit, offset)
        return [dict(r) for r in rows]

    async def count(self, filters: dict | None = None) -> int:
        where_sql, params = self._build_where_clause(filters)
        value = await self.db.fetchval(f"SELECT COUNT(*) FROM documents WHERE {where_sql}", *params)
        return int(value or 0)

    async def list_all(self, types: list[str] | None = None) -> list[dict]:
        if types:
            rows = await self.db.fetch(
                f"SELECT {_COLUMNS} FROM documents WHERE type = ANY($1::text[]) ORDER BY created_at DESC, path",
                list(types),
            )
        else:
            rows = await self.db.fetch(f"SELECT {_COLUMNS} FROM documents ORDER BY created_at DESC, path")
        return [dict(r) for r in rows]

    async def search_fulltext(self, terms: list[str], limit: int, match_all: bool = True) -> list[dict]:
        if not terms:
            return []
        if match_all:
            tsquery = "plainto_tsquery('english', $1)"
            text = " ".join(terms)
        else:
            tsquery = "websearch_to_tsquery('english', $1)"
            text = " or ".join(terms)
        rows = await self.db.fetch(
            f"""
            SELECT {_COLUMNS}, ts_rank(search_vector, {tsquery}) AS rank
            FROM documents
            WHERE search_vector @@ {tsquery}
            ORDER BY rank DESC, path ASC
            LIMIT $2
            """,
            text,
            limit,
        )
        return [dict(r) for r in rows]

    async def search_like(self, terms: list[str], limit: int) -> list[dict]:
        if not terms:
            return []
        params: list[Any] = []
        clauses: list[str] = []
        for term in terms:
            params.append(f"%{term}%")
            idx = len(params)
            clauses.append(f"(title ILIKE ${idx} OR content ILIKE ${idx})")
        params.append(limit)
        rows = await self.db.fetch(
            f"""
            SELECT {_COLUMNS} FROM documents
            WHERE {' OR '.join(clauses)}
            ORDER BY updated_at DESC, path ASC
            LIMIT ${len(params)}
            """,
            *params,
        )
        return [dict(r) for r in rows]

    async def delete_by_path(self, path: str) -> bool:
        doc = await self.get_by_path(path)
        if not doc:
            return False
        await self.db.execute(
            "DELETE FROM entity_tags WHERE entity_type = 'document' AND entity_id = $1",
            doc["id"],
        )
        await self.db.execute("DELETE FROM documents WHERE id = $1", doc["id"])
        return True
