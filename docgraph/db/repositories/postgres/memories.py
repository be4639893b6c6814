"""PostgreSQL implementation of MemoryRepository."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import asyncpg


class PostgresMemoryRepository:
    def __init__(self, db: asyncpg.Connection):
        self.db = db

    async def append(self, document_id: str, content: str, metadata: dict | None = None, memory_type: str = "OBSERVATION") -> int:
        now = datetime.now(timezone.utc).isoformat()
        val = await self.db.fetchval(
            """INSERT INTO memories (document_id, type, content, metadata_json, created_at)
               VALUES ($1, $2, $3, $4, $5) RETURNING id""",
            document_id, memory_type, content, json.dumps(metadata or {}), now,
        )
        return int(val or 0)

    async def list_for_document(self, document_id: str) -> list[dict]:
        rows = await self.db.fetch(
            "SELECT * FROM memories WHERE document_id = $1 ORDER BY id", document_id,
        )
        return [dict(r) for r in rows]

    async def count_for_document(self, document_id: str) -> int:
        val = await self.db.fetchval("SELECT COUNT(*) FROM memories WHERE document_id = $1", document_id)
        return int(val or 0)

    async def delete_for_document(self, document_id: str) -> None:
        await self.db.execute("DELETE FROM memories WHERE document_id = $1", document_id)
