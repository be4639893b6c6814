"""SQLite implementation of MemoryRepository."""
from __future__ import annotations

import json
from datetime import datetime, timezone

import aiosqlite


class SqliteMemoryRepository:
    """Append-only session-log observations attached to a document."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def append(self, document_id: str, content: str, metadata: dict | None = None, memory_type: str = "OBSERVATION") -> int:
        now = datetime.now(timezone.utc).isoformat()
        async with self.db.execute(
            """INSERT INTO memories (document_id, type, content, metadata_json, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (document_id, memory_type, content, json.dumps(metadata or {}), now),
        ) as cur:
            await self.db.commit()
            return cur.lastrowid or 0

    async def list_for_document(self, document_id: str) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM memories WHERE document_id = ? ORDER BY id",
            (document_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def count_for_document(self, document_id: str) -> int:
        async with self.db.execute(
            "SELECT COUNT(*) FROM memories WHERE document_id = ?", (document_id,)
        ) as cur:
            row = await cur.fetchone()
            return int(row[0] if row else 0)

    async def delete_for_document(self, document_id: str) -> None:
        await self.db.execute("DELETE FROM memories WHERE document_id = ?", (document_id,))
        await self.db.commit()
