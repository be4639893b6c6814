"""PostgreSQL implementation of TaskRepository."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
import asyncpg

class PostgresTaskRepository:
    """PostgreSQL-backed task storage keyed by file path."""

    def __init__(self, db: asyncpg.Connection):
        self.db = db

    async def upsert(self, task_data: dict) -> dict:
        now = datetime.now(timezone.utc).isoformat()

        query = """
            INSERT INTO tasks (
                id, file_path, title, description, status, priority, type,
                last_modified, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            ON CONFLICT(file_path) DO UPDATE SET
                title=EXCLUDED.title, description=EXCLUDED.description,
                status=EXCLUDED.status, priority=EXCLUDED.priority,
                type=EXCLUDED.type, last_modified=EXCLUDED.last_modified,
                updated_at=EXCLUDED.updated_at
            RETURNING *
        """
        row = await self.db.fetchrow(
            query,
            task_data.get("id") or uuid.uuid4().hex,
            task_data["filePath"],
            task_data.get("title", ""),
            task_data.get("description", ""),
            task_data.get("status", "ACTIVE"),
            task_data.get("priority", "MEDIUM"),
            task_data.get("type", "PROJECT"),
            task_data.get("lastModified", ""),
            now,
            now,
        )
        return dict(row)

    async def get_by_path(self, file_path: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM tasks WHERE file_path = $1", file_path)
        return dict(row) if row else None

    async def list_all(self, status: str | None = None) -> list[dict]:
        if status:
            rows = await self.db.fetch(
                "SELECT * FROM tasks WHERE status = $1 ORDER BY updated_at DESC, file_path",
                status.upper(),
            )
        else:
            rows = await self.db.fetch("SELECT * FROM tasks ORDER BY updated_at DESC, file_path")
        return [dict(r) for r in rows]

    async def delete_by_path(self, file_path: str) -> None:
        task = await self.get_by_path(file_path)
        if not task:
            return
        await self.db.execute(
            "DELETE FROM entity_tags WHERE entity_type = 'task' AND entity_id = $1",
            task["id"],
        )
        await self.db.execute("DELETE FROM tasks WHERE id = $1", task["id"])
