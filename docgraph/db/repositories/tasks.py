"""SQLite implementation of TaskRepository."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

import aiosqlite


class SqliteTaskRepository:
    """SQLite-backed task storage keyed by file path."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def upsert(self, task_data: dict) -> dict:
        now = datetime.now(timezone.utc).isoformat()

        await self.db.execute(
            """INSERT INTO tasks (
                id, file_path, title, description, status, priority, type,
                last_modified, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(file_path) DO UPDATE SET
                title=excluded.title, description=excluded.description,
                status=excluded.status, priority=excluded.priority,
                type=excluded.type, last_modified=excluded.last_modified,
                updated_at=excluded.updated_at
            """,
            (
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
            ),
        )
        await self.db.commit()
        row = await self.get_by_path(task_data["filePath"])
        if row is None:
            raise RuntimeError(f"Task '{task_data['filePath']}' could not be stored")
        return row

    async def get_by_path(self, file_path: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM tasks WHERE file_path = ?", (file_path,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_all(self, status: str | None = None) -> list[dict]:
        if status:
            async with self.db.execute(
                "SELECT * FROM tasks WHERE status = ? ORDER BY updated_at DESC, file_path",
                (status.upper(),),
            ) as cur:
                return [dict(r) for r in await cur.fetchall()]
        else:
            async with self.db.execute(
                "SELECT * FROM tasks ORDER BY updated_at DESC, file_path"
            ) as cur:
                return [dict(r) for r in await cur.fetchall()]

    async def delete_by_path(self, file_path: str) -> None:
        task = await self.get_by_path(file_path)
        if not task:
            return
        await self.db.execute(
            "DELETE FROM entity_tags WHERE entity_type = 'task' AND entity_id = ?",
            (task["id"],),
        )
        await self.db.execute("DELETE FROM tasks WHERE id = ?", (task["id"],))
        await self.db.commit()
