"""PostgreSQL implementation of TagRepository and ReferenceRepository."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Iterable

import asyncpg

from docgraph.models import Reference


class PostgresTagRepository:
    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def get_by_name(self, name: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM tags WHERE name = $1", name)
        return dict(row) if row else None

    async def get_or_create(self, name: str, color: str = "") -> int:
        existing = await self.get_by_name(name)
        if existing:
            return int(existing["id"])

        await self.db.execute(
            "INSERT INTO tags (name, color) VALUES ($1, $2) ON CONFLICT(name) DO NOTHING",
            name,
            color,
        )
        val = await self.db.fetchval("SELECT id FROM tags WHERE name = $1", name)
        if val is None:
            raise RuntimeError(f"Tag '{name}' could not be created")
        return int(val)

    async def replace_entity_tags(self, entity_type: str, entity_id: str, names: Iterable[str]) -> list[int]:
        tag_ids: list[int] = []
        for name in names:
            clean = str(name).strip()
            if not clean:
                continue
            tag_id = await self.get_or_create(clean)
            if tag_id not in tag_ids:
                tag_ids.append(tag_id)

        async with self.db.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "DELETE FROM entity_tags WHERE entity_type = $1 AND entity_id = $2",
                    entity_type, entity_id,
                )
                if tag_ids:
                    await conn.executemany(
                        """INSERT INTO entity_tags (entity_type, entity_id, tag_id) VALUES ($1, $2, $3)
                           ON CONFLICT DO NOTHING""",
                        [(entity_type, entity_id, tag_id) for tag_id in tag_ids],
                    )
        return tag_ids

    async def get_tags_for(self, entity_type: str, entity_id: str) -> list[dict]:
        rows = await self.db.fetch(
            """SELECT t.id, t.name, t.color FROM tags t
               JOIN entity_tags et ON t.id = et.tag_id
               WHERE et.entity_type = $1 AND et.entity_id = $2
               ORDER BY t.name""",
            entity_type, entity_id,
        )
        return [dict(r) for r in rows]

    async def get_entities_for_tag(self, tag_id: int) -> list[dict]:
        rows = await self.db.fetch(
            "SELECT entity_type, entity_id FROM entity_tags WHERE tag_id = $1", tag_id,
        )
        return [dict(r) for r in rows]

    async def list_all(self) -> list[dict]:
        rows = await self.db.fetch("SELECT * FROM tags ORDER BY name")
        return [dict(r) for r in rows]


class PostgresReferenceRepository:
    def __init__(self, db: asyncpg.Pool):
        self.db = db

    async def replace_all(self, references: Iterable[Reference]) -> int:
        now = datetime.now(timezone.utc).isoformat()
        rows = [
            (ref.source, ref.target, ref.type, ref.weight, json.dumps(ref.signals), now)
            for ref in references
        ]
        async with self.db.acquire() as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM document_references")
                if rows:
                    await conn.executemany(
                        """INSERT INTO document_references (
                            source_id, target_id, type, weight, signals_json, created_at
                        ) VALUES ($1, $2, $3, $4, $5, $6)""",
                        rows,
                    )
        return len(rows)

    async def list_all(self) -> list[dict]:
        rows = await self.db.fetch("SELECT * FROM document_references ORDER BY weight DESC, id")
        return [dict(r) for r in rows]

    async def list_for_document(self, document_id: str) -> list[dict]:
        rows = await self.db.fetch(
            """SELECT * FROM document_references
               WHERE source_id = $1 OR target_id = $1
               ORDER BY weight DESC, id""",
            document_id,
        )
        return [dict(r) for r in rows]
