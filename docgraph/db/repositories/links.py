"""SQLite implementation of TagRepository and ReferenceRepository."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Iterable

import aiosqlite

from docgraph.models import Reference


class SqliteTagRepository:
    """Cross-entity tag management."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get_by_name(self, name: str) -> dict | None:
        async with self.db.execute("SELECT * FROM tags WHERE name = ?", (name,)) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def get_or_create(self, name: str, color: str = "") -> int:
        """Return the id of tag ``name``, creating it when missing.

        Select, insert-if-absent, then re-select so concurrent writers
        converge on a single row.
        """
        existing = await self.get_by_name(name)
        if existing:
            return int(existing["id"])

        await self.db.execute(
            "INSERT INTO tags (name, color) VALUES (?, ?) ON CONFLICT(name) DO NOTHING",
            (name, color),
        )
        await self.db.commit()
        created = await self.get_by_name(name)
        if not created:
            raise RuntimeError(f"Tag '{name}' could not be created")
        return int(created["id"])

    async def replace_entity_tags(self, entity_type: str, entity_id: str, names: Iterable[str]) -> list[int]:
        """Swap the entity's tag associations for ``names``. Tags themselves are kept."""
        tag_ids: list[int] = []
        for name in names:
            clean = str(name).strip()
            if not clean:
                continue
            tag_id = await self.get_or_create(clean)
            if tag_id not in tag_ids:
                tag_ids.append(tag_id)

        await self.db.execute(
            "DELETE FROM entity_tags WHERE entity_type = ? AND entity_id = ?",
            (entity_type, entity_id),
        )
        await self.db.executemany(
            "INSERT OR IGNORE INTO entity_tags (entity_type, entity_id, tag_id) VALUES (?, ?, ?)",
            [(entity_type, entity_id, tag_id) for tag_id in tag_ids],
        )
        await self.db.commit()
        return tag_ids

    async def get_tags_for(self, entity_type: str, entity_id: str) -> list[dict]:
        async with self.db.execute(
            """SELECT t.id, t.name, t.color FROM tags t
               JOIN entity_tags et ON t.id = et.tag_id
               WHERE et.entity_type = ? AND et.entity_id = ?
               ORDER BY t.name""",
            (entity_type, entity_id),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def get_entities_for_tag(self, tag_id: int) -> list[dict]:
        async with self.db.execute(
            "SELECT entity_type, entity_id FROM entity_tags WHERE tag_id = ?",
            (tag_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_all(self) -> list[dict]:
        async with self.db.execute("SELECT * FROM tags ORDER BY name") as cur:
            return [dict(r) for r in await cur.fetchall()]


class SqliteReferenceRepository:
    """Inferred document-to-document edges, replaced wholesale per run."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def replace_all(self, references: Iterable[Reference]) -> int:
        now = datetime.now(timezone.utc).isoformat()
        rows = [
            (ref.source, ref.target, ref.type, ref.weight, json.dumps(ref.signals), now)
            for ref in references
        ]
        await self.db.execute("DELETE FROM document_references")
        await self.db.executemany(
            """INSERT INTO document_references (
                source_id, target_id, type, weight, signals_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)""",
            rows,
        )
        await self.db.commit()
        return len(rows)

    async def list_all(self) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM document_references ORDER BY weight DESC, id"
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_for_document(self, document_id: str) -> list[dict]:
        async with self.db.execute(
            """SELECT * FROM document_references
               WHERE source_id = ? OR target_id = ?
               ORDER BY weight DESC, id""",
            (document_id, document_id),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]
