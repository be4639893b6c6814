import asyncio
import unittest
from unittest.mock import AsyncMock, patch

from docgraph.db import connection
from docgraph.db.migrations import run_migrations
from docgraph.db.repositories.documents import SqliteDocumentRepository
from docgraph.db.repositories.links import SqliteReferenceRepository, SqliteTagRepository
from docgraph.db.repositories.memories import SqliteMemoryRepository
from docgraph.db.repositories.tasks import SqliteTaskRepository
from docgraph.models import Reference


class DocumentRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await connection.open_connection(backend="sqlite", db_path=":memory:")
        await run_migrations(self.db)
        self.repo = SqliteDocumentRepository(self.db)
        self.task_repo = SqliteTaskRepository(self.db)
        self.tag_repo = SqliteTagRepository(self.db)

    async def asyncTearDown(self) -> None:
        await connection.close_connection(self.db)

    async def test_upsert_is_idempotent_per_path(self) -> None:
        first = await self.repo.upsert({"path": "docs/a.html", "title": "A", "content": "one"})
        await asyncio.sleep(0.01)
        second = await self.repo.upsert({"path": "docs/a.html", "title": "A2", "content": "two"})

        self.assertEqual(first["id"], second["id"])
        self.assertEqual(first["created_at"], second["created_at"])
        self.assertGreater(second["updated_at"], first["updated_at"])
        self.assertEqual(second["title"], "A2")
        self.assertEqual(await self.repo.count(), 1)

    async def test_upsert_raises_when_row_cannot_be_read_back(self) -> None:
        with patch.object(self.repo, "get_by_path", AsyncMock(return_value=None)):
            with self.assertRaises(RuntimeError):
                await self.repo.upsert({"path": "docs/lost.html", "title": "Lost"})

    async def test_metadata_is_stored_as_json(self) -> None:
        row = await self.repo.upsert({"path": "docs/m.html", "title": "M", "metadata": {"priority": "HIGH"}})

        self.assertEqual(row["metadata_json"], '{"priority": "HIGH"}')

    async def test_pagination_total_counts_all_matches(self) -> None:
        for idx in range(12):
            await self.repo.upsert({"path": f"docs/{idx:02d}.html", "title": f"Doc {idx}", "type": "documentation"})

        page = await self.repo.list_paginated(5, 5, {"type": "documentation"})
        total = await self.repo.count({"type": "documentation"})

        self.assertEqual(len(page), 5)
        self.assertEqual(total, 12)
        all_rows = await self.repo.list_paginated(0, 100, {"type": "documentation"})
        self.assertEqual([row["path"] for row in page], [row["path"] for row in all_rows[5:10]])

    async def test_filters_by_status_tags_and_search(self) -> None:
        task_doc = await self.repo.upsert({"path": "tasks/a.html", "title": "Alpha", "content": "deploy notes", "type": "task"})
        await self.task_repo.upsert({"filePath": "tasks/a.html", "title": "Alpha", "status": "ACTIVE"})
        other = await self.repo.upsert({"path": "docs/b.html", "title": "Beta", "content": "reading list"})
        await self.tag_repo.replace_entity_tags("document", task_doc["id"], ["infra"])
        await self.tag_repo.replace_entity_tags("document", other["id"], ["reading"])

        self.assertEqual(await self.repo.count({"status": "active"}), 1)
        self.assertEqual(await self.repo.count({"status": "resolved"}), 0)
        self.assertEqual(await self.repo.count({"tags": ["infra", "missing"]}), 1)
        self.assertEqual(await self.repo.count({"search": "READING"}), 1)
        self.assertEqual(await self.repo.count({"type": "task", "tags": ["reading"]}), 0)

    async def test_delete_by_path_drops_tag_links(self) -> None:
        doc = await self.repo.upsert({"path": "docs/a.html", "title": "A"})
        await self.tag_repo.replace_entity_tags("document", doc["id"], ["x"])

        self.assertTrue(await self.repo.delete_by_path("docs/a.html"))
        self.assertFalse(await self.repo.delete_by_path("docs/a.html"))
        self.assertIsNone(await self.repo.get_by_path("docs/a.html"))
        tag = await self.tag_repo.get_by_name("x")
        self.assertEqual(await self.tag_repo.get_entities_for_tag(tag["id"]), [])


class TagRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await connection.open_connection(backend="sqlite", db_path=":memory:")
        await run_migrations(self.db)
        self.repo = SqliteTagRepository(self.db)

    async def asyncTearDown(self) -> None:
        await connection.close_connection(self.db)

    async def test_tags_are_reused_across_entities(self) -> None:
        first = await self.repo.replace_entity_tags("document", "d1", ["infra", "ops"])
        second = await self.repo.replace_entity_tags("task", "t1", ["infra"])

        self.assertEqual(second[0], first[0])
        self.assertEqual([tag["name"] for tag in await self.repo.list_all()], ["infra", "ops"])
        self.assertEqual(await self.repo.get_or_create("infra"), first[0])

    async def test_replace_entity_tags_swaps_associations(self) -> None:
        await self.repo.replace_entity_tags("document", "d1", ["old"])
        await self.repo.replace_entity_tags("document", "d1", ["new", "", "new"])

        names = [tag["name"] for tag in await self.repo.get_tags_for("document", "d1")]
        self.assertEqual(names, ["new"])
        # The tag row itself survives
        self.assertIsNotNone(await self.repo.get_by_name("old"))


class MemoryAndReferenceRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await connection.open_connection(backend="sqlite", db_path=":memory:")
        await run_migrations(self.db)
        self.documents = SqliteDocumentRepository(self.db)
        self.memories = SqliteMemoryRepository(self.db)
        self.references = SqliteReferenceRepository(self.db)

    async def asyncTearDown(self) -> None:
        await connection.close_connection(self.db)

    async def test_memories_append_in_order_and_cascade_with_document(self) -> None:
        doc = await self.documents.upsert({"path": "logs/2024/01/01.html", "title": "Log", "type": "memory"})
        await self.memories.append(doc["id"], "first", {"timestamp": "09:00"})
        await self.memories.append(doc["id"], "second")

        rows = await self.memories.list_for_document(doc["id"])
        self.assertEqual([row["content"] for row in rows], ["first", "second"])
        self.assertEqual(rows[0]["type"], "OBSERVATION")

        await self.documents.delete_by_path("logs/2024/01/01.html")
        self.assertEqual(await self.memories.count_for_document(doc["id"]), 0)

    async def test_references_are_replaced_wholesale(self) -> None:
        a = await self.documents.upsert({"path": "docs/a.html", "title": "A"})
        b = await self.documents.upsert({"path": "docs/b.html", "title": "B"})

        await self.references.replace_all([
            Reference(source=a["id"], target=b["id"], type="title", weight=0.6, signals=["title", "directory"]),
        ])
        count = await self.references.replace_all([
            Reference(source=b["id"], target=a["id"], type="directory", weight=0.2, signals=["directory"]),
        ])

        rows = await self.references.list_all()
        self.assertEqual(count, 1)
        self.assertEqual([(row["source_id"], row["target_id"]) for row in rows], [(b["id"], a["id"])])
        self.assertEqual(len(await self.references.list_for_document(a["id"])), 1)

        await self.documents.delete_by_path("docs/a.html")
        self.assertEqual(await self.references.list_all(), [])


if __name__ == "__main__":
    unittest.main()
