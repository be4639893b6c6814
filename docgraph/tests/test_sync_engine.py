import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from watchfiles import Change

from docgraph.db import connection
from docgraph.db.file_watcher import FileWatcher
from docgraph.db.migrations import run_migrations
from docgraph.db.repositories.documents import SqliteDocumentRepository
from docgraph.db.repositories.links import SqliteReferenceRepository
from docgraph.db.sync_engine import SyncEngine
from docgraph.services.graph import GraphService
from docgraph.services.indexer import Indexer


def _write(path: Path, html: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(html, encoding="utf-8")
    return path


class SyncEngineOperationTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.db = await connection.open_connection(backend="sqlite", db_path=":memory:")
        await run_migrations(self.db)
        self.graph = GraphService(self.db)
        self.engine = SyncEngine(self.db, indexer=Indexer(self.db, base_dir=self.root), graph=self.graph)
        self.documents = SqliteDocumentRepository(self.db)
        self.references = SqliteReferenceRepository(self.db)

        _write(
            self.root / "tasks" / "active-tasks" / "a.html",
            "<html><head><title>Alpha</title></head><body>Blocked by Beta</body></html>",
        )
        _write(
            self.root / "tasks" / "active-tasks" / "b.html",
            "<html><head><title>Beta</title></head><body>Standalone</body></html>",
        )

    async def asyncTearDown(self) -> None:
        await connection.close_connection(self.db)
        self._tmp.cleanup()

    async def test_index_roots_records_completed_operation_and_references(self) -> None:
        stats = await self.engine.index_roots([self.root / "tasks"], trigger="test")

        self.assertEqual(stats["processed"], 2)
        self.assertEqual(stats["failed"], 0)
        self.assertEqual(stats["references"], 2)
        self.assertTrue(stats["operation_id"].startswith("OP-"))

        operation = await self.engine.get_operation(stats["operation_id"])
        self.assertEqual(operation["status"], "completed")
        self.assertEqual(operation["kind"], "index")
        self.assertEqual(operation["trigger"], "test")
        self.assertEqual(operation["phase"], "done")
        self.assertEqual(operation["stats"]["processed"], 2)
        self.assertEqual(len(await self.references.list_all()), 2)

    async def test_pre_started_operation_is_reused_and_awaitable(self) -> None:
        operation_id = await self.engine.start_operation("references", trigger="api")
        running = await self.engine.get_operation(operation_id)
        self.assertEqual(running["status"], "running")
        self.assertEqual(running["phase"], "queued")

        stats = await self.engine.rebuild_references(operation_id=operation_id)
        finished = await self.engine.wait_for_operation(operation_id, timeout=1)

        self.assertEqual(stats["operation_id"], operation_id)
        self.assertEqual(finished["status"], "completed")
        self.assertEqual(len(await self.engine.list_operations()), 1)

    async def test_failed_job_marks_operation_failed(self) -> None:
        self.engine.indexer.index = AsyncMock(side_effect=ConnectionError("store gone"))

        with self.assertRaises(ConnectionError):
            await self.engine.index_roots([self.root / "tasks"])

        operations = await self.engine.list_operations()
        self.assertEqual(operations[0]["status"], "failed")
        self.assertEqual(operations[0]["error"], "store gone")

    async def test_cancel_event_marks_operation_cancelled(self) -> None:
        cancel_event = asyncio.Event()
        cancel_event.set()

        stats = await self.engine.index_roots([self.root / "tasks"], cancel_event=cancel_event)

        self.assertTrue(stats["cancelled"])
        self.assertNotIn("references", stats)
        self.assertEqual((await self.engine.get_operation(stats["operation_id"]))["status"], "cancelled")

    async def test_operation_history_is_bounded(self) -> None:
        self.engine._max_operation_history = 3
        ids = [await self.engine.start_operation("references") for _ in range(5)]

        listed = await self.engine.list_operations(limit=10)

        self.assertEqual([op["id"] for op in listed], list(reversed(ids))[:3])
        self.assertIsNone(await self.engine.get_operation(ids[0]))

    async def test_references_invalidate_cached_graph(self) -> None:
        await self.engine.index_roots([self.root / "tasks"], rebuild_references=False)
        before = await self.graph.get_graph()

        _write(
            self.root / "tasks" / "active-tasks" / "c.html",
            "<html><head><title>Gamma</title></head><body>Gamma</body></html>",
        )
        await self.engine.index_roots([self.root / "tasks"])
        after = await self.graph.get_graph()

        self.assertEqual(len(before.nodes), 2)
        self.assertEqual(len(after.nodes), 3)

    async def test_sync_changed_files_indexes_and_removes(self) -> None:
        changed = self.root / "tasks" / "active-tasks" / "a.html"
        stats = await self.engine.sync_changed_files([("modified", changed), ("modified", self.root / "notes.txt")])
        self.assertEqual(stats, {"indexed": 1, "removed": 0, "failed": 0})
        self.assertIsNotNone(await self.documents.get_by_path("tasks/active-tasks/a.html"))

        changed.unlink()
        stats = await self.engine.sync_changed_files([("deleted", changed)])
        self.assertEqual(stats, {"indexed": 0, "removed": 1, "failed": 0})
        self.assertIsNone(await self.documents.get_by_path("tasks/active-tasks/a.html"))

    async def test_sync_changed_files_counts_failures(self) -> None:
        missing = self.root / "tasks" / "active-tasks" / "gone.html"

        stats = await self.engine.sync_changed_files([("modified", missing)])

        self.assertEqual(stats["failed"], 1)

    async def test_prune_session_logs_reports_removed_paths(self) -> None:
        logs = self.root / "logs"
        for day in ("01", "02"):
            _write(
                logs / "2024" / "03" / f"{day}.html",
                f'<div class="log-entry"><h3>Day</h3><div class="content">entry {day}</div></div>',
            )
        ingest = await self.engine.index_session_logs(logs)
        self.assertEqual(ingest["processed"], 2)

        stats = await self.engine.prune_session_logs(1)

        self.assertEqual(stats["removed"], ["logs/2024/03/01.html"])
        self.assertEqual(stats["removedCount"], 1)
        self.assertEqual(stats["keep"], 1)


class FileWatcherClassifyTests(unittest.TestCase):
    def test_only_html_changes_are_classified(self) -> None:
        changes = {
            (Change.added, "/content/tasks/a.html"),
            (Change.modified, "/content/tasks/b.html"),
            (Change.deleted, "/content/tasks/c.html"),
            (Change.modified, "/content/tasks/notes.txt"),
            (Change.modified, "/content/tasks/.swap.html"),
        }

        classified = FileWatcher.classify_changes(changes)

        self.assertEqual(
            classified,
            [
                ("modified", Path("/content/tasks/a.html")),
                ("modified", Path("/content/tasks/b.html")),
                ("deleted", Path("/content/tasks/c.html")),
            ],
        )


class FileWatcherLifecycleTests(unittest.IsolatedAsyncioTestCase):
    async def test_no_existing_roots_stops_immediately(self) -> None:
        watcher = FileWatcher()
        engine = AsyncMock()

        with patch("docgraph.db.file_watcher.awatch") as awatch:
            await watcher.start(engine, [Path("/definitely/not/here")])
            await watcher._task

        awatch.assert_not_called()
        self.assertFalse(watcher.is_running)
        await watcher.stop()


if __name__ == "__main__":
    unittest.main()
