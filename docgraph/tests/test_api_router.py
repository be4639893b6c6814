import tempfile
import types
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from fastapi import HTTPException

from docgraph import config
from docgraph.db import connection
from docgraph.db.migrations import run_migrations
from docgraph.routers import api as api_router
from docgraph.services.indexer import Indexer


def _write(path: Path, html: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(html, encoding="utf-8")
    return path


class ApiRouterTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name).resolve()
        self.db = await connection.open_connection(backend="sqlite", db_path=":memory:")
        await run_migrations(self.db)

        self._patches = [
            patch.object(config, "CONTENT_ROOT", self.root),
            patch.object(config, "TASK_ROOTS", ["tasks"]),
            patch.object(config, "MEMORY_ROOTS", ["agents/memories"]),
            patch.object(config, "DOCUMENTATION_ROOTS", ["docs"]),
            patch.object(config, "SESSION_LOGS_ROOT", "agents/memories/session-logs"),
        ]
        for patcher in self._patches:
            patcher.start()

        _write(
            self.root / "tasks" / "active-tasks" / "a.html",
            '<html><head><title>Alpha</title><meta name="graph-tags" content="infra"></head>'
            "<body>Depends on Beta</body></html>",
        )
        _write(
            self.root / "tasks" / "pending-tasks" / "b.html",
            "<html><head><title>Beta</title></head><body>Waiting</body></html>",
        )
        _write(self.root / "docs" / "guide.html", "<html><head><title>Guide</title></head><body>Read me</body></html>")
        _write(self.root / "secret.html", "<p>outside the allowed roots</p>")
        await Indexer(self.db, base_dir=self.root).index(config.index_roots())

    async def asyncTearDown(self) -> None:
        for patcher in reversed(self._patches):
            patcher.stop()
        await connection.close_connection(self.db)
        self._tmp.cleanup()

    def _request(self, db=None):
        return types.SimpleNamespace(
            app=types.SimpleNamespace(state=types.SimpleNamespace(db=db if db is not None else self.db))
        )

    def _request_without_db(self):
        return types.SimpleNamespace(app=types.SimpleNamespace(state=types.SimpleNamespace()))

    # ── Raw documents ───────────────────────────────────────────────

    async def test_raw_document_is_served_with_cache_header(self) -> None:
        response = await api_router.get_raw_document("tasks/active-tasks/a.html")

        self.assertEqual(response.status_code, 200)
        self.assertIn(b"<title>Alpha</title>", response.body)
        self.assertEqual(response.headers["cache-control"], "public, max-age=3600")

    async def test_path_traversal_is_forbidden(self) -> None:
        for doc_path in ("../etc/passwd", "tasks/../../outside.html", "secret.html", "/etc/hosts"):
            with self.subTest(doc_path=doc_path):
                with self.assertRaises(HTTPException) as ctx:
                    await api_router.get_raw_document(doc_path)
                self.assertEqual(ctx.exception.status_code, 403)

    async def test_missing_or_non_html_document_is_not_found(self) -> None:
        _write(self.root / "docs" / "notes.txt", "plain")
        for doc_path in ("tasks/active-tasks/missing.html", "docs/notes.txt"):
            with self.subTest(doc_path=doc_path):
                with self.assertRaises(HTTPException) as ctx:
                    await api_router.get_raw_document(doc_path)
                self.assertEqual(ctx.exception.status_code, 404)

    async def test_listing_requires_a_known_status(self) -> None:
        for status in (None, "", "bogus"):
            with self.subTest(status=status):
                with self.assertRaises(HTTPException) as ctx:
                    await api_router.list_documents_by_status(status=status, format="html")
                self.assertEqual(ctx.exception.status_code, 400)

    async def test_listing_filters_by_directory_status(self) -> None:
        items = await api_router.list_documents_by_status(status="active", format="json")

        self.assertEqual([(item.title, item.path) for item in items], [("Alpha", "tasks/active-tasks/a.html")])

        response = await api_router.list_documents_by_status(status="Pending", format="html")
        self.assertIn(b"Documents with status: PENDING", response.body)
        self.assertIn(b'href="/api/document/tasks/pending-tasks/b.html"', response.body)

    # ── Document query ──────────────────────────────────────────────

    async def test_query_documents_paginates_with_total(self) -> None:
        payload = await api_router.query_documents(
            self._request(), type=None, status=None, tags=None, search=None, limit=2, offset=0
        )

        self.assertEqual(payload.total, 3)
        self.assertEqual(len(payload.documents), 2)
        self.assertEqual(payload.limit, 2)

        rest = await api_router.query_documents(
            self._request(), type=None, status=None, tags=None, search=None, limit=2, offset=2
        )
        self.assertEqual(rest.total, 3)
        self.assertEqual(len(rest.documents), 1)

    async def test_query_documents_filters(self) -> None:
        tagged = await api_router.query_documents(
            self._request(), type=None, status=None, tags="infra, other", search=None, limit=10, offset=0
        )
        self.assertEqual([doc.title for doc in tagged.documents], ["Alpha"])
        self.assertEqual(tagged.documents[0].tags, ["infra"])

        pending = await api_router.query_documents(
            self._request(), type="task", status="pending", tags=None, search=None, limit=10, offset=0
        )
        self.assertEqual([doc.title for doc in pending.documents], ["Beta"])

        searched = await api_router.query_documents(
            self._request(), type=None, status=None, tags=None, search="read me", limit=10, offset=0
        )
        self.assertEqual([doc.path for doc in searched.documents], ["docs/guide.html"])

    async def test_query_documents_rejects_unknown_type(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await api_router.query_documents(
                self._request(), type="note", status=None, tags=None, search=None, limit=10, offset=0
            )
        self.assertEqual(ctx.exception.status_code, 400)

        docs = await api_router.query_documents(
            self._request(), type="Documentation", status=None, tags=None, search=None, limit=10, offset=0
        )
        self.assertEqual([doc.path for doc in docs.documents], ["docs/guide.html"])

    async def test_missing_store_is_unavailable(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await api_router.list_tasks(self._request_without_db(), status=None)
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_list_tasks(self) -> None:
        tasks = await api_router.list_tasks(self._request(), status=None)
        self.assertEqual(sorted(task.title for task in tasks), ["Alpha", "Beta"])

        active = await api_router.list_tasks(self._request(), status="active")
        self.assertEqual([(task.title, task.status, task.tags) for task in active], [("Alpha", "ACTIVE", ["infra"])])

    # ── Search ──────────────────────────────────────────────────────

    async def test_search_rejects_empty_query(self) -> None:
        with self.assertRaises(HTTPException) as ctx:
            await api_router.search_documents(self._request(), q="  ", limit=10)
        self.assertEqual(ctx.exception.status_code, 400)

    async def test_search_returns_ranked_results(self) -> None:
        payload = await api_router.search_documents(self._request(), q="Beta", limit=10)

        paths = [result["path"] for result in payload["results"]]
        self.assertIn("tasks/pending-tasks/b.html", paths)
        self.assertEqual(set(payload["results"][0]), {"id", "title", "path", "type", "excerpt", "rank"})

    async def test_search_store_failure_is_server_error(self) -> None:
        with patch.object(api_router.SearchEngine, "search", AsyncMock(side_effect=RuntimeError("disk"))):
            with self.assertLogs("docgraph.api", level="ERROR"):
                with self.assertRaises(HTTPException) as ctx:
                    await api_router.search_documents(self._request(), q="Beta", limit=10)
        self.assertEqual(ctx.exception.status_code, 500)

    # ── Graph ───────────────────────────────────────────────────────

    async def test_graph_is_built_and_cached_on_app_state(self) -> None:
        request = self._request()

        graph = await api_router.get_graph(request, refresh=False, source="live")

        self.assertEqual(len(graph.nodes), 3)
        self.assertTrue(any(link.type == "title" for link in graph.links))
        self.assertIsNotNone(request.app.state.graph)

        stored = await api_router.get_graph(request, refresh=False, source="stored")
        self.assertEqual(stored.source, "stored")
        self.assertEqual(stored.links, [])


if __name__ == "__main__":
    unittest.main()
