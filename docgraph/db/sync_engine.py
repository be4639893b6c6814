"""Batch job orchestration: indexing, reference inference and session logs.

Every job runs as an observable operation with an id, phase, stats and a
completion event that callers (API handlers, the CLI, tests) can await.
"""
from __future__ import annotations

import asyncio
import copy
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable

from docgraph import config
from docgraph.db.connection import is_connection_error
from docgraph.db.factory import get_reference_repository
from docgraph.file_walker import is_html_file
from docgraph.models import IndexResult
from docgraph.reference_inference import infer_references
from docgraph.services.graph import GraphService
from docgraph.services.indexer import Indexer

logger = logging.getLogger("docgraph.sync")


class SyncEngine:
    """Runs indexing jobs against one store handle and tracks their progress."""

    def __init__(self, db: Any, indexer: Indexer | None = None, graph: GraphService | None = None):
        self.db = db
        self.indexer = indexer or Indexer(db)
        self.graph = graph
        self.reference_repo = get_reference_repository(db)
        self._ops_lock = asyncio.Lock()
        self._operations: dict[str, dict[str, Any]] = {}
        self._operation_order: list[str] = []
        self._active_operation_ids: set[str] = set()
        self._completion_events: dict[str, asyncio.Event] = {}
        self._max_operation_history = 40

    # ── Operation tracking ──────────────────────────────────────────

    async def start_operation(
        self,
        kind: str,
        trigger: str = "api",
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Create an observable operation and return its ID."""
        return await self._start_operation(kind, trigger, metadata or {})

    async def list_operations(self, limit: int = 20) -> list[dict[str, Any]]:
        """Return latest operation snapshots, newest first."""
        async with self._ops_lock:
            op_ids = self._operation_order[: max(1, limit)]
            return [copy.deepcopy(self._operations[op_id]) for op_id in op_ids if op_id in self._operations]

    async def get_operation(self, operation_id: str) -> dict[str, Any] | None:
        """Return a single operation snapshot."""
        async with self._ops_lock:
            op = self._operations.get(operation_id)
            if not op:
                return None
            return copy.deepcopy(op)

    async def wait_for_operation(self, operation_id: str, timeout: float | None = None) -> dict[str, Any] | None:
        """Block until the operation finishes, then return its snapshot."""
        event = self._completion_events.get(operation_id)
        if event is not None:
            await asyncio.wait_for(event.wait(), timeout=timeout)
        return await self.get_operation(operation_id)

    async def _start_operation(
        self,
        kind: str,
        trigger: str,
        metadata: dict[str, Any],
    ) -> str:
        op_id = f"OP-{uuid.uuid4()}"
        now = datetime.now(timezone.utc).isoformat()
        payload = {
            "id": op_id,
            "kind": kind,
            "trigger": trigger,
            "status": "running",
            "phase": "queued",
            "message": "",
            "startedAt": now,
            "updatedAt": now,
            "finishedAt": "",
            "durationMs": 0,
            "counters": {},
            "stats": {},
            "metadata": metadata,
            "error": "",
        }
        async with self._ops_lock:
            self._operations[op_id] = payload
            self._completion_events[op_id] = asyncio.Event()
            self._operation_order.insert(0, op_id)
            self._active_operation_ids.add(op_id)
            if len(self._operation_order) > self._max_operation_history:
                stale_ids = self._operation_order[self._max_operation_history :]
                self._operation_order = self._operation_order[: self._max_operation_history]
                for stale_id in stale_ids:
                    self._operations.pop(stale_id, None)
                    self._completion_events.pop(stale_id, None)
                    self._active_operation_ids.discard(stale_id)
        logger.info("Operation started [%s] %s (trigger=%s)", op_id, kind, trigger)
        return op_id

    async def _update_operation(
        self,
        operation_id: str | None,
        *,
        phase: str | None = None,
        message: str | None = None,
        counters: dict[str, Any] | None = None,
        stats: dict[str, Any] | None = None,
    ) -> None:
        if not operation_id:
            return
        now = datetime.now(timezone.utc).isoformat()
        async with self._ops_lock:
            operation = self._operations.get(operation_id)
            if not operation:
                return
            if phase:
                operation["phase"] = phase
            if message is not None:
                operation["message"] = message
            if counters:
                operation.setdefault("counters", {}).update(counters)
            if stats:
                operation.setdefault("stats", {}).update(stats)
            operation["updatedAt"] = now

        if message:
            logger.info("Operation update [%s] %s - %s", operation_id, phase or "progress", message)

    async def _finish_operation(
        self,
        operation_id: str | None,
        *,
        status: str,
        stats: dict[str, Any] | None = None,
        error: str = "",
        started: float | None = None,
    ) -> None:
        if not operation_id:
            return
        now = datetime.now(timezone.utc).isoformat()
        async with self._ops_lock:
            operation = self._operations.get(operation_id)
            if not operation:
                return
            operation["status"] = status
            operation["phase"] = "done"
            operation["updatedAt"] = now
            operation["finishedAt"] = now
            if stats:
                operation.setdefault("stats", {}).update(stats)
            if error:
                operation["error"] = error
            if started is not None:
                operation["durationMs"] = max(0, int((time.monotonic() - started) * 1000))
            self._active_operation_ids.discard(operation_id)
            event = self._completion_events.get(operation_id)

        if event is not None:
            event.set()
        if status == "failed":
            logger.error("Operation failed [%s]: %s", operation_id, error)
        else:
            logger.info("Operation finished [%s] status=%s", operation_id, status)

    async def _run_operation(
        self,
        kind: str,
        trigger: str,
        metadata: dict[str, Any],
        job: Callable[[str], Awaitable[dict[str, Any]]],
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        if not operation_id:
            operation_id = await self._start_operation(kind, trigger, metadata)
        started = time.monotonic()
        try:
            stats = await job(operation_id)
        except Exception as exc:
            await self._finish_operation(operation_id, status="failed", error=str(exc), started=started)
            raise
        status = "cancelled" if stats.get("cancelled") else "completed"
        await self._finish_operation(operation_id, status=status, stats=stats, started=started)
        return {**stats, "operation_id": operation_id}

    # ── Jobs ────────────────────────────────────────────────────────

    @staticmethod
    def _index_stats(result: IndexResult) -> dict[str, Any]:
        return {
            "processed": result.processed,
            "discovered": result.discovered,
            "failed": len(result.failures),
            "failures": [failure.model_dump() for failure in result.failures],
            "cancelled": result.cancelled,
            "duration_ms": result.duration_ms,
        }

    async def index_roots(
        self,
        roots: list[Path] | None = None,
        trigger: str = "api",
        rebuild_references: bool = True,
        deadline: float | None = None,
        cancel_event: asyncio.Event | None = None,
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        roots = roots if roots is not None else config.index_roots()

        async def job(operation_id: str) -> dict[str, Any]:
            await self._update_operation(
                operation_id,
                phase="indexing",
                message=f"Indexing {len(roots)} root(s)",
            )
            result = await self.indexer.index(roots, deadline=deadline, cancel_event=cancel_event)
            stats = self._index_stats(result)
            await self._update_operation(
                operation_id,
                counters={"processed": result.processed, "failed": len(result.failures)},
            )
            if rebuild_references and not result.cancelled:
                await self._update_operation(operation_id, phase="references")
                stats["references"] = await self._rebuild_references()
            return stats

        return await self._run_operation(
            "index",
            trigger,
            {"roots": [str(root) for root in roots]},
            job,
            operation_id,
        )

    async def _rebuild_references(self) -> int:
        documents = await (self.graph or GraphService(self.db)).load_documents()
        references = infer_references(documents)
        count = await self.reference_repo.replace_all(references)
        if self.graph is not None:
            self.graph.invalidate()
        logger.info("Stored %d reference(s) across %d document(s)", count, len(documents))
        return count

    async def rebuild_references(self, trigger: str = "api", operation_id: str | None = None) -> dict[str, Any]:
        async def job(operation_id: str) -> dict[str, Any]:
            await self._update_operation(operation_id, phase="references")
            return {"references": await self._rebuild_references()}

        return await self._run_operation("references", trigger, {}, job, operation_id)

    async def index_session_logs(
        self,
        root: Path | None = None,
        trigger: str = "api",
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        logs_root = root or config.session_logs_dir()

        async def job(operation_id: str) -> dict[str, Any]:
            await self._update_operation(operation_id, phase="session-logs", message=f"Scanning {logs_root}")
            result = await self.indexer.index_session_logs(logs_root)
            return self._index_stats(result)

        return await self._run_operation("session_logs", trigger, {"root": str(logs_root)}, job, operation_id)

    async def prune_session_logs(
        self,
        keep: int | None = None,
        delete_files: bool = False,
        trigger: str = "api",
        operation_id: str | None = None,
    ) -> dict[str, Any]:
        keep = config.SESSION_LOG_RETENTION if keep is None else keep

        async def job(operation_id: str) -> dict[str, Any]:
            await self._update_operation(operation_id, phase="prune", message=f"Keeping newest {keep}")
            removed = await self.indexer.prune_session_logs(keep, delete_files=delete_files)
            if removed and self.graph is not None:
                self.graph.invalidate()
            return {"removed": removed, "removedCount": len(removed), "keep": keep}

        return await self._run_operation(
            "prune_session_logs",
            trigger,
            {"keep": keep, "deleteFiles": delete_files},
            job,
            operation_id,
        )

    async def sync_changed_files(
        self,
        changed_files: list[tuple[str, Path]],
        trigger: str = "watcher",
    ) -> dict[str, Any]:
        """Re-index specific changed files. Used by the file watcher.

        changed_files: list of (change_type, path) where change_type is
        'added' | 'modified' | 'deleted'.
        """
        stats: dict[str, Any] = {"indexed": 0, "removed": 0, "failed": 0}
        for change_type, path in changed_files:
            if not is_html_file(path):
                continue
            try:
                if change_type == "deleted":
                    if await self.indexer.remove_path(path):
                        stats["removed"] += 1
                else:
                    await self.indexer.index_file(path)
                    stats["indexed"] += 1
            except Exception as exc:  # noqa: BLE001
                if is_connection_error(exc):
                    raise
                stats["failed"] += 1
                logger.warning("Failed to sync %s (%s): %s", path, change_type, exc)

        if (stats["indexed"] or stats["removed"]) and self.graph is not None:
            self.graph.invalidate()
        logger.info("Synced changed files (%s): %s", trigger, stats)
        return stats
