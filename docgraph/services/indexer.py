"""Walk HTML roots and upsert documents, tasks, tags and session-log memories."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from docgraph import config
from docgraph.db.connection import is_connection_error
from docgraph.db.factory import (
    get_document_repository,
    get_memory_repository,
    get_tag_repository,
    get_task_repository,
)
from docgraph.document_linking import (
    document_type_for_path,
    infer_task_type,
    relative_document_path,
    resolve_link_target,
    resolve_task_status,
    session_log_date,
)
from docgraph.file_walker import iter_html_files
from docgraph.models import DEFAULT_PRIORITY, ExtractedDocument, IndexFailure, IndexResult
from docgraph.observability import record_ingestion, record_parser_failure, start_span
from docgraph.parsers.html import parse_html_document
from docgraph.parsers.session_logs import parse_session_log_entries

logger = logging.getLogger("docgraph.index")


def _read_and_extract(path: Path) -> tuple[str, ExtractedDocument]:
    text = path.read_text(encoding="utf-8", errors="replace")
    return text, parse_html_document(text, path.name)


def _file_mtime(path: Path) -> str:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).isoformat()
    except OSError:
        return ""


def _tag_names(metadata: dict[str, Any]) -> list[str]:
    value = metadata.get("tags")
    if isinstance(value, list):
        return [str(item) for item in value]
    if isinstance(value, str) and value.strip():
        return [value]
    return []


class Indexer:
    """Turns HTML files into stored Documents (and Tasks for task paths).

    Each run re-reads every file; nothing is cached between runs.
    """

    def __init__(
        self,
        db: Any,
        base_dir: Path | str | None = None,
        file_timeout: float | None = None,
        session_logs_root: Path | str | None = None,
    ):
        self.db = db
        self.base_dir = Path(base_dir or config.CONTENT_ROOT).expanduser().resolve(strict=False)
        logs_root = Path(session_logs_root or config.SESSION_LOGS_ROOT).expanduser()
        self.session_logs_root = (logs_root if logs_root.is_absolute() else self.base_dir / logs_root).resolve(strict=False)
        self.file_timeout = config.INDEX_FILE_TIMEOUT_SECONDS if file_timeout is None else file_timeout
        self.document_repo = get_document_repository(db)
        self.task_repo = get_task_repository(db)
        self.tag_repo = get_tag_repository(db)
        self.memory_repo = get_memory_repository(db)

    async def _extract(self, path: Path) -> tuple[str, ExtractedDocument]:
        # Reads and parsing run off the event loop; the timeout bounds both.
        return await asyncio.wait_for(
            asyncio.to_thread(_read_and_extract, path),
            timeout=self.file_timeout if self.file_timeout and self.file_timeout > 0 else None,
        )

    async def index(
        self,
        roots: Iterable[Path | str] | None = None,
        base_dir: Path | str | None = None,
        deadline: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> IndexResult:
        """Index every HTML file under ``roots``.

        Per-file failures are collected and the run continues. Errors that
        mean the store connection is gone are re-raised. ``deadline`` is a
        ``time.monotonic()`` value; when it passes, or ``cancel_event`` is
        set, the run stops early with ``cancelled=True``.
        """
        started = time.monotonic()
        base = Path(base_dir).expanduser().resolve(strict=False) if base_dir else self.base_dir
        result = IndexResult()
        seen: set[Path] = set()

        with start_span("docgraph.index", {"base_dir": str(base)}):
            for path in iter_html_files(roots if roots is not None else config.index_roots()):
                if path in seen:
                    continue
                if (cancel_event is not None and cancel_event.is_set()) or (
                    deadline is not None and time.monotonic() >= deadline
                ):
                    logger.info("Indexing stopped early after %d file(s)", result.processed)
                    result.cancelled = True
                    break
                seen.add(path)
                result.discovered += 1

                rel_path = relative_document_path(path, base)
                file_started = time.monotonic()
                try:
                    await self.index_file(path, base)
                except Exception as exc:  # noqa: BLE001
                    if is_connection_error(exc):
                        logger.error("Store connection lost while indexing %s: %s", rel_path, exc)
                        raise
                    if isinstance(exc, asyncio.TimeoutError):
                        message = f"Timed out after {self.file_timeout}s"
                    else:
                        message = str(exc) or exc.__class__.__name__
                    logger.warning("Failed to index %s: %s", rel_path, message)
                    record_parser_failure("html")
                    record_ingestion("document", "failure", (time.monotonic() - file_started) * 1000)
                    result.failures.append(IndexFailure(path=rel_path, error=message))
                    continue

                result.processed += 1
                record_ingestion("document", "success", (time.monotonic() - file_started) * 1000)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Indexed %d/%d file(s) with %d failure(s) in %dms",
            result.processed,
            result.discovered,
            len(result.failures),
            result.duration_ms,
        )
        return result

    async def index_file(self, path: Path, base_dir: Path | None = None) -> dict:
        """Extract and store a single file; returns the stored document row."""
        base = base_dir or self.base_dir
        rel_path = relative_document_path(path, base)
        date_parts = self._session_log_date(path)
        if date_parts is not None:
            return await self._store_session_log(path, rel_path, date_parts)
        _, extracted = await self._extract(path)
        return await self._store(path, rel_path, extracted)

    def _session_log_date(self, path: Path) -> tuple[str, str, str] | None:
        """Date parts for a dated file under the session-logs root, else None."""
        resolved = path.expanduser().resolve(strict=False)
        if resolved != self.session_logs_root and self.session_logs_root not in resolved.parents:
            return None
        return session_log_date(resolved.relative_to(self.session_logs_root).as_posix())

    async def _store(self, path: Path, rel_path: str, extracted: ExtractedDocument) -> dict:
        metadata: dict[str, Any] = dict(extracted.metadata)
        links = []
        for href in extracted.links:
            target = resolve_link_target(href, rel_path)
            if target and target not in links:
                links.append(target)
        if links:
            metadata["links"] = links

        doc_type = document_type_for_path(rel_path)
        document = await self.document_repo.upsert(
            {
                "path": rel_path,
                "title": extracted.title,
                "content": extracted.content,
                "type": doc_type,
                "metadata": metadata,
            }
        )
        tags = _tag_names(metadata)
        await self.tag_repo.replace_entity_tags("document", document["id"], tags)

        if doc_type == "task":
            task = await self.task_repo.upsert(
                {
                    "filePath": rel_path,
                    "title": extracted.title,
                    "description": str(metadata.get("description") or ""),
                    "status": resolve_task_status(extracted.explicitStatus, rel_path),
                    "priority": str(metadata.get("priority") or DEFAULT_PRIORITY),
                    "type": infer_task_type(str(metadata.get("task-type") or ""), rel_path),
                    "lastModified": _file_mtime(path),
                }
            )
            await self.tag_repo.replace_entity_tags("task", task["id"], tags)

        return document

    async def remove_path(self, path: Path, base_dir: Path | None = None) -> bool:
        """Drop the stored document (and task) for a deleted file."""
        rel_path = relative_document_path(path, base_dir or self.base_dir)
        await self.task_repo.delete_by_path(rel_path)
        return await self.document_repo.delete_by_path(rel_path)

    # ── Session logs ────────────────────────────────────────────────

    async def index_session_logs(self, root: Path | str | None = None) -> IndexResult:
        """Ingest ``YYYY/MM/DD.html`` session logs as memory documents.

        Each ``.log-entry`` becomes a Memory row; re-ingesting a day replaces
        that day's memories.
        """
        started = time.monotonic()
        logs_root = Path(root) if root else self.session_logs_root
        result = IndexResult()

        for path in iter_html_files([logs_root]):
            rel_path = relative_document_path(path, self.base_dir)
            date_parts = session_log_date(path.as_posix())
            if date_parts is None:
                continue
            result.discovered += 1
            file_started = time.monotonic()
            try:
                await self._store_session_log(path, rel_path, date_parts)
            except Exception as exc:  # noqa: BLE001
                if is_connection_error(exc):
                    raise
                message = str(exc) or exc.__class__.__name__
                logger.warning("Failed to ingest session log %s: %s", rel_path, message)
                record_parser_failure("session_log")
                result.failures.append(IndexFailure(path=rel_path, error=message))
                continue
            result.processed += 1
            record_ingestion("session_log", "success", (time.monotonic() - file_started) * 1000)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("Ingested %d session log(s) from %s", result.processed, logs_root)
        return result

    async def _store_session_log(self, path: Path, rel_path: str, date_parts: tuple[str, str, str]) -> dict:
        year, month, day = date_parts
        text, extracted = await self._extract(path)
        entries = parse_session_log_entries(text)

        document = await self.document_repo.upsert(
            {
                "path": rel_path,
                "title": f"Session Log: {year}-{month}-{day}",
                "content": extracted.content,
                "type": "memory",
                "metadata": {
                    "year": year,
                    "month": month,
                    "day": day,
                    "entryCount": len(entries),
                },
            }
        )
        await self.memory_repo.delete_for_document(document["id"])
        for entry in entries:
            await self.memory_repo.append(
                document["id"],
                entry.text,
                {"timestamp": entry.timestamp, "title": entry.title, "source": rel_path},
            )
        return document

    async def prune_session_logs(self, keep: int | None = None, delete_files: bool = False) -> list[str]:
        """Keep the newest ``keep`` session-log documents and delete the rest.

        Memories, tag links and references go with their document. Returns
        the removed paths.
        """
        keep = config.SESSION_LOG_RETENTION if keep is None else max(0, keep)
        logs: list[tuple[tuple[str, str, str], str]] = []
        for doc in await self.document_repo.list_all(types=["memory"]):
            date_parts = session_log_date(doc["path"])
            if date_parts is not None:
                logs.append((date_parts, doc["path"]))
        logs.sort(reverse=True)

        removed: list[str] = []
        for _, rel_path in logs[keep:]:
            if await self.document_repo.delete_by_path(rel_path):
                removed.append(rel_path)
            if delete_files:
                source = Path(rel_path)
                source = source if source.is_absolute() else self.base_dir / source
                try:
                    source.unlink()
                except FileNotFoundError:
                    logger.debug("Session log file already gone: %s", source)
            logger.info("Removed old session log: %s", rel_path)
        return removed
