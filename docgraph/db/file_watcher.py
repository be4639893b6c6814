"""Content-root watcher built on watchfiles.

HTML files that are added, modified or deleted under the configured roots
are handed to ``SyncEngine.sync_changed_files`` in batches.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional

from watchfiles import Change, awatch

from docgraph.file_walker import is_html_file

logger = logging.getLogger("docgraph.watcher")


def _html_filter(change: Change, path: str) -> bool:
    return is_html_file(Path(path))


class FileWatcher:
    """Runs one background task that re-indexes changed documents."""

    def __init__(self, debounce_ms: int = 800):
        self.debounce_ms = debounce_ms
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, sync_engine, roots: Iterable[Path]) -> None:
        if self._running:
            logger.warning("File watcher already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop(sync_engine, list(roots)))
        logger.info("File watcher started")

    async def stop(self) -> None:
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("File watcher stopped")

    async def _watch_loop(self, sync_engine, roots: list[Path]) -> None:
        existing = [root for root in roots if root.exists()]
        if not existing:
            logger.warning("None of the %d watch roots exist, watcher is idle", len(roots))
            self._running = False
            return

        logger.info("Watching %d root(s): %s", len(existing), ", ".join(str(root) for root in existing))
        try:
            async for changes in awatch(
                *existing,
                watch_filter=_html_filter,
                debounce=self.debounce_ms,
                stop_event=self._stop_event,
            ):
                if not self._running:
                    break
                batch = self.classify_changes(changes)
                if not batch:
                    continue
                logger.info("Detected %d document change(s)", len(batch))
                try:
                    await sync_engine.sync_changed_files(batch)
                except Exception as exc:
                    # A failed batch must not stop the watcher
                    logger.error("Re-indexing changed documents failed: %s", exc)
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        except Exception as exc:
            logger.error("File watcher error: %s", exc)
        finally:
            self._running = False

    @staticmethod
    def classify_changes(changes: set[tuple[Change, str]]) -> list[tuple[str, Path]]:
        """Map raw watchfiles events to ``("modified" | "deleted", path)``.

        Added files count as modified. Non-HTML paths are dropped; the
        result is ordered by path.
        """
        batch: list[tuple[str, Path]] = []
        for change, raw_path in sorted(changes, key=lambda item: item[1]):
            path = Path(raw_path)
            if not is_html_file(path):
                continue
            batch.append(("deleted" if change == Change.deleted else "modified", path))
        return batch


file_watcher = FileWatcher()
