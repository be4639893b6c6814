"""Batch job API: indexing, reference inference, session logs, operations."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request
from pydantic import BaseModel, Field

from docgraph import config

logger = logging.getLogger("docgraph.api")

jobs_router = APIRouter(prefix="/api/jobs", tags=["jobs"])


class IndexRequest(BaseModel):
    roots: list[str] = Field(default_factory=list)
    rebuildReferences: bool = True
    background: bool = True
    trigger: str = "api"


class JobRequest(BaseModel):
    background: bool = True
    trigger: str = "api"


class SessionLogsRequest(JobRequest):
    root: Optional[str] = None


class PruneRequest(JobRequest):
    keep: int = Field(default_factory=lambda: config.SESSION_LOG_RETENTION, ge=0)
    deleteFiles: bool = False


def _get_sync_engine(request: Request):
    sync_engine = getattr(request.app.state, "sync_engine", None)
    if not sync_engine:
        raise HTTPException(status_code=503, detail="Sync engine not initialized")
    return sync_engine


def _is_under(path: Path, root: Path) -> bool:
    try:
        path.resolve(strict=False).relative_to(root.resolve(strict=False))
        return True
    except ValueError:
        return False


def _resolve_root(raw_path: str) -> Path:
    candidate = Path(raw_path).expanduser()
    if not candidate.is_absolute():
        candidate = config.CONTENT_ROOT / candidate
    candidate = candidate.resolve(strict=False)
    if not _is_under(candidate, config.CONTENT_ROOT):
        raise HTTPException(status_code=400, detail=f"Path outside content root: {raw_path}")
    return candidate


async def _foreground_payload(sync_engine, stats: dict) -> dict:
    operation_id = str(stats.get("operation_id") or "")
    operation = await sync_engine.get_operation(operation_id) if operation_id else None
    return {
        "status": "ok",
        "mode": "foreground",
        "operationId": operation_id,
        "stats": stats,
        "operation": operation,
    }


def _background_payload(operation_id: str, message: str) -> dict:
    return {
        "status": "ok",
        "mode": "background",
        "message": message,
        "operationId": operation_id,
    }


@jobs_router.get("/operations")
async def list_operations(request: Request, limit: int = Query(20, ge=1, le=200)):
    """List recent job operations, newest first."""
    sync_engine = _get_sync_engine(request)
    operations = await sync_engine.list_operations(limit=limit)
    return {"status": "ok", "count": len(operations), "items": operations}


@jobs_router.get("/operations/{operation_id}")
async def get_operation(request: Request, operation_id: str):
    sync_engine = _get_sync_engine(request)
    operation = await sync_engine.get_operation(operation_id)
    if not operation:
        raise HTTPException(status_code=404, detail=f"Operation {operation_id} not found")
    return operation


@jobs_router.post("/index")
async def trigger_index(request: Request, background_tasks: BackgroundTasks, body: IndexRequest):
    """Index the configured roots (or the given ones) and rebuild references."""
    sync_engine = _get_sync_engine(request)
    roots = [_resolve_root(raw) for raw in body.roots] if body.roots else config.index_roots()

    if body.background:
        operation_id = await sync_engine.start_operation(
            "index",
            trigger=body.trigger,
            metadata={"roots": [str(root) for root in roots]},
        )
        background_tasks.add_task(
            sync_engine.index_roots,
            roots,
            trigger=body.trigger,
            rebuild_references=body.rebuildReferences,
            operation_id=operation_id,
        )
        return _background_payload(operation_id, "Indexing triggered in background")

    stats = await sync_engine.index_roots(
        roots,
        trigger=body.trigger,
        rebuild_references=body.rebuildReferences,
    )
    return await _foreground_payload(sync_engine, stats)


@jobs_router.post("/references")
async def trigger_references(request: Request, background_tasks: BackgroundTasks, body: JobRequest):
    """Recompute and store inferred references across all documents."""
    sync_engine = _get_sync_engine(request)

    if body.background:
        operation_id = await sync_engine.start_operation("references", trigger=body.trigger)
        background_tasks.add_task(
            sync_engine.rebuild_references,
            trigger=body.trigger,
            operation_id=operation_id,
        )
        return _background_payload(operation_id, "Reference rebuild triggered in background")

    stats = await sync_engine.rebuild_references(trigger=body.trigger)
    return await _foreground_payload(sync_engine, stats)


@jobs_router.post("/session-logs")
async def trigger_session_logs(request: Request, background_tasks: BackgroundTasks, body: SessionLogsRequest):
    sync_engine = _get_sync_engine(request)
    root = _resolve_root(body.root) if body.root else config.session_logs_dir()

    if body.background:
        operation_id = await sync_engine.start_operation(
            "session_logs",
            trigger=body.trigger,
            metadata={"root": str(root)},
        )
        background_tasks.add_task(
            sync_engine.index_session_logs,
            root,
            trigger=body.trigger,
            operation_id=operation_id,
        )
        return _background_payload(operation_id, "Session log ingestion triggered in background")

    stats = await sync_engine.index_session_logs(root, trigger=body.trigger)
    return await _foreground_payload(sync_engine, stats)


@jobs_router.post("/prune-session-logs")
async def trigger_prune_session_logs(request: Request, background_tasks: BackgroundTasks, body: PruneRequest):
    sync_engine = _get_sync_engine(request)

    if body.background:
        operation_id = await sync_engine.start_operation(
            "prune_session_logs",
            trigger=body.trigger,
            metadata={"keep": body.keep, "deleteFiles": body.deleteFiles},
        )
        background_tasks.add_task(
            sync_engine.prune_session_logs,
            body.keep,
            delete_files=body.deleteFiles,
            trigger=body.trigger,
            operation_id=operation_id,
        )
        return _background_payload(operation_id, "Session log pruning triggered in background")

    stats = await sync_engine.prune_session_logs(
        body.keep,
        delete_files=body.deleteFiles,
        trigger=body.trigger,
    )
    return await _foreground_payload(sync_engine, stats)
