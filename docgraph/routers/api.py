"""API routers for raw documents, document queries, tasks, search and the graph."""
from __future__ import annotations

import asyncio
import html
import logging
from pathlib import Path
from typing import Literal, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import HTMLResponse

from docgraph import config
from docgraph.db.factory import (
    get_document_repository,
    get_tag_repository,
    get_task_repository,
)
from docgraph.document_linking import (
    path_matches_listing_status,
    relative_document_path,
    safe_json_dict,
    split_csv,
)
from docgraph.file_walker import iter_html_files
from docgraph.models import (
    DOCUMENT_TYPES,
    Document,
    DocumentListItem,
    DocumentQueryResponse,
    GraphResponse,
    Task,
)
from docgraph.parsers.html import parse_html_file
from docgraph.services.graph import GraphService
from docgraph.services.search import InvalidQueryError, SearchEngine

logger = logging.getLogger("docgraph.api")

LISTING_STATUSES = ("active", "pending", "resolved", "archived")


def _get_db(request: Request):
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=503, detail="Database not initialized")
    return db


def _allowed_roots() -> list[Path]:
    roots = [*config.index_roots(), config.session_logs_dir()]
    return [root.resolve(strict=False) for root in roots]


def _is_under(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
        return True
    except ValueError:
        return False


def _row_to_document(row: dict, tags: list[str] | None = None) -> Document:
    return Document(
        id=str(row["id"]),
        path=row["path"],
        title=row.get("title") or "",
        content=row.get("content") or "",
        type=row.get("type") or "documentation",
        metadata=safe_json_dict(row.get("metadata_json")),
        tags=tags or [],
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


def _row_to_task(row: dict, tags: list[str] | None = None) -> Task:
    return Task(
        id=str(row["id"]),
        filePath=row["file_path"],
        title=row.get("title") or "",
        description=row.get("description") or "",
        status=row.get("status") or "ACTIVE",
        priority=row.get("priority") or "MEDIUM",
        type=row.get("type") or "PROJECT",
        tags=tags or [],
        lastModified=row.get("last_modified") or "",
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
    )


# ── Raw documents router ────────────────────────────────────────────

document_router = APIRouter(prefix="/api/document", tags=["document"])


def _listing_items(status: str) -> list[DocumentListItem]:
    task_roots = [
        path if path.is_absolute() else config.CONTENT_ROOT / path
        for path in (Path(raw) for raw in config.TASK_ROOTS)
    ]
    items: list[DocumentListItem] = []
    for path in iter_html_files(task_roots):
        rel_path = relative_document_path(path, config.CONTENT_ROOT)
        if not path_matches_listing_status(rel_path, status):
            continue
        try:
            title = parse_html_file(path).title
        except OSError as exc:
            logger.warning("Skipping unreadable listing entry %s: %s", rel_path, exc)
            continue
        items.append(DocumentListItem(title=title, path=rel_path, status=status))
    return items


def _render_listing(status: str, items: list[DocumentListItem]) -> str:
    heading = f"Documents with status: {html.escape(status.upper())}"
    if items:
        body = "\n".join(
            f'<div class="document"><div class="title">'
            f'<a href="/api/document/{html.escape(item.path)}">{html.escape(item.title)}</a>'
            f'</div><div class="path">{html.escape(item.path)}</div></div>'
            for item in items
        )
    else:
        body = "<p>No documents found with this status.</p>"
    return (
        "<!DOCTYPE html><html><head>"
        f"<title>{heading}</title>"
        "<style>body { font-family: monospace; max-width: 800px; margin: 0 auto; padding: 20px; }"
        " .document { margin: 20px 0; padding: 10px; border: 1px solid #eee; }"
        " .path { color: #666; font-size: 0.9em; }</style>"
        f"</head><body><h1>{heading}</h1>{body}</body></html>"
    )


@document_router.get("/list")
async def list_documents_by_status(
    status: Optional[str] = Query(None),
    format: Literal["html", "json"] = Query("html"),
):
    """List task files whose directory encodes ``status``."""
    normalized = (status or "").strip().lower()
    if normalized not in LISTING_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"status must be one of: {', '.join(LISTING_STATUSES)}",
        )
    items = await asyncio.to_thread(_listing_items, normalized)
    if format == "json":
        return items
    return HTMLResponse(_render_listing(normalized, items))


@document_router.get("/{doc_path:path}")
async def get_raw_document(doc_path: str):
    """Serve the raw HTML of a document under one of the allowed roots."""
    candidate = (config.CONTENT_ROOT / doc_path).resolve(strict=False)
    if not any(_is_under(candidate, root) for root in _allowed_roots()):
        raise HTTPException(status_code=403, detail="Access denied")
    if candidate.suffix.lower() != ".html" or not candidate.is_file():
        raise HTTPException(status_code=404, detail="Document not found")
    content = await asyncio.to_thread(candidate.read_text, encoding="utf-8", errors="replace")
    return HTMLResponse(content, headers={"Cache-Control": "public, max-age=3600"})


# ── Documents query router ──────────────────────────────────────────

documents_router = APIRouter(prefix="/api/documents", tags=["documents"])


@documents_router.get("/query", response_model=DocumentQueryResponse)
async def query_documents(
    request: Request,
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    tags: Optional[str] = Query(None, description="Comma-separated tag names"),
    search: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    """Filtered, paginated documents; ``total`` counts all matches."""
    if type is not None:
        type = type.strip().lower() or None
    if type is not None and type not in DOCUMENT_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown document type: {type}")
    db = _get_db(request)
    repo = get_document_repository(db)
    tag_repo = get_tag_repository(db)

    filters = {
        "type": type,
        "status": status,
        "tags": split_csv(tags),
        "search": search,
    }
    total = await repo.count(filters)
    rows = await repo.list_paginated(offset, limit, filters)

    documents = []
    for row in rows:
        tag_rows = await tag_repo.get_tags_for("document", row["id"])
        documents.append(_row_to_document(row, [t["name"] for t in tag_rows]))
    return DocumentQueryResponse(total=total, documents=documents, limit=limit, offset=offset)


# ── Tasks router ────────────────────────────────────────────────────

tasks_router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@tasks_router.get("", response_model=list[Task])
async def list_tasks(request: Request, status: Optional[str] = Query(None)):
    """Return stored tasks, optionally filtered by status."""
    db = _get_db(request)
    repo = get_task_repository(db)
    tag_repo = get_tag_repository(db)

    results = []
    for row in await repo.list_all(status):
        tag_rows = await tag_repo.get_tags_for("task", row["id"])
        results.append(_row_to_task(row, [t["name"] for t in tag_rows]))
    return results


# ── Search router ───────────────────────────────────────────────────

search_router = APIRouter(prefix="/api/search", tags=["search"])


@search_router.get("")
async def search_documents(
    request: Request,
    q: str = Query(""),
    limit: int = Query(config.SEARCH_DEFAULT_LIMIT, ge=1),
):
    try:
        results = await SearchEngine(_get_db(request)).search(q, limit)
    except InvalidQueryError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except HTTPException:
        raise
    except Exception:
        logger.exception("Search failed for query %r", q)
        raise HTTPException(status_code=500, detail="Search failed")
    return {"results": [result.model_dump() for result in results]}


# ── Graph router ────────────────────────────────────────────────────

graph_router = APIRouter(prefix="/api/graph", tags=["graph"])


@graph_router.get("", response_model=GraphResponse)
async def get_graph(
    request: Request,
    refresh: bool = Query(False),
    source: Literal["live", "stored"] = Query("live"),
):
    graph = getattr(request.app.state, "graph", None)
    if graph is None:
        graph = GraphService(_get_db(request))
        request.app.state.graph = graph
    return await graph.get_graph(refresh=refresh, source=source)
