"""docgraph FastAPI service — main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import asyncio

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from docgraph import config
from docgraph.routers.api import (
    document_router,
    documents_router,
    graph_router,
    search_router,
    tasks_router,
)
from docgraph.routers.jobs import jobs_router

from docgraph.db import connection, migrations, sync_engine
from docgraph.db.file_watcher import file_watcher
from docgraph.services.graph import GraphService
from docgraph.observability import initialize as initialize_observability, shutdown as shutdown_observability

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("docgraph")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("docgraph starting up")
    initialize_observability(app)

    # 1. Open the store and migrate
    db = await connection.open_connection()
    await migrations.run_migrations(db)
    app.state.db = db

    # 2. Services share the handle
    graph = GraphService(db)
    sync = sync_engine.SyncEngine(db, graph=graph)
    app.state.graph = graph
    app.state.sync_engine = sync

    # 3. Optional startup index (background task)
    if config.STARTUP_INDEX_ENABLED:
        logger.info("Starting initial index...")
        app.state.sync_task = asyncio.create_task(sync.index_roots(trigger="startup"))

    # 4. File watcher
    if config.WATCH_ENABLED:
        await file_watcher.start(sync, config.index_roots())

    yield

    logger.info("docgraph shutting down")

    if hasattr(app.state, "sync_task"):
        app.state.sync_task.cancel()
        try:
            await app.state.sync_task
        except asyncio.CancelledError:
            pass
        except Exception as exc:  # noqa: BLE001
            logger.error("Startup index failed: %s", exc)

    await file_watcher.stop()
    shutdown_observability(app)
    await connection.close_connection(db)
    app.state.db = None


app = FastAPI(
    title="docgraph API",
    description="Index, search and graph HTML documents",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(document_router)
app.include_router(documents_router)
app.include_router(tasks_router)
app.include_router(search_router)
app.include_router(graph_router)
app.include_router(jobs_router)


@app.get("/api/health")
def health(request: Request):
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if getattr(request.app.state, "db", None) is not None else "disconnected",
        "backend": config.DB_BACKEND,
        "watcher": "running" if file_watcher.is_running else "stopped",
    }
