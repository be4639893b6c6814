"""PostgreSQL schema creation.

Mirrors the SQLite schema; full-text ranking uses a generated, weighted
tsvector column (title = A, content = B) with a GIN index.
"""
from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger("docgraph.db")

SCHEMA_VERSION = 3

_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS documents (
    id            TEXT PRIMARY KEY,
    path          TEXT NOT NULL UNIQUE,
    title         TEXT NOT NULL DEFAULT '',
    content       TEXT NOT NULL DEFAULT '',
    type          TEXT NOT NULL DEFAULT 'documentation',
    metadata_json TEXT NOT NULL DEFAULT '{}',
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_documents_type ON documents(type, updated_at DESC);
CREATE INDEX IF NOT EXISTS idx_documents_updated ON documents(updated_at DESC, path);

CREATE TABLE IF NOT EXISTS tags (
    id    SERIAL PRIMARY KEY,
    name  TEXT NOT NULL UNIQUE,
    color TEXT DEFAULT ''
);

CREATE TABLE IF NOT EXISTS entity_tags (
    entity_type TEXT NOT NULL,
    entity_id   TEXT NOT NULL,
    tag_id      INTEGER NOT NULL REFERENCES tags(id),
    PRIMARY KEY (entity_type, entity_id, tag_id)
);

CREATE INDEX IF NOT EXISTS idx_entity_tags_tag ON entity_tags(tag_id);

CREATE TABLE IF NOT EXISTS tasks (
    id            TEXT PRIMARY KEY,
    file_path     TEXT NOT NULL UNIQUE,
    title         TEXT NOT NULL DEFAULT '',
    description   TEXT DEFAULT '',
    status        TEXT NOT NULL DEFAULT 'ACTIVE',
    priority      TEXT NOT NULL DEFAULT 'MEDIUM',
    type          TEXT NOT NULL DEFAULT 'PROJECT',
    last_modified TEXT DEFAULT '',
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status, updated_at DESC);

CREATE TABLE IF NOT EXISTS memories (
    id            SERIAL PRIMARY KEY,
    document_id   TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    type          TEXT NOT NULL DEFAULT 'OBSERVATION',
    content       TEXT NOT NULL DEFAULT '',
    metadata_json TEXT NOT NULL DEFAULT '{}',
    created_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_memories_document ON memories(document_id, id);

CREATE TABLE IF NOT EXISTS document_references (
    id           SERIAL PRIMARY KEY,
    source_id    TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    target_id    TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    type         TEXT NOT NULL,
    weight       DOUBLE PRECISION NOT NULL DEFAULT 0,
    signals_json TEXT NOT NULL DEFAULT '[]',
    created_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_references_source ON document_references(source_id);
CREATE INDEX IF NOT EXISTS idx_references_target ON document_references(target_id);
"""

_FULL_TEXT = """
ALTER TABLE documents ADD COLUMN IF NOT EXISTS search_vector tsvector
GENERATED ALWAYS AS (
    setweight(to_tsvector('english', coalesce(title, '')), 'A') ||
    setweight(to_tsvector('english', coalesce(content, '')), 'B')
) STORED;

CREATE INDEX IF NOT EXISTS idx_documents_search ON documents USING GIN (search_vector);
"""


async def run_migrations(db: asyncpg.Pool) -> None:
    """Create all tables and the full-text column. Idempotent."""
    current_version = 0
    try:
        current_version = await db.fetchval("SELECT MAX(version) FROM schema_version") or 0
    except asyncpg.exceptions.UndefinedTableError:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info("Schema is up to date (version %s)", current_version)
        return

    logger.info("Running Postgres migrations: %s → %s", current_version, SCHEMA_VERSION)
    await db.execute(_TABLES)
    try:
        await db.execute(_FULL_TEXT)
    except asyncpg.exceptions.PostgresError as exc:
        logger.warning("Full-text column unavailable, search will use substring fallback: %s", exc)

    await db.execute("INSERT INTO schema_version (version) VALUES ($1)", SCHEMA_VERSION)
    logger.info("Migrations complete — schema version %s", SCHEMA_VERSION)
