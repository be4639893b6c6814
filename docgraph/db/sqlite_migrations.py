"""Database schema creation and versioning.

All CREATE TABLE statements for the document store.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging
import sqlite3

import aiosqlite

logger = logging.getLogger("docgraph.db")

SCHEMA_VERSION = 3

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Documents ───────────────────────────────────────────────────
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

-- ── 2. Tags System ─────────────────────────────────────────────────
CREATE TABLE IF NOT EXISTS tags (
    id    INTEGER PRIMARY KEY AUTOINCREMENT,
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

-- ── 3. Tasks ───────────────────────────────────────────────────────
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

-- ── 4. Memories (append-only) ──────────────────────────────────────
CREATE TABLE IF NOT EXISTS memories (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id   TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    type          TEXT NOT NULL DEFAULT 'OBSERVATION',
    content       TEXT NOT NULL DEFAULT '',
    metadata_json TEXT NOT NULL DEFAULT '{}',
    created_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_memories_document ON memories(document_id, id);

-- ── 5. Inferred references ─────────────────────────────────────────
CREATE TABLE IF NOT EXISTS document_references (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id    TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    target_id    TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    type         TEXT NOT NULL,
    weight       REAL NOT NULL DEFAULT 0,
    signals_json TEXT NOT NULL DEFAULT '[]',
    created_at   TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_references_source ON document_references(source_id);
CREATE INDEX IF NOT EXISTS idx_references_target ON document_references(target_id);
"""

# Title column is weighted over content in bm25(); see SqliteDocumentRepository.
_FULL_TEXT = """
CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
    title,
    content,
    content='documents',
    content_rowid='rowid',
    tokenize='porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS documents_fts_ai AFTER INSERT ON documents BEGIN
    INSERT INTO documents_fts(rowid, title, content)
    VALUES (new.rowid, new.title, new.content);
END;

CREATE TRIGGER IF NOT EXISTS documents_fts_ad AFTER DELETE ON documents BEGIN
    INSERT INTO documents_fts(documents_fts, rowid, title, content)
    VALUES ('delete', old.rowid, old.title, old.content);
END;

CREATE TRIGGER IF NOT EXISTS documents_fts_au AFTER UPDATE ON documents BEGIN
    INSERT INTO documents_fts(documents_fts, rowid, title, content)
    VALUES ('delete', old.rowid, old.title, old.content);
    INSERT INTO documents_fts(rowid, title, content)
    VALUES (new.rowid, new.title, new.content);
END;
"""


async def _ensure_full_text_index(db: aiosqlite.Connection) -> bool:
    try:
        await db.executescript(_FULL_TEXT)
    except sqlite3.OperationalError as exc:
        logger.warning("FTS5 unavailable, search will use substring fallback: %s", exc)
        return False
    return True


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables and the full-text index. Idempotent."""
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except sqlite3.OperationalError:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info("Schema is up to date (version %s)", current_version)
        return

    logger.info("Running migrations: %s → %s", current_version, SCHEMA_VERSION)

    await db.executescript(_TABLES)
    if await _ensure_full_text_index(db):
        await db.execute("INSERT INTO documents_fts(documents_fts) VALUES ('rebuild')")

    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info("Migrations complete — schema version %s", SCHEMA_VERSION)
