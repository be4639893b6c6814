"""Repository factory to abstract DB backend (SQLite vs Postgres)."""
from __future__ import annotations

from typing import Any
import aiosqlite

from docgraph.db.repositories.documents import SqliteDocumentRepository
from docgraph.db.repositories.tasks import SqliteTaskRepository
from docgraph.db.repositories.memories import SqliteMemoryRepository
from docgraph.db.repositories.links import (
    SqliteReferenceRepository,
    SqliteTagRepository,
)

def get_document_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteDocumentRepository(db)
    from docgraph.db.repositories.postgres.documents import PostgresDocumentRepository
    return PostgresDocumentRepository(db)

def get_task_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteTaskRepository(db)
    from docgraph.db.repositories.postgres.tasks import PostgresTaskRepository
    return PostgresTaskRepository(db)

def get_tag_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteTagRepository(db)
    from docgraph.db.repositories.postgres.links import PostgresTagRepository
    return PostgresTagRepository(db)

def get_reference_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteReferenceRepository(db)
    from docgraph.db.repositories.postgres.links import PostgresReferenceRepository
    return PostgresReferenceRepository(db)

def get_memory_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteMemoryRepository(db)
    from docgraph.db.repositories.postgres.memories import PostgresMemoryRepository
    return PostgresMemoryRepository(db)
