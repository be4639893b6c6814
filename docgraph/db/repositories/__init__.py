"""Repository package for database access."""

from .documents import SqliteDocumentRepository
from .tasks import SqliteTaskRepository
from .memories import SqliteMemoryRepository
from .links import (
    SqliteReferenceRepository,
    SqliteTagRepository,
)

__all__ = [
    "SqliteDocumentRepository",
    "SqliteTaskRepository",
    "SqliteMemoryRepository",
    "SqliteReferenceRepository",
    "SqliteTagRepository",
]
