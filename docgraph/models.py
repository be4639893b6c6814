"""Pydantic models shared by the indexer, search engine and API."""
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, Union

MetadataValue = Union[str, int, float, list[str]]

DOCUMENT_TYPES = ("task", "memory", "documentation")
TASK_STATUSES = ("ACTIVE", "PENDING", "RESOLVED", "ARCHIVED")
TASK_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")
TASK_TYPES = ("AGENT", "PROJECT")

DEFAULT_STATUS = "PENDING"
DEFAULT_PRIORITY = "MEDIUM"


# ── Extraction ──────────────────────────────────────────────────────

class ExtractedDocument(BaseModel):
    title: str
    content: str = ""
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)
    # Set only when a task-status meta tag was present and valid
    explicitStatus: Optional[str] = None
    links: list[str] = Field(default_factory=list)


class SessionLogEntry(BaseModel):
    timestamp: str = ""
    title: str = ""
    text: str = ""


# ── Stored records ──────────────────────────────────────────────────

class Document(BaseModel):
    id: str
    path: str
    title: str
    content: str = ""
    type: str = "documentation"  # "task" | "memory" | "documentation"
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""


class Task(BaseModel):
    id: str
    filePath: str
    title: str
    description: str = ""
    status: str = "ACTIVE"
    priority: str = DEFAULT_PRIORITY
    type: str = "PROJECT"
    tags: list[str] = Field(default_factory=list)
    lastModified: str = ""
    created_at: str = ""
    updated_at: str = ""


class Reference(BaseModel):
    source: str
    target: str
    type: str
    weight: float
    signals: list[str] = Field(default_factory=list)


# ── Indexing results ────────────────────────────────────────────────

class IndexFailure(BaseModel):
    path: str
    error: str


class IndexResult(BaseModel):
    processed: int = 0
    discovered: int = 0
    failures: list[IndexFailure] = Field(default_factory=list)
    cancelled: bool = False
    duration_ms: int = 0


# ── API payloads ────────────────────────────────────────────────────

class SearchResult(BaseModel):
    id: str = ""
    title: str
    path: str
    type: str = ""
    excerpt: str = ""
    rank: float = 0.0


class DocumentQueryResponse(BaseModel):
    total: int
    documents: list[Document]
    limit: int
    offset: int


class GraphNode(BaseModel):
    id: str
    title: str
    path: str
    type: str
    created_at: str = ""


class GraphLink(BaseModel):
    source: str
    target: str
    type: str
    weight: float


class GraphResponse(BaseModel):
    nodes: list[GraphNode] = Field(default_factory=list)
    links: list[GraphLink] = Field(default_factory=list)
    generatedAt: str = ""
    source: str = "live"


class DocumentListItem(BaseModel):
    title: str
    path: str
    status: str
