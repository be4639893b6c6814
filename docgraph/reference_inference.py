"""Infer weighted cross-document references from document content.

Every ordered pair (doc, other) is scored independently: signals found in
``doc`` that point at ``other`` add fixed increments to the edge weight.
Weights are additive and not capped, so an edge can exceed 1.0 when
several signals fire.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from docgraph.document_linking import directory_prefix, normalize_ref_path
from docgraph.models import Reference

TITLE_WEIGHT = 0.4
PATH_WEIGHT = 0.3
DIRECTORY_WEIGHT = 0.2
LINK_WEIGHT = 0.5

# Strongest signal names the edge
_SIGNAL_PRIORITY = ("link", "title", "path", "directory")
_RELATED_MARKER_RE = re.compile(r"related tasks\s*:", re.IGNORECASE)


@dataclass
class _Candidate:
    id: str
    path: str
    title_lower: str
    content: str
    content_lower: str
    directory: tuple[str, ...]
    explicit_targets: set[str] = field(default_factory=set)
    related_section: str = ""


def _metadata_list(metadata: Any, key: str) -> list[str]:
    if not isinstance(metadata, Mapping):
        return []
    value = metadata.get(key)
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return []


def _candidate(doc: Mapping[str, Any]) -> _Candidate:
    content = str(doc.get("content") or "")
    metadata = doc.get("metadata") or {}
    explicit = {
        normalize_ref_path(value).lstrip("/")
        for key in ("links", "connections")
        for value in _metadata_list(metadata, key)
    }
    explicit.discard("")
    marker = _RELATED_MARKER_RE.search(content)
    return _Candidate(
        id=str(doc["id"]),
        path=normalize_ref_path(str(doc.get("path") or "")),
        title_lower=str(doc.get("title") or "").strip().lower(),
        content=content,
        content_lower=content.lower(),
        directory=directory_prefix(str(doc.get("path") or "")),
        explicit_targets=explicit,
        related_section=content[marker.end():] if marker else "",
    )


def score_pair(doc: _Candidate, other: _Candidate) -> tuple[float, list[str]]:
    """Weight and fired signal names for the edge doc -> other."""
    weight = 0.0
    signals: list[str] = []

    if other.title_lower and other.title_lower in doc.content_lower:
        weight += TITLE_WEIGHT
        signals.append("title")

    if other.path and other.path in doc.content:
        weight += PATH_WEIGHT
        signals.append("path")

    if doc.directory and doc.directory == other.directory:
        weight += DIRECTORY_WEIGHT
        signals.append("directory")

    if other.path and (
        f'href="{other.path}"' in doc.content
        or other.path in doc.explicit_targets
        or other.path in doc.related_section
    ):
        weight += LINK_WEIGHT
        signals.append("link")

    return round(weight, 6), signals


def infer_references(documents: Iterable[Mapping[str, Any]]) -> list[Reference]:
    """Compute directed references across the full document set.

    ``documents`` are mappings with ``id``, ``path``, ``title``, ``content``
    and optional ``metadata``. O(n^2) in the number of documents.
    """
    candidates = [_candidate(doc) for doc in documents]
    references: dict[tuple[str, str, str], Reference] = {}

    for doc in candidates:
        for other in candidates:
            if doc.id == other.id:
                continue
            weight, signals = score_pair(doc, other)
            if weight <= 0:
                continue
            edge_type = next(name for name in _SIGNAL_PRIORITY if name in signals)
            key = (doc.id, other.id, edge_type)
            existing = references.get(key)
            if existing is None or existing.weight < weight:
                references[key] = Reference(
                    source=doc.id,
                    target=other.id,
                    type=edge_type,
                    weight=weight,
                    signals=signals,
                )

    return list(references.values())
