"""Shared utilities for path normalization and document classification.

These helpers centralize how paths become document keys and how a path
maps to a document type or task status, so the indexer, the listing API
and the reference inferencer use consistent matching semantics.
"""
from __future__ import annotations

import json
import posixpath
import re
from pathlib import Path, PurePosixPath
from typing import Any

from docgraph.models import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    TASK_PRIORITIES,
    TASK_STATUSES,
    TASK_TYPES,
)

# Checked in order; the first matching fragment wins.
_STATUS_PATH_RULES: tuple[tuple[str, str], ...] = (
    ("active-tasks", "ACTIVE"),
    ("pending-tasks", "PENDING"),
    ("resolved-tasks", "RESOLVED"),
    ("completed", "RESOLVED"),
    ("archived", "ARCHIVED"),
)
_TASK_DIR_TOKENS = {"tasks", "active-tasks", "pending-tasks", "resolved-tasks", "completed", "archived"}
_LISTING_STATUS_TOKENS = {
    "active": ("active-tasks", "active"),
    "pending": ("pending-tasks", "pending"),
    "resolved": ("resolved-tasks", "resolved", "completed"),
    "archived": ("archived",),
}
_SESSION_LOG_PATTERN = re.compile(r"(?:^|/)(\d{4})/(\d{2})/(\d{2})\.html$", re.IGNORECASE)
_URL_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*:", re.IGNORECASE)


def normalize_ref_path(raw: str) -> str:
    value = (raw or "").strip().strip("\"'`<>[](),;")
    if not value:
        return ""
    value = value.replace("\\", "/")
    while value.startswith("./"):
        value = value[2:]
    return value


def relative_document_path(path: Path, base_dir: Path) -> str:
    """Return the posix path of ``path`` relative to ``base_dir``.

    Files outside ``base_dir`` keep their absolute posix path so they still
    get a stable, unique key.
    """
    resolved = path.resolve(strict=False)
    try:
        return resolved.relative_to(base_dir.resolve(strict=False)).as_posix()
    except ValueError:
        return resolved.as_posix()


def _segments(path_value: str) -> list[str]:
    return [part.lower() for part in normalize_ref_path(path_value).split("/") if part]


def document_type_for_path(path_value: str) -> str:
    normalized = "/" + normalize_ref_path(path_value).lower()
    if "/tasks/" in normalized:
        return "task"
    if any(segment in _TASK_DIR_TOKENS for segment in _segments(path_value)[:-1]):
        return "task"
    if "/memories/" in normalized:
        return "memory"
    return "documentation"


def infer_status_from_path(path_value: str) -> str | None:
    lowered = normalize_ref_path(path_value).lower()
    for fragment, status in _STATUS_PATH_RULES:
        if fragment in lowered:
            return status
    return None


def resolve_task_status(explicit_status: str | None, path_value: str) -> str:
    """Explicit meta status, then directory naming, then ACTIVE."""
    if explicit_status and explicit_status in TASK_STATUSES:
        return explicit_status
    return infer_status_from_path(path_value) or "ACTIVE"


def infer_task_type(raw: str | None, path_value: str) -> str:
    token = (raw or "").strip().upper()
    if token in TASK_TYPES:
        return token
    return "AGENT" if "agents" in _segments(path_value) else "PROJECT"


def normalize_enum(raw: str | None, allowed: tuple[str, ...], default: str) -> tuple[str, bool]:
    """Uppercase ``raw`` and validate it; return (value, was_valid)."""
    token = (raw or "").strip().upper().replace("-", "_").replace(" ", "_")
    if token in allowed:
        return token, True
    return default, False


def normalize_status(raw: str | None) -> tuple[str, bool]:
    return normalize_enum(raw, TASK_STATUSES, DEFAULT_STATUS)


def normalize_priority(raw: str | None) -> tuple[str, bool]:
    return normalize_enum(raw, TASK_PRIORITIES, DEFAULT_PRIORITY)


def path_matches_listing_status(path_value: str, status: str) -> bool:
    tokens = _LISTING_STATUS_TOKENS.get((status or "").strip().lower(), ())
    segments = _segments(path_value)[:-1]
    return any(token in segments for token in tokens)


def directory_prefix(path_value: str, depth: int = 2) -> tuple[str, ...]:
    """First ``depth`` directory segments of a document path."""
    parent = PurePosixPath(normalize_ref_path(path_value)).parent
    parts = tuple(part for part in parent.parts if part not in ("/", "."))
    return parts[:depth]


def session_log_date(path_value: str) -> tuple[str, str, str] | None:
    match = _SESSION_LOG_PATTERN.search(normalize_ref_path(path_value))
    if not match:
        return None
    return match.group(1), match.group(2), match.group(3)


def split_csv(raw: str | None) -> list[str]:
    seen: set[str] = set()
    values: list[str] = []
    for item in (raw or "").split(","):
        value = item.strip()
        if not value or value.lower() in seen:
            continue
        seen.add(value.lower())
        values.append(value)
    return values


def resolve_link_target(href: str, source_path: str) -> str:
    """Resolve an ``<a href>`` against the linking document's path.

    Returns "" for external URLs, fragments and mail links.
    """
    value = (href or "").strip()
    if not value or value.startswith("#") or _URL_SCHEME_RE.match(value):
        return ""
    value = value.split("#", 1)[0].split("?", 1)[0]
    if not value:
        return ""
    if value.startswith("/"):
        return normalize_ref_path(value.lstrip("/"))
    parent = PurePosixPath(normalize_ref_path(source_path)).parent
    resolved = posixpath.normpath((parent / normalize_ref_path(value)).as_posix())
    return "" if resolved.startswith("..") else resolved


def safe_json_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if not value:
        return {}
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
            return parsed if isinstance(parsed, dict) else {}
        except json.JSONDecodeError:
            return {}
    return {}
