"""Parse HTML source files into ExtractedDocument models."""
from __future__ import annotations

import re
from pathlib import Path

from bs4 import BeautifulSoup

from docgraph.document_linking import normalize_priority, normalize_status, split_csv
from docgraph.models import ExtractedDocument, MetadataValue

_WHITESPACE_RE = re.compile(r"[ \t\r\f\v]+")

# meta name -> (metadata key, kind)
_KNOWN_META: dict[str, tuple[str, str]] = {
    "task-status": ("status", "status"),
    "task-priority": ("priority", "priority"),
    "graph-tags": ("tags", "list"),
    "graph-connections": ("connections", "list"),
    "description": ("description", "text"),
    "keywords": ("keywords", "list"),
}


def _clean_text(text: str) -> str:
    lines = (_WHITESPACE_RE.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line).strip()


def _first_text(soup: BeautifulSoup, selector: str) -> str:
    node = soup.find(selector)
    if node is None:
        return ""
    return " ".join(node.get_text().split())


def _extract_metadata(soup: BeautifulSoup) -> tuple[dict[str, MetadataValue], str | None]:
    metadata: dict[str, MetadataValue] = {}
    explicit_status: str | None = None

    for meta in soup.find_all("meta"):
        name = str(meta.get("name") or "").strip()
        if not name or meta.get("content") is None:
            continue
        value = str(meta.get("content")).strip()
        known = _KNOWN_META.get(name.lower())
        if known is None:
            metadata[name] = value
            continue

        key, kind = known
        if kind == "status":
            status, valid = normalize_status(value)
            metadata[key] = status
            explicit_status = status if valid else None
        elif kind == "priority":
            metadata[key], _ = normalize_priority(value)
        elif kind == "list":
            metadata[key] = split_csv(value)
        else:
            metadata[key] = value

    return metadata, explicit_status


def parse_html_document(html: str, file_name: str = "") -> ExtractedDocument:
    """Extract title, visible text and meta-derived fields from raw HTML.

    Title resolution: ``<title>`` text, then the first ``<h1>``, then the
    file name without extension.
    """
    soup = BeautifulSoup(html or "", "html.parser")

    for element in soup(["script", "style"]):
        element.decompose()

    metadata, explicit_status = _extract_metadata(soup)

    title = _first_text(soup, "title") or _first_text(soup, "h1") or Path(file_name).stem

    links: list[str] = []
    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if href and href not in links:
            links.append(href)

    # <head> text (title) is not body content
    body = soup.body or soup
    if soup.head is not None and body is soup:
        soup.head.decompose()
    content = _clean_text(body.get_text(" "))

    return ExtractedDocument(
        title=title,
        content=content,
        metadata=metadata,
        explicitStatus=explicit_status,
        links=links,
    )


def parse_html_file(path: Path) -> ExtractedDocument:
    text = path.read_text(encoding="utf-8", errors="replace")
    return parse_html_document(text, path.name)
