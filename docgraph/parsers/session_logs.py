"""Parse daily session-log HTML files into individual log entries."""
from __future__ import annotations

from bs4 import BeautifulSoup

from docgraph.models import SessionLogEntry


def _text(node) -> str:
    if node is None:
        return ""
    return " ".join(node.get_text(" ").split())


def parse_session_log_entries(html: str) -> list[SessionLogEntry]:
    """Return one entry per ``.log-entry`` element, in document order.

    The entry text excludes the timestamp; the ``<h3>`` heading becomes the
    entry title and the ``.content`` block (or the remaining text) its body.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    entries: list[SessionLogEntry] = []
    for node in soup.select(".log-entry"):
        timestamp = _text(node.select_one(".timestamp"))
        title = _text(node.find("h3"))
        body = node.select_one(".content")
        if body is not None:
            text = _text(body)
        else:
            text = _text(node)
            if timestamp:
                text = text.replace(timestamp, "", 1)
            if title:
                text = text.replace(title, "", 1)
            text = " ".join(text.split())
        if not (text or title):
            continue
        entries.append(SessionLogEntry(timestamp=timestamp, title=title, text=text))
    return entries
