"""Discover indexable HTML files under the configured roots."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator

logger = logging.getLogger("docgraph.index")

HTML_SUFFIXES = {".html"}


def is_html_file(path: Path) -> bool:
    return path.suffix.lower() in HTML_SUFFIXES and not path.name.startswith(".")


def iter_html_files(roots: Iterable[Path | str]) -> Iterator[Path]:
    """Yield absolute paths of HTML files under each root, lazily.

    Roots are walked in the order given and each directory tree in
    discovery order. Missing roots are skipped with a warning.
    """
    for raw_root in roots:
        root = Path(raw_root).expanduser().resolve(strict=False)
        if not root.exists():
            logger.warning("Index root %s does not exist, skipping", root)
            continue
        if root.is_file():
            if is_html_file(root):
                yield root
            continue
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [name for name in dirnames if not name.startswith(".")]
            for filename in filenames:
                path = Path(dirpath) / filename
                if is_html_file(path):
                    yield path
