"""Utility helpers for working with files."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

LOGGER = logging.getLogger(__name__)


def iter_manifest_paths(packs_dir: Path, name: str = "manifest.json") -> Iterator[Path]:
    """Yield ``{db}/{version}/manifest.json`` files, sorted, two levels deep."""
    if not packs_dir.is_dir():
        return
    for path in sorted(packs_dir.glob(f"*/*/{name}")):
        if path.is_file():
            yield path


def sanitize_filename(url_path: str) -> str:
    """Turn a URL path into a flat filename (``/docs/16/a.html`` -> ``docs_16_a_html``)."""
    trimmed = url_path.strip("/")
    if not trimmed:
        return "index"
    return "".join(ch if ch.isascii() and ch.isalnum() else "_" for ch in trimmed)


def atomic_write_text(path: Path, data: str) -> None:
    """Write through a temporary sibling so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def mirror_bytes(path: Path, data: bytes) -> bool:
    """Best-effort copy of raw source content; failures are only logged."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as exc:
        LOGGER.warning("Could not mirror source to %s: %s", path, exc)
        return False
    return True


def remove_tree(path: Path) -> None:
    """Delete a directory tree, logging instead of raising."""
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as exc:
        LOGGER.warning("Failed to remove %s: %s", path, exc)
