"""Text helpers including paragraph-aware chunking."""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List

MAX_CHUNK_BYTES = 4096

_BLANK_LINE = re.compile(r"\n[ \t\r\f\v]*\n")
_SPACES = re.compile(r"\s+")


def byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def split_paragraphs(body: str) -> List[str]:
    """Split on blank lines, dropping empty paragraphs."""
    paragraphs = (part.strip() for part in _BLANK_LINE.split(body))
    return [para for para in paragraphs if para]


def split_long(text: str, *, max_bytes: int = MAX_CHUNK_BYTES) -> Iterator[str]:
    """Pack whitespace-separated tokens into pieces of at most ``max_bytes``.

    Tokens are never split, so a single token larger than the budget is
    emitted on its own.
    """
    current: List[str] = []
    size = 0
    for token in text.split():
        token_size = byte_len(token)
        if current and size + token_size + 1 > max_bytes:
            yield " ".join(current)
            current = []
            size = 0
        if current:
            size += 1
        current.append(token)
        size += token_size
    if current:
        yield " ".join(current)


def split_body(body: str, *, max_bytes: int = MAX_CHUNK_BYTES) -> List[str]:
    """Greedily pack paragraphs into chunks joined by blank lines."""
    chunks: List[str] = []
    buffer: List[str] = []
    size = 0

    def flush() -> None:
        nonlocal buffer, size
        if buffer:
            chunks.append("\n\n".join(buffer))
        buffer = []
        size = 0

    for para in split_paragraphs(body):
        para_size = byte_len(para)
        if buffer and size + para_size + 2 > max_bytes:
            flush()
        if para_size > max_bytes:
            flush()
            chunks.extend(split_long(para, max_bytes=max_bytes))
            continue
        if buffer:
            size += 2
        buffer.append(para)
        size += para_size

    flush()
    return chunks


def collapse_whitespace(text: str) -> str:
    return _SPACES.sub(" ", text).strip()


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def make_snippet(body: str, *, max_chars: int = 200) -> str:
    """First ``max_chars`` characters of ``body`` with an ellipsis if cut."""
    if not body:
        return ""
    if len(body) <= max_chars:
        return body
    return body[:max_chars] + "..."
