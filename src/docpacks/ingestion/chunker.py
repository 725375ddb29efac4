"""Chunk normalized documents into size-bounded, identified records."""

from __future__ import annotations

import logging
from typing import Iterable, List

from docpacks.ids import make_doc_id
from docpacks.models import DocChunk, NormalizedDoc
from docpacks.utils.text import MAX_CHUNK_BYTES, split_body

LOGGER = logging.getLogger(__name__)


def chunk_doc(
    db: str, version_slug: str, doc: NormalizedDoc, *, max_bytes: int = MAX_CHUNK_BYTES
) -> List[DocChunk]:
    """Split one document; multi-part documents get ``" (Part N)"`` suffixes."""
    bodies = split_body(doc.body, max_bytes=max_bytes)
    total = len(bodies)
    chunks: List[DocChunk] = []
    for idx, body in enumerate(bodies, start=1):
        section_path = f"{doc.section_path} (Part {idx})" if total > 1 else doc.section_path
        chunks.append(
            DocChunk(
                doc_id=make_doc_id(db, version_slug, doc.source_url, section_path),
                title=doc.title,
                section_path=section_path,
                body=body,
                source_url=doc.source_url,
            )
        )
    return chunks


def chunk_docs(db: str, version_slug: str, docs: Iterable[NormalizedDoc]) -> List[DocChunk]:
    """Chunk every document, preserving order."""
    chunks: List[DocChunk] = []
    for doc in docs:
        parts = chunk_doc(db, version_slug, doc)
        if not parts:
            LOGGER.debug("Dropping empty section %r (%s)", doc.section_path, doc.source_url)
        chunks.extend(parts)
    return chunks
