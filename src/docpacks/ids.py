"""Stable document identifiers and slug helpers."""

from __future__ import annotations

from blake3 import blake3

ID_HASH_CHARS = 16


def make_doc_id(db: str, version_slug: str, canonical_url: str, section_path: str) -> str:
    """Return ``{db}-{version_slug}-{hash16}`` for a chunk.

    The hash covers ``canonical_url + "::" + section_path`` so the id only
    changes when the chunk moves to another page or section.
    """
    hasher = blake3()
    hasher.update(canonical_url.encode("utf-8"))
    hasher.update(b"::")
    hasher.update(section_path.encode("utf-8"))
    short = hasher.hexdigest()[:ID_HASH_CHARS]
    return f"{db}-{version_slug}-{short}"


def parse_doc_id(doc_id: str) -> tuple[str, str] | None:
    """Split a doc id into ``(db, version_slug)``."""
    parts = doc_id.split("-", 2)
    if len(parts) < 3 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


def _slugify(text: str, separator: str, fallback: str) -> str:
    out: list[str] = []
    prev_sep = False
    for ch in text:
        lower = ch.lower() if ch.isascii() else ch
        if lower.isascii() and lower.isalnum():
            out.append(lower)
            prev_sep = False
        elif not prev_sep:
            out.append(separator)
            prev_sep = True
    slug = "".join(out).strip(separator)
    return slug or fallback


def slugify_version(version: str) -> str:
    """Slug used for pack paths and doc ids (``"PostgreSQL 16.1"`` -> ``postgresql_16_1``)."""
    return _slugify(version, "_", "unknown")


def slugify_anchor(text: str) -> str:
    """Slug used for URL fragments of headings."""
    return _slugify(text.strip(), "-", "section")
