"""Full-text search over an installed pack's index."""

from __future__ import annotations

import re
import sqlite3
from pathlib import Path
from typing import List

from docpacks.errors import IndexOpenError, QueryError
from docpacks.index.indexer import facet_path, index_file
from docpacks.models import SearchResult
from docpacks.utils.text import make_snippet

TITLE_BOOST = 2.0
SECTION_BOOST = 1.5
BODY_BOOST = 1.0

SEARCH_FIELDS = ("title", "section_path", "body")
OPERATORS = {"AND", "OR", "NOT"}

# Column order of chunks_fts: doc_id, db, version, title, section_path, body, source_url.
_RANK = f"bm25(chunks_fts, 0.0, 0.0, 0.0, {TITLE_BOOST}, {SECTION_BOOST}, {BODY_BOOST}, 0.0)"

_SEARCH_SQL = f"""
    SELECT doc_id, title, section_path, body, source_url, {_RANK} AS rank
    FROM chunks_fts
    WHERE chunks_fts MATCH ? AND db = ? AND version = ?
    ORDER BY rank
    LIMIT ?
"""

_TOKEN = re.compile(r'\s*(?:(?P<field>[A-Za-z_]+):)?(?:"(?P<phrase>[^"]*)"|(?P<word>[^\s"]+))')


def _quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def build_match_expression(query: str) -> str:
    """Translate free text into an FTS5 MATCH expression.

    Bare words and ``"quoted phrases"`` become FTS5 strings, ``field:term``
    restricts a term to ``title``, ``section_path`` or ``body``, and the
    ``AND``/``OR``/``NOT`` operators are kept. Neighbouring terms are joined
    with ``OR`` and ranking sorts out the rest.
    """
    if query.count('"') % 2:
        raise QueryError(f"Unbalanced quotes in query: {query!r}")

    parts: List[str] = []
    pending_operator = False
    pos = 0
    stripped = query.strip()
    while pos < len(stripped):
        match = _TOKEN.match(stripped, pos)
        if match is None or match.end() == pos:
            raise QueryError(f"Invalid query near {stripped[pos:]!r}")
        pos = match.end()

        field = match.group("field")
        word = match.group("word")
        phrase = match.group("phrase")
        if field is None and word in OPERATORS:
            parts.append(word)
            pending_operator = True
            continue
        if field is not None and field not in SEARCH_FIELDS:
            word = f"{field}:{word}" if word is not None else None
            phrase = f"{field}: {phrase}" if phrase is not None else None
            field = None

        text = phrase if phrase is not None else word
        if not text or not text.strip():
            continue
        term = _quote(text)
        if field is not None:
            term = f"{field} : {term}"
        if parts and not pending_operator:
            parts.append("OR")
        parts.append(term)
        pending_operator = False

    if not parts or all(part in OPERATORS for part in parts):
        raise QueryError("Empty query")
    return " ".join(parts)


class Searcher:
    """Read-only handle on one pack's index."""

    def __init__(self, index_dir: Path) -> None:
        self.index_dir = Path(index_dir)
        path = index_file(self.index_dir)
        if not path.is_file():
            raise IndexOpenError(f"Index not found at {self.index_dir}")
        try:
            self._conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("SELECT value FROM index_meta WHERE key = 'index_version'").fetchone()
            self._conn.execute("SELECT doc_id FROM chunks_fts LIMIT 0").fetchall()
        except sqlite3.Error as exc:
            self.close()
            raise IndexOpenError(f"Failed to open index at {self.index_dir}: {exc}") from exc

    def close(self) -> None:
        conn = getattr(self, "_conn", None)
        if conn is not None:
            conn.close()
            self._conn = None

    def __enter__(self) -> "Searcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def search(self, db: str, version: str, query: str, *, limit: int = 10) -> List[SearchResult]:
        if limit <= 0:
            return []
        expression = build_match_expression(query)
        try:
            rows = self._conn.execute(
                _SEARCH_SQL, (expression, facet_path(db), facet_path(version), limit)
            ).fetchall()
        except sqlite3.OperationalError as exc:
            raise QueryError(f"Invalid query {query!r}: {exc}", db=db, version=version) from exc
        except sqlite3.DatabaseError as exc:
            raise IndexOpenError(f"Index is unreadable: {exc}", db=db, version=version) from exc

        results: List[SearchResult] = []
        for row in rows:
            results.append(
                SearchResult(
                    doc_id=row["doc_id"],
                    title=row["title"],
                    section=row["section_path"],
                    score=-float(row["rank"]),
                    snippet=make_snippet(row["body"] or ""),
                    source_url=row["source_url"],
                )
            )
        return results


def search_pack(
    index_dir: Path, db: str, version: str, query: str, limit: int = 10
) -> List[SearchResult]:
    """Search one pack, scoped to ``db`` and ``version``."""
    with Searcher(index_dir) as searcher:
        return searcher.search(db, version, query, limit=limit)
