"""SQLite FTS5 index builder for documentation packs."""

from __future__ import annotations

import logging
import os
import shutil
import sqlite3
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from docpacks.errors import IndexBuildError
from docpacks.models import INDEX_VERSION, DocChunk

LOGGER = logging.getLogger(__name__)

INDEX_FILENAME = "docs.sqlite3"

SCHEMA = (
    """
    CREATE TABLE index_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE VIRTUAL TABLE chunks_fts USING fts5(
        doc_id UNINDEXED,
        db UNINDEXED,
        version UNINDEXED,
        title,
        section_path,
        body,
        source_url UNINDEXED,
        tokenize = 'unicode61 remove_diacritics 2'
    )
    """,
)


def facet_path(value: str) -> str:
    """Single-level facet path used for the ``db`` and ``version`` columns."""
    return "/" + value.strip("/")


def index_file(index_dir: Path) -> Path:
    return Path(index_dir) / INDEX_FILENAME


@contextmanager
def _connect(path: Path) -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(path)
    try:
        yield conn
    finally:
        conn.close()


def _write_index(path: Path, db: str, version: str, chunks: Sequence[DocChunk]) -> None:
    with _connect(path) as conn:
        conn.execute("PRAGMA journal_mode=DELETE;")
        with conn:
            for statement in SCHEMA:
                conn.execute(statement)
            db_facet = facet_path(db)
            version_facet = facet_path(version)
            conn.executemany(
                """
                INSERT INTO chunks_fts(doc_id, db, version, title, section_path, body, source_url)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    (
                        chunk.doc_id,
                        db_facet,
                        version_facet,
                        chunk.title,
                        chunk.section_path,
                        chunk.body,
                        chunk.source_url,
                    )
                    for chunk in chunks
                ),
            )
            conn.executemany(
                "INSERT INTO index_meta(key, value) VALUES (?, ?)",
                [
                    ("index_version", str(INDEX_VERSION)),
                    ("db", db),
                    ("version", version),
                    ("doc_count", str(len(chunks))),
                ],
            )
        conn.execute("INSERT INTO chunks_fts(chunks_fts) VALUES ('optimize')")
        conn.commit()


def build_index(index_dir: Path, db: str, version: str, chunks: Sequence[DocChunk]) -> int:
    """Build the full-text index for one pack and return the number of rows.

    The index is written into a temporary sibling directory and renamed into
    place only once complete, so ``index_dir`` either holds a finished index
    or nothing.
    """
    index_dir = Path(index_dir)
    index_dir.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=".index-", dir=index_dir.parent))
    try:
        _write_index(index_file(staging), db, version, chunks)
        if index_dir.exists():
            shutil.rmtree(index_dir)
        os.replace(staging, index_dir)
    except (sqlite3.Error, OSError) as exc:
        shutil.rmtree(staging, ignore_errors=True)
        raise IndexBuildError(f"Failed to build index: {exc}", db=db, version=version) from exc
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    LOGGER.info("Indexed %d chunks for %s %s", len(chunks), db, version)
    return len(chunks)
