"""Shared fixtures for the docpacks test suite."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import pytest

from docpacks.config import AppConfig
from docpacks.models import DocChunk, DocPack, NormalizedDoc, SourceKind

PG_BASE = "https://www.postgresql.org/docs/{version}/"


def make_pack(version: str = "16") -> DocPack:
    base = PG_BASE.format(version=version)
    return DocPack(
        db="postgres",
        version=version,
        version_slug=version,
        source_kind=SourceKind.POSTGRES_HTML,
        source_url=base,
        canonical_base_url=base,
        license_name="PostgreSQL Documentation License",
        license_url="https://www.postgresql.org/about/licence/",
    )


def make_chunk(doc_id: str, title: str, section_path: str, body: str) -> DocChunk:
    return DocChunk(
        doc_id=doc_id,
        title=title,
        section_path=section_path,
        body=body,
        source_url="https://www.postgresql.org/docs/16/" + doc_id + ".html",
    )


class FakeFetcher:
    """Returns canned documents instead of touching the network."""

    def __init__(self, docs: Optional[List[NormalizedDoc]] = None, error: Optional[Exception] = None):
        self.docs = docs if docs is not None else []
        self.error = error
        self.calls: List[tuple[DocPack, Optional[Path]]] = []

    def fetch(self, pack: DocPack, source_dir: Optional[Path] = None) -> List[NormalizedDoc]:
        self.calls.append((pack, source_dir))
        if self.error is not None:
            raise self.error
        return list(self.docs)


def sample_docs(version: str = "16") -> List[NormalizedDoc]:
    base = PG_BASE.format(version=version)
    return [
        NormalizedDoc(
            title="Logical Replication",
            section_path="Replication > Logical Replication",
            body=f"Logical replication in version {version} uses publications.",
            source_url=base + "logical-replication.html",
        ),
        NormalizedDoc(
            title="Backup",
            section_path="Backup",
            body="Use pg_dump to take a logical backup.\n\nRestore with pg_restore.",
            source_url=base + "backup.html",
        ),
        NormalizedDoc(
            title="Vacuum",
            section_path="Maintenance > Vacuum",
            body="VACUUM reclaims storage occupied by dead tuples.",
            source_url=base + "routine-vacuuming.html",
        ),
    ]


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(data_dir=tmp_path / "docs")
