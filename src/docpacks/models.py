"""Core docpacks data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict

DOC_ID_SCHEME = "blake3(canonical_url + section_path)"
INDEX_VERSION = 1


class SourceKind(str, Enum):
    """How a pack's raw documentation is obtained."""

    POSTGRES_HTML = "postgres_html"
    MYSQL_INFO = "mysql_info"
    SQLSERVER_MARKDOWN = "sqlserver_markdown"


@dataclass(frozen=True, slots=True)
class DocPack:
    """Catalog entry describing where a pack comes from."""

    db: str
    version: str
    version_slug: str
    source_kind: SourceKind
    source_url: str
    canonical_base_url: str
    license_name: str
    license_url: str
    size_estimate_bytes: int | None = None


@dataclass(slots=True)
class Section:
    """One logical section produced by a normalizer."""

    title: str
    section_path: str
    body: str


@dataclass(slots=True)
class NormalizedDoc:
    title: str
    section_path: str
    body: str
    source_url: str


@dataclass(slots=True)
class DocChunk:
    """Size-bounded unit of storage and indexing."""

    doc_id: str
    title: str
    section_path: str
    body: str
    source_url: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocChunk":
        return cls(
            doc_id=str(data["doc_id"]),
            title=str(data["title"]),
            section_path=str(data["section_path"]),
            body=str(data["body"]),
            source_url=str(data["source_url"]),
        )


@dataclass(slots=True)
class SourceInfo:
    kind: str
    base_url: str
    downloaded_at: str


@dataclass(slots=True)
class LicenseInfo:
    name: str
    url: str
    accepted_at: str


@dataclass(slots=True)
class DocManifest:
    """Persisted descriptor of an installed pack."""

    db: str
    version: str
    version_slug: str
    source: SourceInfo
    license: LicenseInfo
    doc_count: int
    byte_size: int
    doc_id_scheme: str = DOC_ID_SCHEME
    index_version: int = INDEX_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocManifest":
        source = data["source"]
        license_info = data["license"]
        return cls(
            db=str(data["db"]),
            version=str(data["version"]),
            version_slug=str(data["version_slug"]),
            source=SourceInfo(
                kind=str(source["kind"]),
                base_url=str(source["base_url"]),
                downloaded_at=str(source["downloaded_at"]),
            ),
            license=LicenseInfo(
                name=str(license_info["name"]),
                url=str(license_info["url"]),
                accepted_at=str(license_info["accepted_at"]),
            ),
            doc_count=int(data["doc_count"]),
            byte_size=int(data["byte_size"]),
            doc_id_scheme=str(data.get("doc_id_scheme", DOC_ID_SCHEME)),
            index_version=int(data.get("index_version", INDEX_VERSION)),
        )


@dataclass(slots=True)
class SearchResult:
    doc_id: str
    title: str
    section: str
    score: float
    snippet: str
    source_url: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
