"""Static registry of known documentation packs."""

from __future__ import annotations

from typing import Dict, List, Optional

from docpacks.ids import slugify_version
from docpacks.models import DocPack, SourceKind

DB_ALIASES: Dict[str, str] = {
    "postgresql": "postgres",
    "pg": "postgres",
    "sql-server": "sqlserver",
    "sql_server": "sqlserver",
    "mssql": "sqlserver",
}

_POSTGRES_LICENSE = ("PostgreSQL Documentation License", "https://www.postgresql.org/about/licence/")
_MSDOCS_LICENSE = ("Microsoft Docs Content License", "https://learn.microsoft.com/en-us/legal/")
_SQL_DOCS_TARBALL = "https://codeload.github.com/MicrosoftDocs/sql-docs/tar.gz/refs/heads/main"


def _postgres(version: str) -> DocPack:
    base = f"https://www.postgresql.org/docs/{version}/"
    return DocPack(
        db="postgres",
        version=version,
        version_slug=slugify_version(version),
        source_kind=SourceKind.POSTGRES_HTML,
        source_url=base,
        canonical_base_url=base,
        license_name=_POSTGRES_LICENSE[0],
        license_url=_POSTGRES_LICENSE[1],
    )


def _mysql(version: str) -> DocPack:
    base = f"https://dev.mysql.com/doc/refman/{version}/en/"
    return DocPack(
        db="mysql",
        version=version,
        version_slug=slugify_version(version),
        source_kind=SourceKind.MYSQL_INFO,
        source_url=base + "mysql.info.gz",
        canonical_base_url=base,
        license_name="MySQL Documentation",
        license_url=base,
    )


def _sqlserver(version: str) -> DocPack:
    return DocPack(
        db="sqlserver",
        version=version,
        version_slug=slugify_version(version),
        source_kind=SourceKind.SQLSERVER_MARKDOWN,
        source_url=_SQL_DOCS_TARBALL,
        canonical_base_url="https://learn.microsoft.com/en-us/sql/",
        license_name=_MSDOCS_LICENSE[0],
        license_url=_MSDOCS_LICENSE[1],
    )


PACKS: List[DocPack] = [
    _postgres("16"),
    _postgres("15"),
    _mysql("8.0"),
    _mysql("8.4"),
    _sqlserver("2022-latest"),
    _sqlserver("2019-latest"),
]


def normalize_db_name(db: str) -> str:
    lower = db.strip().lower()
    return DB_ALIASES.get(lower, lower)


def available() -> List[DocPack]:
    return list(PACKS)


def get(db: str, version: str) -> Optional[DocPack]:
    db_norm = normalize_db_name(db)
    for pack in PACKS:
        if pack.db == db_norm and pack.version == version:
            return pack
    return None
