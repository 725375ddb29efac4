"""Transactional installation of documentation packs."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from rich.prompt import Confirm

from docpacks import catalog
from docpacks.config import AppConfig
from docpacks.errors import (
    AlreadyInstalledError,
    DocsError,
    InstallError,
    LicenseNotAcceptedError,
    PackNotFoundError,
)
from docpacks.ids import parse_doc_id
from docpacks.index.indexer import build_index
from docpacks.index.storage import (
    PackLock,
    PackPaths,
    find_pack_by_slug,
    get_installed,
    is_installed,
    is_installing,
    pack_paths,
    read_chunk,
    save_manifest,
    write_chunk,
)
from docpacks.ingestion.chunker import chunk_docs
from docpacks.ingestion.sources import Fetcher, get_fetcher
from docpacks.models import DocChunk, DocManifest, DocPack, LicenseInfo, SourceInfo
from docpacks.utils.files import remove_tree

LOGGER = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]


@dataclass(slots=True)
class InstallOptions:
    force: bool = False
    keep_source: bool = False
    accept_license: bool = False


def _ask_license(prompt: str) -> bool:
    return Confirm.ask(prompt, default=False)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unique_chunks(chunks: List[DocChunk]) -> List[DocChunk]:
    seen = set()
    unique: List[DocChunk] = []
    for chunk in chunks:
        if chunk.doc_id in seen:
            LOGGER.debug("Dropping duplicate chunk %s (%s)", chunk.doc_id, chunk.section_path)
            continue
        seen.add(chunk.doc_id)
        unique.append(chunk)
    return unique


def _prepare_root(packs_dir: Path, paths: PackPaths, pack: DocPack, options: InstallOptions) -> None:
    """Enforce the installed / forced / stale-root rules before locking."""
    installed = is_installed(packs_dir, pack.db, pack.version)
    if installed and not options.force:
        raise AlreadyInstalledError("Pack already installed", db=pack.db, version=pack.version)
    if options.force and paths.root.exists():
        if is_installing(packs_dir, pack.db, pack.version):
            LOGGER.warning(
                "Overriding install lock at %s; another install of %s %s may still be running",
                paths.lock_path,
                pack.db,
                pack.version,
            )
        LOGGER.info("Removing existing pack at %s", paths.root)
        shutil.rmtree(paths.root)
    elif paths.root.exists() and not installed and not is_installing(packs_dir, pack.db, pack.version):
        LOGGER.info("Removing leftovers of an earlier install at %s", paths.root)
        shutil.rmtree(paths.root)


def _run_install(
    pack: DocPack,
    paths: PackPaths,
    options: InstallOptions,
    fetcher: Fetcher,
    confirm: ConfirmFn,
) -> DocManifest:
    accepted = options.accept_license or confirm(
        f"Accept license '{pack.license_name}' ({pack.license_url}) to install docs?"
    )
    if not accepted:
        raise LicenseNotAcceptedError(
            "License not accepted. Aborting install.", db=pack.db, version=pack.version
        )
    accepted_at = _now()

    source_dir = paths.source_dir if options.keep_source else None
    if source_dir is not None:
        source_dir.mkdir(parents=True, exist_ok=True)

    LOGGER.info("Downloading %s %s docs from %s", pack.db, pack.version, pack.source_url)
    docs = fetcher.fetch(pack, source_dir)
    downloaded_at = _now()
    LOGGER.info("Normalized %d sections", len(docs))

    chunks = _unique_chunks(chunk_docs(pack.db, pack.version_slug, docs))
    byte_size = 0
    for chunk in chunks:
        write_chunk(paths.content_dir, chunk)
        byte_size += len(chunk.body.encode("utf-8"))
    LOGGER.info("Wrote %d chunks (%d bytes)", len(chunks), byte_size)

    build_index(paths.index_dir, pack.db, pack.version, chunks)

    manifest = DocManifest(
        db=pack.db,
        version=pack.version,
        version_slug=pack.version_slug,
        source=SourceInfo(
            kind=pack.source_kind.value,
            base_url=pack.source_url,
            downloaded_at=downloaded_at,
        ),
        license=LicenseInfo(name=pack.license_name, url=pack.license_url, accepted_at=accepted_at),
        doc_count=len(chunks),
        byte_size=byte_size,
    )
    save_manifest(paths.manifest_path, manifest)
    return manifest


def install_pack(
    pack: DocPack,
    options: Optional[InstallOptions] = None,
    *,
    config: Optional[AppConfig] = None,
    confirm: Optional[ConfirmFn] = None,
    fetcher: Optional[Fetcher] = None,
) -> DocManifest:
    """Install ``pack`` under ``config.packs_dir``.

    On failure the pack root is removed and the error is re-raised with the
    pack coordinates attached. The lock marker never outlives this call.
    """
    options = options or InstallOptions()
    config = config or AppConfig()
    paths = pack_paths(config.packs_dir, pack.db, pack.version)

    _prepare_root(config.packs_dir, paths, pack, options)
    paths.root.mkdir(parents=True, exist_ok=True)

    with PackLock(paths, db=pack.db, version=pack.version):
        try:
            manifest = _run_install(
                pack,
                paths,
                options,
                fetcher or get_fetcher(pack.source_kind, config),
                confirm or _ask_license,
            )
        except DocsError as exc:
            LOGGER.error("Install of %s %s failed: %s", pack.db, pack.version, exc)
            remove_tree(paths.root)
            raise exc.with_pack(pack.db, pack.version)
        except Exception as exc:
            LOGGER.error("Install of %s %s failed: %s", pack.db, pack.version, exc)
            remove_tree(paths.root)
            raise InstallError(
                f"Install failed: {exc}", db=pack.db, version=pack.version
            ) from exc
        except BaseException:
            remove_tree(paths.root)
            raise

    LOGGER.info("Installed %s %s (%d chunks)", pack.db, pack.version, manifest.doc_count)
    return manifest


def install(
    db: str,
    version: str,
    options: Optional[InstallOptions] = None,
    *,
    config: Optional[AppConfig] = None,
    confirm: Optional[ConfirmFn] = None,
) -> DocManifest:
    """Look ``db``/``version`` up in the catalog and install it."""
    pack = catalog.get(db, version)
    if pack is None:
        raise PackNotFoundError(
            "No documentation pack in the catalog", db=catalog.normalize_db_name(db), version=version
        )
    return install_pack(pack, options, config=config, confirm=confirm)


def show_chunk(packs_dir: Path, doc_id: str) -> DocChunk:
    """Read a stored chunk given only its id."""
    parsed = parse_doc_id(doc_id)
    if parsed is None:
        raise PackNotFoundError(f"Malformed document id: {doc_id}")
    db, version_slug = parsed
    found = find_pack_by_slug(packs_dir, db, version_slug)
    if found is None:
        raise PackNotFoundError(f"No installed pack for document {doc_id}", db=db)
    _, paths = found
    return read_chunk(paths.content_dir, doc_id)


def load_installed(packs_dir: Path, db: str, version: str) -> DocManifest:
    manifest = get_installed(packs_dir, db, version)
    if manifest is None:
        raise PackNotFoundError("Pack is not installed", db=db, version=version)
    return manifest
