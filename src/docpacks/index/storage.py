"""On-disk layout of installed documentation packs.

``{packs_dir}/{db}/{version}/`` holds ``content/{doc_id}.json`` chunk files,
the ``index/`` directory, an optional ``source/`` mirror, ``manifest.json``
and, while an install runs, the ``.installing`` lock marker. A pack counts as
installed only once its manifest exists.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import List, Optional, Tuple

from docpacks.errors import (
    DocNotFoundError,
    InstallInProgressError,
    ManifestIOError,
    PackNotFoundError,
)
from docpacks.models import DocChunk, DocManifest
from docpacks.utils.files import atomic_write_text, iter_manifest_paths

LOGGER = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
LOCK_NAME = ".installing"


@dataclass(frozen=True, slots=True)
class PackPaths:
    root: Path

    @property
    def content_dir(self) -> Path:
        return self.root / "content"

    @property
    def index_dir(self) -> Path:
        return self.root / "index"

    @property
    def source_dir(self) -> Path:
        return self.root / "source"

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_NAME

    @property
    def lock_path(self) -> Path:
        return self.root / LOCK_NAME


def pack_paths(packs_dir: Path, db: str, version: str) -> PackPaths:
    return PackPaths(Path(packs_dir) / db / version)


# ------------------------------------------------------------------ chunk files


def write_chunk(content_dir: Path, chunk: DocChunk) -> Path:
    content_dir.mkdir(parents=True, exist_ok=True)
    path = content_dir / f"{chunk.doc_id}.json"
    path.write_text(json.dumps(chunk.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def read_chunk(content_dir: Path, doc_id: str) -> DocChunk:
    path = Path(content_dir) / f"{doc_id}.json"
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return DocChunk.from_dict(data)
    except FileNotFoundError as exc:
        raise DocNotFoundError(f"Document not found: {doc_id}") from exc
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise DocNotFoundError(f"Unreadable document {doc_id}: {exc}") from exc


# -------------------------------------------------------------------- manifests


def save_manifest(path: Path, manifest: DocManifest) -> None:
    atomic_write_text(path, json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False))


def load_manifest(path: Path) -> DocManifest:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return DocManifest.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise ManifestIOError(f"Could not load manifest {path}: {exc}") from exc


def list_installed_manifests(packs_dir: Path) -> List[DocManifest]:
    """Manifests of every installed pack; in-progress installs are not listed."""
    return [load_manifest(path) for path in iter_manifest_paths(Path(packs_dir), MANIFEST_NAME)]


def is_installed(packs_dir: Path, db: str, version: str) -> bool:
    return pack_paths(packs_dir, db, version).manifest_path.is_file()


def is_installing(packs_dir: Path, db: str, version: str) -> bool:
    return pack_paths(packs_dir, db, version).lock_path.exists()


def get_installed(packs_dir: Path, db: str, version: str) -> Optional[DocManifest]:
    paths = pack_paths(packs_dir, db, version)
    if not paths.manifest_path.is_file():
        return None
    return load_manifest(paths.manifest_path)


def find_pack_by_slug(
    packs_dir: Path, db: str, version_slug: str
) -> Optional[Tuple[DocManifest, PackPaths]]:
    for path in iter_manifest_paths(Path(packs_dir), MANIFEST_NAME):
        manifest = load_manifest(path)
        if manifest.db == db and manifest.version_slug == version_slug:
            return manifest, PackPaths(path.parent)
    return None


def remove_pack(packs_dir: Path, db: str, version: str) -> None:
    """Delete an installed (or crashed) pack."""
    paths = pack_paths(packs_dir, db, version)
    if not paths.root.exists():
        raise PackNotFoundError("Pack is not installed", db=db, version=version)
    if paths.lock_path.exists():
        raise InstallInProgressError("Install in progress; refusing to remove", db=db, version=version)
    shutil.rmtree(paths.root)
    LOGGER.info("Removed %s", paths.root)


# ------------------------------------------------------------------------- lock


class PackLock:
    """Advisory install lock backed by the ``.installing`` marker file.

    Entering creates the marker exclusively; leaving removes it whatever the
    outcome.
    """

    def __init__(self, paths: PackPaths, *, db: str, version: str) -> None:
        self.path = paths.lock_path
        self.db = db
        self.version = version
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as exc:
            raise InstallInProgressError(
                "Install already in progress", db=self.db, version=self.version
            ) from exc
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"installing pid={os.getpid()}\n")
        self._held = True

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Could not remove lock %s: %s", self.path, exc)

    def __enter__(self) -> "PackLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.release()
