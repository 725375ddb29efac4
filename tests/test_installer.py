"""Tests for the transactional installer."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import FakeFetcher, make_pack, sample_docs
from docpacks.config import AppConfig
from docpacks.errors import (
    AlreadyInstalledError,
    DocNotFoundError,
    DownloadError,
    IndexBuildError,
    InstallError,
    InstallInProgressError,
    LicenseNotAcceptedError,
    PackNotFoundError,
)
from docpacks.index.search import search_pack
from docpacks.index.storage import pack_paths
from docpacks.installer import (
    InstallOptions,
    install,
    install_pack,
    load_installed,
    show_chunk,
)
from docpacks.models import NormalizedDoc

ACCEPT = InstallOptions(accept_license=True)


def _install(config: AppConfig, version: str = "16", **kwargs):
    fetcher = kwargs.pop("fetcher", None) or FakeFetcher(sample_docs(version))
    options = kwargs.pop("options", ACCEPT)
    return install_pack(make_pack(version), options, config=config, fetcher=fetcher, **kwargs)


class TestInstallPack:
    def test_success(self, config: AppConfig) -> None:
        manifest = _install(config)

        paths = pack_paths(config.packs_dir, "postgres", "16")
        files = sorted(paths.content_dir.glob("*.json"))
        assert manifest.doc_count == len(files) == 3
        bodies = [json.loads(f.read_text(encoding="utf-8"))["body"] for f in files]
        assert manifest.byte_size == sum(len(b.encode("utf-8")) for b in bodies)
        assert paths.manifest_path.is_file()
        assert (paths.index_dir / "docs.sqlite3").is_file()
        assert not paths.lock_path.exists()
        assert not paths.source_dir.exists()

    def test_manifest_contents(self, config: AppConfig) -> None:
        manifest = _install(config)

        assert manifest.version_slug == "16"
        assert manifest.source.kind == "postgres_html"
        assert manifest.source.base_url == "https://www.postgresql.org/docs/16/"
        assert manifest.license.name == "PostgreSQL Documentation License"
        assert manifest.license.accepted_at
        assert manifest.index_version == 1
        assert load_installed(config.packs_dir, "postgres", "16") == manifest

    def test_already_installed(self, config: AppConfig) -> None:
        _install(config)
        fetcher = FakeFetcher(sample_docs())

        with pytest.raises(AlreadyInstalledError):
            _install(config, fetcher=fetcher)

        assert fetcher.calls == []
        assert pack_paths(config.packs_dir, "postgres", "16").manifest_path.is_file()

    def test_force_replaces(self, config: AppConfig) -> None:
        _install(config)
        replacement = [
            NormalizedDoc(
                title="New",
                section_path="New",
                body="Only document.",
                source_url="https://www.postgresql.org/docs/16/new.html",
            )
        ]

        manifest = _install(
            config,
            fetcher=FakeFetcher(replacement),
            options=InstallOptions(force=True, accept_license=True),
        )

        files = list(pack_paths(config.packs_dir, "postgres", "16").content_dir.glob("*.json"))
        assert manifest.doc_count == len(files) == 1

    def test_install_in_progress(self, config: AppConfig) -> None:
        paths = pack_paths(config.packs_dir, "postgres", "16")
        paths.root.mkdir(parents=True)
        paths.lock_path.write_text("installing", encoding="utf-8")
        fetcher = FakeFetcher(sample_docs())

        with pytest.raises(InstallInProgressError):
            _install(config, fetcher=fetcher)

        assert fetcher.calls == []
        assert paths.lock_path.exists()

    def test_force_over_lock_warns(self, config: AppConfig, caplog: pytest.LogCaptureFixture) -> None:
        """--force recovers a crashed install but says it is overriding a lock."""
        paths = pack_paths(config.packs_dir, "postgres", "16")
        paths.root.mkdir(parents=True)
        paths.lock_path.write_text("installing pid=1", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="docpacks.installer"):
            manifest = _install(config, options=InstallOptions(force=True, accept_license=True))

        assert manifest.doc_count == 3
        assert not paths.lock_path.exists()
        assert any("Overriding install lock" in r.getMessage() for r in caplog.records)

    def test_stale_root_is_cleaned(self, config: AppConfig) -> None:
        paths = pack_paths(config.packs_dir, "postgres", "16")
        paths.content_dir.mkdir(parents=True)
        (paths.content_dir / "leftover.json").write_text("{}", encoding="utf-8")

        manifest = _install(config)

        assert not (paths.content_dir / "leftover.json").exists()
        assert manifest.doc_count == 3

    def test_license_declined(self, config: AppConfig) -> None:
        fetcher = FakeFetcher(sample_docs())
        confirm = MagicMock(return_value=False)

        with pytest.raises(LicenseNotAcceptedError):
            _install(config, fetcher=fetcher, options=InstallOptions(), confirm=confirm)

        confirm.assert_called_once()
        assert "PostgreSQL Documentation License" in confirm.call_args[0][0]
        assert fetcher.calls == []
        assert not pack_paths(config.packs_dir, "postgres", "16").root.exists()

    def test_license_prompt_accepted(self, config: AppConfig) -> None:
        manifest = _install(config, options=InstallOptions(), confirm=lambda prompt: True)

        assert manifest.doc_count == 3

    def test_fetch_error_rolls_back(self, config: AppConfig) -> None:
        fetcher = FakeFetcher(error=DownloadError("HTTP 503"))

        with pytest.raises(DownloadError) as excinfo:
            _install(config, fetcher=fetcher)

        assert excinfo.value.db == "postgres"
        assert excinfo.value.version == "16"
        assert not pack_paths(config.packs_dir, "postgres", "16").root.exists()

    def test_write_error_rolls_back(self, config: AppConfig) -> None:
        with patch("docpacks.installer.write_chunk", side_effect=OSError("disk full")):
            with pytest.raises(InstallError) as excinfo:
                _install(config)

        assert isinstance(excinfo.value.__cause__, OSError)
        assert not pack_paths(config.packs_dir, "postgres", "16").root.exists()

    def test_index_error_rolls_back(self, config: AppConfig) -> None:
        error = IndexBuildError("boom", db="postgres", version="16")
        with patch("docpacks.installer.build_index", side_effect=error):
            with pytest.raises(IndexBuildError):
                _install(config)

        paths = pack_paths(config.packs_dir, "postgres", "16")
        assert not paths.root.exists()
        assert not paths.lock_path.exists()

    def test_keep_source(self, config: AppConfig) -> None:
        fetcher = FakeFetcher(sample_docs())

        _install(config, fetcher=fetcher, options=InstallOptions(keep_source=True, accept_license=True))

        paths = pack_paths(config.packs_dir, "postgres", "16")
        assert fetcher.calls[0][1] == paths.source_dir
        assert paths.source_dir.is_dir()

    def test_duplicate_ids_collapse(self, config: AppConfig) -> None:
        doc = sample_docs()[0]

        manifest = _install(config, fetcher=FakeFetcher([doc, doc]))

        files = list(pack_paths(config.packs_dir, "postgres", "16").content_dir.glob("*.json"))
        assert manifest.doc_count == len(files) == 1

    def test_versions_are_isolated(self, config: AppConfig) -> None:
        _install(config, "16")
        _install(config, "15")

        results = search_pack(
            pack_paths(config.packs_dir, "postgres", "16").index_dir, "postgres", "16", "publications"
        )

        assert results
        assert all(r.doc_id.startswith("postgres-16-") for r in results)


class TestInstallByName:
    def test_unknown_pack(self, config: AppConfig) -> None:
        with pytest.raises(PackNotFoundError):
            install("oracle", "23", ACCEPT, config=config)

    def test_catalog_lookup_uses_fetcher(self, config: AppConfig) -> None:
        fetcher = FakeFetcher(sample_docs())
        with patch("docpacks.installer.get_fetcher", return_value=fetcher) as get_fetcher:
            manifest = install("PostgreSQL", "16", ACCEPT, config=config)

        assert manifest.db == "postgres"
        assert get_fetcher.call_args[0][1] is config
        assert fetcher.calls[0][0].db == "postgres"


class TestShowChunk:
    def test_show(self, config: AppConfig) -> None:
        _install(config)
        doc_id = next(pack_paths(config.packs_dir, "postgres", "16").content_dir.glob("*.json")).stem

        chunk = show_chunk(config.packs_dir, doc_id)

        assert chunk.doc_id == doc_id

    def test_unknown_pack(self, config: AppConfig) -> None:
        with pytest.raises(PackNotFoundError):
            show_chunk(config.packs_dir, "postgres-16-0000000000000000")

    def test_malformed_id(self, config: AppConfig) -> None:
        with pytest.raises(PackNotFoundError):
            show_chunk(config.packs_dir, "nohyphens")

    def test_missing_chunk(self, config: AppConfig) -> None:
        _install(config)

        with pytest.raises(DocNotFoundError):
            show_chunk(config.packs_dir, "postgres-16-0000000000000000")


def test_load_installed_missing(tmp_path: Path) -> None:
    with pytest.raises(PackNotFoundError):
        load_installed(tmp_path, "postgres", "16")
