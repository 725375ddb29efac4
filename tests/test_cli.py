"""Tests for the command line interface."""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import FakeFetcher, make_pack, sample_docs
from docpacks.cli import _setup_logging, app
from docpacks.config import AppConfig
from docpacks.errors import DownloadError
from docpacks.index.storage import pack_paths
from docpacks.installer import InstallOptions, install_pack
from docpacks.models import DocManifest, LicenseInfo, SourceInfo

runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_root_handlers():
    """Keep basicConfig from binding handlers to the runner's short-lived streams."""
    with patch("docpacks.cli.logging.basicConfig"):
        yield


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_verbose(self) -> None:
        with patch("docpacks.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)

        assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_normal(self) -> None:
        with patch("docpacks.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)

        assert mock_config.call_args[1]["level"] == logging.INFO


@pytest.fixture
def installed(config: AppConfig) -> AppConfig:
    install_pack(
        make_pack("16"),
        InstallOptions(accept_license=True),
        config=config,
        fetcher=FakeFetcher(sample_docs()),
    )
    return config


class TestListCommand:
    def test_json_catalog(self, config: AppConfig) -> None:
        result = runner.invoke(app, ["list", "--json", "--data-dir", str(config.data_dir)])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["installed"] == []
        keys = {(p["db"], p["version"]) for p in payload["available"]}
        assert ("postgres", "16") in keys
        assert ("mysql", "8.0") in keys
        assert ("sqlserver", "2022-latest") in keys

    def test_json_installed(self, installed: AppConfig) -> None:
        result = runner.invoke(app, ["list", "--installed", "--json", "--data-dir", str(installed.data_dir)])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert "available" not in payload
        assert [(m["db"], m["version"], m["doc_count"]) for m in payload["installed"]] == [
            ("postgres", "16", 3)
        ]

    def test_json_both_filters(self, installed: AppConfig) -> None:
        result = runner.invoke(
            app, ["list", "--installed", "--available", "--json", "--data-dir", str(installed.data_dir)]
        )

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert len(payload["installed"]) == 1
        assert payload["available"]

    def test_json_size_estimate(self, config: AppConfig) -> None:
        result = runner.invoke(app, ["list", "--available", "--json", "--data-dir", str(config.data_dir)])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert "installed" not in payload
        assert all("size_estimate_bytes" in p for p in payload["available"])

    def test_table(self, installed: AppConfig) -> None:
        result = runner.invoke(app, ["list", "--data-dir", str(installed.data_dir)])

        assert result.exit_code == 0
        assert "Installed packs" in result.output
        assert "Available packs" in result.output

    def test_table_both_filters(self, installed: AppConfig) -> None:
        result = runner.invoke(app, ["list", "--installed", "--available", "--data-dir", str(installed.data_dir)])

        assert result.exit_code == 0
        assert "Installed packs" in result.output
        assert "Available packs" in result.output


class TestInstallCommand:
    def test_success(self, config: AppConfig) -> None:
        manifest = DocManifest(
            db="postgres",
            version="16",
            version_slug="16",
            source=SourceInfo(kind="postgres_html", base_url="https://x/", downloaded_at="now"),
            license=LicenseInfo(name="L", url="https://x/l", accepted_at="now"),
            doc_count=42,
            byte_size=1000,
        )
        with patch("docpacks.cli.install", return_value=manifest) as install:
            result = runner.invoke(
                app, ["install", "postgres", "16", "--yes", "--force", "--data-dir", str(config.data_dir)]
            )

        assert result.exit_code == 0
        assert "42 chunks" in result.output
        args, kwargs = install.call_args
        assert args[:2] == ("postgres", "16")
        assert args[2] == InstallOptions(force=True, keep_source=False, accept_license=True)
        assert kwargs["config"].data_dir == config.data_dir

    def test_failure_exit_code(self, config: AppConfig) -> None:
        error = DownloadError("HTTP 503", db="postgres", version="16")
        with patch("docpacks.cli.install", side_effect=error):
            result = runner.invoke(app, ["install", "postgres", "16", "-y", "--data-dir", str(config.data_dir)])

        assert result.exit_code == 1
        assert "HTTP 503" in result.output


class TestSearchCommand:
    def test_json(self, installed: AppConfig) -> None:
        result = runner.invoke(
            app, ["search", "postgres", "16", "pg_dump", "--json", "--data-dir", str(installed.data_dir)]
        )

        assert result.exit_code == 0
        results = json.loads(result.output)
        assert [r["title"] for r in results] == ["Backup"]
        assert set(results[0]) == {"doc_id", "title", "section", "score", "snippet", "source_url"}

    def test_alias_and_table(self, installed: AppConfig) -> None:
        result = runner.invoke(app, ["search", "pg", "16", "vacuum", "--data-dir", str(installed.data_dir)])

        assert result.exit_code == 0
        assert "Vacuum" in result.output

    def test_not_installed(self, config: AppConfig) -> None:
        result = runner.invoke(app, ["search", "mysql", "8.0", "replication", "--data-dir", str(config.data_dir)])

        assert result.exit_code == 1
        assert "not installed" in result.output

    def test_bad_query(self, installed: AppConfig) -> None:
        result = runner.invoke(app, ["search", "postgres", "16", '"open', "--data-dir", str(installed.data_dir)])

        assert result.exit_code == 1


class TestShowCommand:
    def test_json(self, installed: AppConfig) -> None:
        doc_id = next(pack_paths(installed.packs_dir, "postgres", "16").content_dir.glob("*.json")).stem

        result = runner.invoke(app, ["show", doc_id, "--json", "--data-dir", str(installed.data_dir)])

        assert result.exit_code == 0
        assert json.loads(result.output)["doc_id"] == doc_id

    def test_truncation(self, installed: AppConfig) -> None:
        doc_id = next(pack_paths(installed.packs_dir, "postgres", "16").content_dir.glob("*.json")).stem

        result = runner.invoke(
            app, ["show", doc_id, "--json", "--max-chars", "5", "--data-dir", str(installed.data_dir)]
        )

        assert json.loads(result.output)["body"].endswith("...")
        assert len(json.loads(result.output)["body"]) == 8

    def test_unknown(self, config: AppConfig) -> None:
        result = runner.invoke(app, ["show", "postgres-16-ffffffffffffffff", "--data-dir", str(config.data_dir)])

        assert result.exit_code == 1


class TestRemoveCommand:
    def test_with_yes(self, installed: AppConfig) -> None:
        result = runner.invoke(app, ["remove", "postgres", "16", "--yes", "--data-dir", str(installed.data_dir)])

        assert result.exit_code == 0
        assert not pack_paths(installed.packs_dir, "postgres", "16").root.exists()

    def test_confirm_prompt(self, installed: AppConfig) -> None:
        result = runner.invoke(app, ["remove", "postgres", "16", "--data-dir", str(installed.data_dir)], input="y\n")

        assert result.exit_code == 0
        assert not pack_paths(installed.packs_dir, "postgres", "16").root.exists()

    def test_declined(self, installed: AppConfig) -> None:
        result = runner.invoke(app, ["remove", "postgres", "16", "--data-dir", str(installed.data_dir)], input="n\n")

        assert result.exit_code == 0
        assert pack_paths(installed.packs_dir, "postgres", "16").root.exists()

    def test_not_installed(self, config: AppConfig) -> None:
        result = runner.invoke(app, ["remove", "postgres", "16", "--yes", "--data-dir", str(config.data_dir)])

        assert result.exit_code == 1
