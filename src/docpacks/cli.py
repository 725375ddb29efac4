"""Command line interface for docpacks."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from docpacks import catalog
from docpacks.config import AppConfig
from docpacks.errors import DocsError
from docpacks.index.search import search_pack
from docpacks.index.storage import list_installed_manifests, pack_paths, remove_pack
from docpacks.installer import InstallOptions, install, load_installed, show_chunk

console = Console()
app = typer.Typer(help="docpacks - offline database documentation search")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _config(data_dir: Optional[Path]) -> AppConfig:
    return AppConfig(data_dir=data_dir) if data_dir is not None else AppConfig()


def _format_size(size: Optional[int]) -> str:
    if size is None:
        return "-"
    return f"{size / (1024 * 1024):.1f} MiB"


def _fail(exc: DocsError) -> None:
    console.print(f"[red]Error:[/red] {escape(str(exc))}")
    raise typer.Exit(code=1)


@app.command("list")
def list_packs(
    installed: bool = typer.Option(False, "--installed", help="Only installed packs"),
    available: bool = typer.Option(False, "--available", help="Only catalog packs"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Docs data directory"),
) -> None:
    """List available and installed documentation packs."""
    config = _config(data_dir)
    try:
        manifests = list_installed_manifests(config.packs_dir)
    except DocsError as exc:
        _fail(exc)
        return
    installed_keys = {(m.db, m.version) for m in manifests}
    # Both filters (or neither) list everything.
    show_installed = installed or not available
    show_available = available or not installed

    if as_json:
        payload = {}
        if show_installed:
            payload["installed"] = [m.to_dict() for m in manifests]
        if show_available:
            payload["available"] = [
                {
                    "db": pack.db,
                    "version": pack.version,
                    "version_slug": pack.version_slug,
                    "source_kind": pack.source_kind.value,
                    "source_url": pack.source_url,
                    "license_name": pack.license_name,
                    "size_estimate_bytes": pack.size_estimate_bytes,
                    "installed": (pack.db, pack.version) in installed_keys,
                }
                for pack in catalog.available()
            ]
        typer.echo(json.dumps(payload, indent=2))
        return

    if show_installed:
        table = Table(title="Installed packs", show_header=True, header_style="bold magenta")
        table.add_column("DB")
        table.add_column("Version")
        table.add_column("Chunks", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("Downloaded")
        for manifest in manifests:
            table.add_row(
                manifest.db,
                manifest.version,
                str(manifest.doc_count),
                f"{manifest.byte_size / 1024:.1f} KiB",
                manifest.source.downloaded_at,
            )
        if manifests:
            console.print(table)
        else:
            console.print("[yellow]No packs installed.[/yellow]")

    if show_available:
        table = Table(title="Available packs", show_header=True, header_style="bold magenta")
        table.add_column("DB")
        table.add_column("Version")
        table.add_column("Source")
        table.add_column("License")
        table.add_column("Est. size", justify="right")
        table.add_column("Installed")
        for pack in catalog.available():
            table.add_row(
                pack.db,
                pack.version,
                pack.source_kind.value,
                pack.license_name,
                _format_size(pack.size_estimate_bytes),
                "yes" if (pack.db, pack.version) in installed_keys else "",
            )
        console.print(table)


@app.command("install")
def install_command(
    db: str = typer.Argument(..., help="Database name, e.g. postgres"),
    version: str = typer.Argument(..., help="Version, e.g. 16"),
    force: bool = typer.Option(False, "--force", help="Replace an existing pack"),
    keep_source: bool = typer.Option(False, "--keep-source", help="Keep downloaded sources"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Accept the license without prompting"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Docs data directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Download, index and install a documentation pack."""
    _setup_logging(verbose)
    config = _config(data_dir)
    options = InstallOptions(force=force, keep_source=keep_source, accept_license=yes)
    try:
        manifest = install(db, version, options, config=config)
    except DocsError as exc:
        _fail(exc)
        return
    console.print(
        f"[green]Installed[/green] {manifest.db} {manifest.version}: "
        f"{manifest.doc_count} chunks, {manifest.byte_size} bytes"
    )


@app.command()
def search(
    db: str = typer.Argument(..., help="Database name"),
    version: str = typer.Argument(..., help="Installed version"),
    query: str = typer.Argument(..., help="Query text"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of results to display"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Docs data directory"),
) -> None:
    """Search an installed pack."""
    config = _config(data_dir)
    db = catalog.normalize_db_name(db)
    try:
        load_installed(config.packs_dir, db, version)
        index_dir = pack_paths(config.packs_dir, db, version).index_dir
        results = search_pack(index_dir, db, version, query, limit)
    except DocsError as exc:
        _fail(exc)
        return

    if as_json:
        typer.echo(json.dumps([result.to_dict() for result in results], indent=2))
        return
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Section")
    table.add_column("Doc ID")
    table.add_column("Snippet")
    for result in results:
        snippet = result.snippet.replace("\n", " ")
        table.add_row(f"{result.score:.4f}", escape(result.section), result.doc_id, escape(snippet[:180]))
    console.print(table)


@app.command()
def show(
    doc_id: str = typer.Argument(..., help="Document id from search results"),
    max_chars: int = typer.Option(4000, "--max-chars", help="Truncate the body"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Docs data directory"),
) -> None:
    """Print one stored chunk."""
    config = _config(data_dir)
    try:
        chunk = show_chunk(config.packs_dir, doc_id)
    except DocsError as exc:
        _fail(exc)
        return

    body = chunk.body if len(chunk.body) <= max_chars else chunk.body[:max_chars] + "..."
    if as_json:
        data = chunk.to_dict()
        data["body"] = body
        typer.echo(json.dumps(data, indent=2))
        return
    console.print(f"[bold]{escape(chunk.title)}[/bold]")
    console.print(f"[dim]{escape(chunk.section_path)}[/dim]")
    console.print(f"[dim]{chunk.source_url}[/dim]\n")
    console.print(body, markup=False, highlight=False)


@app.command()
def remove(
    db: str = typer.Argument(..., help="Database name"),
    version: str = typer.Argument(..., help="Installed version"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    data_dir: Path = typer.Option(None, "--data-dir", help="Docs data directory"),
) -> None:
    """Remove an installed pack."""
    config = _config(data_dir)
    db = catalog.normalize_db_name(db)
    if not yes and not typer.confirm(f"Remove docs for {db} {version}?"):
        console.print("[yellow]Aborted.[/yellow]")
        return
    try:
        remove_pack(config.packs_dir, db, version)
    except DocsError as exc:
        _fail(exc)
        return
    console.print(f"[green]Removed[/green] {db} {version}")
