"""Command line interface for indexsync."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from indexsync.config import AppConfig
from indexsync.errors import RegistrationError
from indexsync.index.engine import IndexSyncEngine
from indexsync.index.indexer import BatchReindexer
from indexsync.index.search import Searcher
from indexsync.index.storage import SQLiteIndexStore
from indexsync.records import field_reader
from indexsync.registry import RegistrationRegistry
from indexsync.utils.files import JsonlRecordSource, load_jsonl_records
from indexsync.web.app import app as web_app


console = Console()
app = typer.Typer(help="indexsync - keep a prefix search index in step with your records")

MANIFEST_OPTIONS = {
    "title_field",
    "alias_field",
    "ext_fields",
    "score_field",
    "condition_fields",
    "class_name",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _resolve_db(db: Optional[Path]) -> Path:
    config = AppConfig(db_path=db if db is not None else AppConfig().db_path)
    return config.resolve_db_path(Path.cwd())


def _build_registry(
    type_name: str,
    title_field: str,
    alias_field: Optional[str],
    ext_fields: List[str],
    score_field: str,
    condition_fields: List[str],
    class_name: Optional[str],
) -> RegistrationRegistry:
    registry = RegistrationRegistry()
    registry.register(
        type_name,
        title_field=title_field,
        alias_field=alias_field,
        ext_fields=ext_fields,
        score_field=score_field,
        condition_fields=condition_fields,
        class_name=class_name,
        getter=field_reader,
    )
    return registry


def _parse_conditions(conditions: List[str]) -> dict:
    parsed = {}
    for item in conditions:
        name, sep, raw = item.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Condition must look like field=value: {item}")
        try:
            parsed[name] = json.loads(raw)
        except json.JSONDecodeError:
            parsed[name] = raw
    return parsed


def _print_progress(record: object) -> None:
    console.print(".", end="")


def _load_manifest(path: Path) -> Tuple[RegistrationRegistry, Dict[str, JsonlRecordSource]]:
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{path}: invalid JSON ({exc.msg})") from exc
    if not isinstance(entries, dict) or not entries:
        raise typer.BadParameter(f"{path}: expected an object mapping type names to options")

    registry = RegistrationRegistry()
    sources: Dict[str, JsonlRecordSource] = {}
    for type_name, options in entries.items():
        if not isinstance(options, dict) or "records" not in options:
            raise typer.BadParameter(f"{path}: {type_name} needs a 'records' path")
        options = dict(options)
        records = path.parent / options.pop("records")
        if not records.is_file():
            raise typer.BadParameter(f"Records file not found for {type_name}: {records}")
        unknown = set(options) - MANIFEST_OPTIONS
        if unknown:
            raise typer.BadParameter(f"{path}: unknown options for {type_name}: {sorted(unknown)}")
        try:
            registry.register(type_name, getter=field_reader, **options)
        except RegistrationError as exc:
            raise typer.BadParameter(str(exc)) from exc
        sources[type_name] = JsonlRecordSource(records, type_name)
    return registry, sources


@app.command()
def rebuild(
    records: Path = typer.Argument(..., help="JSON Lines file with one record per line.", resolve_path=True),
    type_name: str = typer.Option(..., "--type", help="Record type name"),
    title_field: str = typer.Option("title", help="Field holding the title"),
    alias_field: Optional[str] = typer.Option(None, help="Field holding aliases"),
    ext_field: List[str] = typer.Option([], "--ext-field", help="Extra field to store"),
    score_field: str = typer.Option("created_at", help="Field used as score"),
    condition_field: List[str] = typer.Option([], "--condition-field", help="Filterable field"),
    class_name: Optional[str] = typer.Option(None, help="Index type name override"),
    batch_size: int = typer.Option(AppConfig().page_size, help="Records per page"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Rebuild the index for every record in a JSON Lines file."""
    _setup_logging(verbose)
    if not records.is_file():
        raise typer.BadParameter(f"Records file not found: {records}")
    if batch_size < 1:
        raise typer.BadParameter("batch size must be at least 1")

    registry = _build_registry(
        type_name, title_field, alias_field, ext_field, score_field, condition_field, class_name
    )
    resolved_db = _resolve_db(db)
    _ensure_db_parent(resolved_db)

    store = SQLiteIndexStore(resolved_db)
    try:
        engine = IndexSyncEngine(registry, store)
        reindexer = BatchReindexer(engine, progress=_print_progress)

        console.print(f"Rebuilding [bold]{type_name}[/bold] into [bold]{resolved_db}[/bold]...")
        try:
            count = reindexer.rebuild_all(
                JsonlRecordSource(records, type_name), page_size=batch_size
            )
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
    finally:
        store.close()
    console.print()
    console.print(f"Indexed: {count}")


@app.command("rebuild-all")
def rebuild_all(
    manifest: Path = typer.Argument(..., help="JSON file describing every indexed type.", resolve_path=True),
    batch_size: int = typer.Option(AppConfig().page_size, help="Records per page"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Rebuild the index for every type listed in a manifest.

    The manifest maps type names to registration options plus a ``records``
    JSON Lines path, relative to the manifest's directory.
    """
    _setup_logging(verbose)
    if not manifest.is_file():
        raise typer.BadParameter(f"Manifest not found: {manifest}")
    if batch_size < 1:
        raise typer.BadParameter("batch size must be at least 1")

    registry, sources = _load_manifest(manifest)
    resolved_db = _resolve_db(db)
    _ensure_db_parent(resolved_db)

    store = SQLiteIndexStore(resolved_db)
    try:
        reindexer = BatchReindexer(IndexSyncEngine(registry, store), progress=_print_progress)
        console.print(f"Rebuilding {len(registry)} types into [bold]{resolved_db}[/bold]...")
        try:
            summary = reindexer.rebuild_registered(sources, page_size=batch_size)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
    finally:
        store.close()
    console.print()

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Type")
    table.add_column("Indexed")
    for type_name, count in summary.per_type.items():
        table.add_row(type_name, str(count))
    console.print(table)
    console.print(f"Indexed: {summary.total}")


@app.command()
def remove(
    records: Path = typer.Argument(..., help="JSON Lines file with the records to drop.", resolve_path=True),
    type_name: str = typer.Option(..., "--type", help="Record type name"),
    title_field: str = typer.Option("title", help="Field holding the title"),
    alias_field: Optional[str] = typer.Option(None, help="Field holding aliases"),
    class_name: Optional[str] = typer.Option(None, help="Index type name override"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Remove the index entries of records that are being destroyed."""
    _setup_logging(verbose)
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing to remove.[/yellow]")
        return

    registry = RegistrationRegistry()
    registry.register(
        type_name,
        title_field=title_field,
        alias_field=alias_field,
        class_name=class_name,
        getter=field_reader,
    )
    if not records.is_file():
        raise typer.BadParameter(f"Records file not found: {records}")
    try:
        loaded = load_jsonl_records(records, type_name)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    store = SQLiteIndexStore(resolved_db)
    try:
        engine = IndexSyncEngine(registry, store)
        removed = sum(engine.on_destroy(record) for record in loaded)
    finally:
        store.close()
    console.print(f"Removed {removed} index entries.")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query prefix"),
    type_name: str = typer.Option(..., "--type", help="Indexed type name"),
    limit: int = typer.Option(AppConfig().limit, help="Number of results to display"),
    condition: List[str] = typer.Option([], "--where", help="Condition as field=value"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Prefix-match indexed titles and aliases."""
    _setup_logging(verbose)
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    conditions = _parse_conditions(condition)
    store = SQLiteIndexStore(resolved_db)
    try:
        searcher = Searcher(RegistrationRegistry(), store)
        results = searcher.prefix_match(
            type_name, query, limit=limit, conditions=conditions or None
        )
    finally:
        store.close()
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Aliases")

    for result in results:
        table.add_row(str(result.score), str(result.id), result.title, ", ".join(result.aliases))

    console.print(table)


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show indexed document counts per type."""
    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        console.print("[yellow]Database not found.[/yellow]")
        return

    store = SQLiteIndexStore(resolved_db)
    try:
        summary = store.get_stats()
    finally:
        store.close()

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Type")
    table.add_column("Documents")
    table.add_column("Terms")
    for type_name, counts in summary["types"].items():
        table.add_row(type_name, str(counts["document_count"]), str(counts["term_count"]))
    console.print(table)
    console.print(f"Total documents: {summary['document_count']}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Start the query API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - defensive
        raise typer.BadParameter(
            "uvicorn is not installed. Install it with \"python -m pip install uvicorn\""
        ) from exc

    resolved_db = _resolve_db(db)
    if not resolved_db.exists():
        console.print("[yellow]Warning: database not found, queries might fail.[/yellow]")

    console.print(f"Starting query API on http://{host}:{port} (database: {resolved_db})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
