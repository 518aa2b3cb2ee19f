"""CLI entry point for the Elevex ingestion console.

Provides commands:
  - health: Check RAG server connectivity
  - check: Report which PDFs are already indexed
  - upload: Upload a batch of PDFs with live per-file progress
  - files: List catalog records
  - reconcile: Purge stale catalog records after a server index reset
  - brand / model: Manage the upload scopes in the catalog
  - config: Manage RAG server keys in the system keyring
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import keyring
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from elevex.config import (
    ADMIN_KEY_NAME,
    API_KEY_NAME,
    SERVICE_NAME,
    get_admin_key,
    load_ingest_config,
)
from elevex.models import IngestConfig, Scope, SourceDocument

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Elevex - Upload technical manuals to the RAG server and track indexing",
    rich_markup_mode="rich",
)
console = Console()

brand_app = typer.Typer(help="Manage brands (upload scopes)")
app.add_typer(brand_app, name="brand")

model_app = typer.Typer(help="Manage models under a brand")
app.add_typer(model_app, name="model")

config_app = typer.Typer(help="Manage configuration (server keys)")
app.add_typer(config_app, name="config")


@dataclass
class CliState:
    """Shared state across all CLI commands. Initialized in app callback."""

    config: IngestConfig


@app.callback()
def app_callback(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to ingest_config.json"),
    ] = None,
    server: Annotated[
        str | None,
        typer.Option("--server", help="RAG server base URL (overrides config)"),
    ] = None,
    db_path: Annotated[
        Path | None,
        typer.Option("--db", "-d", help="Path to the catalog SQLite database"),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Write debug logs to ~/.elevex/debug.log"),
    ] = False,
) -> None:
    """Load configuration shared by every command."""
    config = load_ingest_config(config_path)
    if server:
        config.server_url = server.rstrip("/")
    if db_path:
        config.db_path = str(db_path)

    if debug:
        debug_dir = Path.home() / ".elevex"
        debug_dir.mkdir(exist_ok=True)
        fh = logging.FileHandler(debug_dir / "debug.log")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root = logging.getLogger("elevex")
        root.setLevel(logging.DEBUG)
        root.addHandler(fh)

    ctx.obj = CliState(config=config)


def get_state(ctx: typer.Context) -> CliState:
    """Type-safe accessor for CliState from Typer context."""
    if ctx.obj is None:
        console.print("[red]Application state not initialized.[/red]")
        raise typer.Exit(code=1)
    return ctx.obj


async def _resolve_scope(catalog, brand: str, model: str | None) -> Scope:
    """Look up *brand* (and *model*) in the catalog or exit with an error."""
    brand_row = await catalog.find_brand(brand)
    if brand_row is None:
        console.print(
            f"[red]Error:[/red] Unknown brand '{brand}'.\n"
            f"Create it with [bold]elevex brand add \"{brand}\"[/bold]"
        )
        raise typer.Exit(code=1)

    if model is None:
        return Scope(brand_id=brand_row["id"], brand_name=brand_row["name"])

    model_row = await catalog.find_model(brand_row["id"], model)
    if model_row is None:
        console.print(f"[red]Error:[/red] Unknown model '{model}' for brand '{brand}'")
        raise typer.Exit(code=1)
    return Scope(
        brand_id=brand_row["id"],
        brand_name=brand_row["name"],
        model_id=model_row["id"],
        model_name=model_row["name"],
    )


def _collect_documents(files: list[Path]) -> list[SourceDocument]:
    documents = []
    for path in files:
        if path.suffix.lower() != ".pdf":
            console.print(f"[yellow]Skipping non-PDF file:[/yellow] {path}")
            continue
        documents.append(SourceDocument.from_path(path))
    return documents


# ----------------------------------------------------------------------
# Server commands
# ----------------------------------------------------------------------


@app.command()
def health(ctx: typer.Context) -> None:
    """Show whether the RAG server is reachable."""
    from elevex.ingest.client import RagServerClient

    config = get_state(ctx).config

    async def _check() -> tuple[bool, str]:
        async with RagServerClient(config) as client:
            try:
                result = await client.health()
            except Exception as e:
                return False, str(e)
            return result.is_online, result.status

    online, detail = asyncio.run(_check())
    if online:
        console.print(f"[green]●[/green] Server connected ({config.server_url}) [dim]{detail}[/dim]")
    else:
        console.print(
            f"[red]●[/red] Server offline ({config.server_url}) - check that it is running\n"
            f"[dim]{detail}[/dim]"
        )
        raise typer.Exit(code=1)


@app.command()
def check(
    ctx: typer.Context,
    files: Annotated[
        list[Path],
        typer.Argument(help="PDF files to check", exists=True, dir_okay=False),
    ],
) -> None:
    """Report which PDFs are already indexed (server first, catalog fallback)."""
    from elevex.catalog import CatalogStore
    from elevex.ingest.client import RagServerClient
    from elevex.ingest.duplicates import DuplicateDetector

    config = get_state(ctx).config
    documents = _collect_documents(files)
    if not documents:
        console.print("[yellow]No PDF files to check.[/yellow]")
        return

    async def _detect() -> set[str]:
        async with RagServerClient(config) as client, CatalogStore(config.db_path) as catalog:
            return await DuplicateDetector(client, catalog).detect([d.name for d in documents])

    duplicates = asyncio.run(_detect())

    table = Table(title="Duplicate Check")
    table.add_column("File", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    for doc in documents:
        size_mb = doc.size / 1024 / 1024
        status = "[yellow]already indexed[/yellow]" if doc.name in duplicates else "[green]new[/green]"
        table.add_row(doc.name, f"{size_mb:.1f} MB", status)
    console.print(table)
    console.print(
        f"[dim]{len(documents) - len(duplicates)} new, {len(duplicates)} already indexed[/dim]"
    )


@app.command()
def upload(
    ctx: typer.Context,
    files: Annotated[
        list[Path],
        typer.Argument(help="PDF files to upload", exists=True, dir_okay=False),
    ],
    brand: Annotated[
        str,
        typer.Option("--brand", "-b", help="Brand the manuals belong to"),
    ],
    model: Annotated[
        str | None,
        typer.Option("--model", "-m", help="Model under the brand (optional)"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Re-upload files already indexed"),
    ] = False,
    skip_health: Annotated[
        bool,
        typer.Option("--skip-health", help="Do not check server health first"),
    ] = False,
) -> None:
    """Upload a batch of PDFs, one at a time, with live progress.

    Files already indexed are skipped unless --force is given. Each file is
    uploaded, polled until the server finishes indexing, and registered in
    the catalog. A failed file never stops the rest of the batch.
    """
    from elevex.catalog import CatalogStore
    from elevex.ingest.client import RagServerClient
    from elevex.ingest.display import BatchProgressDisplay
    from elevex.ingest.orchestrator import IngestionOrchestrator
    from elevex.ingest.session import BatchSession

    config = get_state(ctx).config
    documents = _collect_documents(files)
    if not documents:
        console.print("[yellow]No PDF files to upload.[/yellow]")
        return

    async def _run_upload() -> dict[str, int] | None:
        async with RagServerClient(config) as client, CatalogStore(config.db_path) as catalog:
            scope = await _resolve_scope(catalog, brand, model)

            if not skip_health and not await client.is_online():
                console.print(
                    f"[red]Server offline[/red] ({config.server_url}) - "
                    "check that it is running, or pass --skip-health"
                )
                raise typer.Exit(code=1)

            async def _refresh(session: BatchSession) -> None:
                records = await catalog.list_records(scope.brand_id)
                console.print(
                    f"[dim]Catalog now lists {len(records)} file(s) for {scope.label}[/dim]"
                )

            orchestrator = IngestionOrchestrator(
                client, catalog, config, on_batch_complete=_refresh
            )
            orchestrator.setup_signal_handlers()

            with console.status("Checking duplicates..."):
                session = await orchestrator.prepare_batch(documents, scope)

            new_count = len(session.documents) - len(session.duplicates)
            console.print(
                Panel(
                    f"Uploading to [bold]{scope.label}[/bold]\n"
                    f"Files: {len(session.documents)} | New: {new_count} | "
                    f"Already indexed: {len(session.duplicates)}"
                    + (" [yellow](forced re-upload)[/yellow]" if force else ""),
                    title="Upload",
                )
            )

            if not force and not session.pending_documents:
                console.print(
                    "[yellow]All files are already indexed.[/yellow] "
                    "Use [bold]--force[/bold] to re-upload."
                )
                return None

            with BatchProgressDisplay(orchestrator.tracker, console=console, title=scope.label):
                return await orchestrator.run_batch(session, force_all=force)

    result = asyncio.run(_run_upload())
    if result is None:
        return

    summary_table = Table(title="Upload Summary")
    summary_table.add_column("Metric", style="bold")
    summary_table.add_column("Count", justify="right")
    summary_table.add_row("Total files", str(result["total"]))
    summary_table.add_row("Indexed", f"[green]{result['succeeded']}[/green]")
    summary_table.add_row("Failed", f"[red]{result['failed']}[/red]")
    summary_table.add_row("Skipped", f"[yellow]{result['skipped']}[/yellow]")
    if result["cancelled"]:
        summary_table.add_row("Cancelled", f"[yellow]{result['cancelled']}[/yellow]")
    console.print(Panel(summary_table, title="Upload Complete"))

    if result["failed"] or result["cancelled"]:
        raise typer.Exit(code=1)


@app.command()
def files(
    ctx: typer.Context,
    brand: Annotated[
        str | None,
        typer.Option("--brand", "-b", help="Only list files of this brand"),
    ] = None,
) -> None:
    """List source files registered in the catalog."""
    from elevex.catalog import CatalogStore

    config = get_state(ctx).config

    async def _list():
        async with CatalogStore(config.db_path) as catalog:
            brands = {b["id"]: b["name"] for b in await catalog.list_brands()}
            brand_id = None
            if brand is not None:
                scope = await _resolve_scope(catalog, brand, None)
                brand_id = scope.brand_id
            return brands, await catalog.list_records(brand_id)

    brands, records = asyncio.run(_list())
    if not records:
        console.print("[dim]No files in catalog.[/dim]")
        return

    table = Table(title=f"Catalog Files ({len(records)})")
    table.add_column("Brand", style="bold")
    table.add_column("Title", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    for record in records:
        style = "green" if record.status.value == "indexed" else "yellow"
        table.add_row(
            brands.get(record.brand_id, record.brand_id),
            record.title,
            f"{record.file_size / 1024 / 1024:.1f} MB",
            f"[{style}]{record.status.value}[/{style}]",
        )
    console.print(table)


@app.command()
def reconcile(ctx: typer.Context) -> None:
    """Purge stale catalog records when the server's vector store is empty."""
    from elevex.catalog import CatalogStore
    from elevex.ingest.client import RagServerClient
    from elevex.ingest.reconcile import reconcile_catalog

    config = get_state(ctx).config

    async def _run():
        async with RagServerClient(config) as client, CatalogStore(config.db_path) as catalog:
            return await reconcile_catalog(client, catalog)

    try:
        result = asyncio.run(_run())
    except Exception as e:
        console.print(f"[red]Error checking the vector store:[/red] {e}")
        raise typer.Exit(code=1)

    if result.purged_records:
        console.print(
            f"[green]✓[/green] {result.purged_records} stale record(s) removed. "
            "The PDFs can now be uploaded again."
        )
    elif result.server_documents == 0:
        console.print("[green]✓[/green] Catalog already in sync.")
    else:
        console.print(
            f"[green]✓[/green] Vector store has {result.server_documents} indexed documents."
        )


# ----------------------------------------------------------------------
# Brand / model commands
# ----------------------------------------------------------------------


@brand_app.command("add")
def brand_add(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Brand name")],
) -> None:
    """Create a brand."""
    from elevex.catalog import CatalogError, CatalogStore

    config = get_state(ctx).config

    async def _add() -> dict:
        async with CatalogStore(config.db_path) as catalog:
            return await catalog.create_brand(name)

    try:
        asyncio.run(_add())
    except CatalogError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Brand '{name}' created")


@brand_app.command("list")
def brand_list(ctx: typer.Context) -> None:
    """List brands and their models."""
    from elevex.catalog import CatalogStore

    config = get_state(ctx).config

    async def _list() -> list[tuple[dict, list[dict]]]:
        async with CatalogStore(config.db_path) as catalog:
            return [
                (b, await catalog.list_models(b["id"]))
                for b in await catalog.list_brands()
            ]

    rows = asyncio.run(_list())
    if not rows:
        console.print("[dim]No brands yet.[/dim]")
        return

    table = Table(title="Brands")
    table.add_column("Brand", style="bold")
    table.add_column("Models")
    for brand_row, models in rows:
        table.add_row(brand_row["name"], ", ".join(m["name"] for m in models) or "[dim]-[/dim]")
    console.print(table)


@brand_app.command("remove")
def brand_remove(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Brand name")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation"),
    ] = False,
) -> None:
    """Delete a brand together with its models and file records."""
    from elevex.catalog import CatalogStore

    config = get_state(ctx).config
    if not yes:
        typer.confirm(
            f"Delete brand '{name}' and all of its catalog records?", abort=True
        )

    async def _remove() -> int:
        async with CatalogStore(config.db_path) as catalog:
            scope = await _resolve_scope(catalog, name, None)
            removed = await catalog.delete_records_for_scope(scope.brand_id)
            await catalog.delete_brand(scope.brand_id)
            return removed

    removed = asyncio.run(_remove())
    console.print(f"[green]✓[/green] Brand '{name}' removed ({removed} file record(s))")


@model_app.command("add")
def model_add(
    ctx: typer.Context,
    brand: Annotated[str, typer.Argument(help="Brand name")],
    name: Annotated[str, typer.Argument(help="Model name")],
) -> None:
    """Create a model under an existing brand."""
    from elevex.catalog import CatalogStore

    config = get_state(ctx).config

    async def _add() -> None:
        async with CatalogStore(config.db_path) as catalog:
            scope = await _resolve_scope(catalog, brand, None)
            await catalog.create_model(scope.brand_id, name)

    asyncio.run(_add())
    console.print(f"[green]✓[/green] Model '{name}' created under '{brand}'")


# ----------------------------------------------------------------------
# Config commands
# ----------------------------------------------------------------------


def _key_name(admin: bool) -> str:
    return ADMIN_KEY_NAME if admin else API_KEY_NAME


@config_app.command("set-key")
def set_key(
    key: Annotated[str, typer.Argument(help="RAG server key to store in the keyring")],
    admin: Annotated[
        bool,
        typer.Option("--admin", help="Store as the admin key (upload routes)"),
    ] = False,
) -> None:
    """Store a RAG server key in the system keyring (service: elevex-rag)."""
    if not key or key.strip() == "":
        console.print("[red]Error:[/red] Key cannot be empty")
        raise typer.Exit(code=1)

    try:
        keyring.set_password(SERVICE_NAME, _key_name(admin), key)
    except Exception as e:
        console.print(f"[red]Error:[/red] Failed to store key: {e}")
        raise typer.Exit(code=1)
    console.print(
        f"[green]✓[/green] {'Admin' if admin else 'API'} key stored in system keyring "
        f"(service: {SERVICE_NAME})"
    )


@config_app.command("show")
def show_config(ctx: typer.Context) -> None:
    """Show the effective configuration with keys masked."""
    config = get_state(ctx).config

    def _mask(value: str | None) -> str:
        if not value:
            return "[yellow]not set[/yellow]"
        if len(value) > 8:
            return value[:8] + "*" * (len(value) - 8)
        return value[:2] + "*" * max(1, len(value) - 2)

    table = Table(title="Configuration")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Server URL", config.server_url)
    table.add_row("Catalog", config.db_path)
    admin_key = config.admin_key
    if admin_key is None:
        try:
            admin_key = get_admin_key()
        except RuntimeError:
            admin_key = None

    table.add_row("API key", _mask(config.api_key))
    table.add_row("Admin key", _mask(admin_key))
    table.add_row("Upload timeout", f"{config.upload_timeout_seconds:g}s")
    table.add_row(
        "Polling",
        f"every {config.poll_interval_seconds:g}s, max {config.poll_max_attempts} attempts",
    )
    console.print(table)


@config_app.command("remove-key")
def remove_key(
    admin: Annotated[
        bool,
        typer.Option("--admin", help="Remove the admin key instead of the API key"),
    ] = False,
) -> None:
    """Delete a stored RAG server key from the system keyring."""
    key_name = _key_name(admin)
    if not keyring.get_password(SERVICE_NAME, key_name):
        console.print("[yellow]Warning:[/yellow] No key found in keyring.\nNothing to remove.")
        return
    keyring.delete_password(SERVICE_NAME, key_name)
    console.print(f"[green]✓[/green] Key removed from system keyring (service: {SERVICE_NAME})")


if __name__ == "__main__":
    app()
