"""
CLI interface for canvas storage.

Usage:
    canvasstore workspaces USER
    canvasstore canvases USER --workspace WS
    canvasstore canvas USER CANVAS_ID
    canvasstore migrate legacy.db
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import typer
from typing_extensions import Annotated

from .api import EntityStore
from .backend import create_blob_store, open_store
from .config import STORE_PATH_ENV, load_or_create_config, resolve_store_path
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode

# Configure quiet mode by default (suppress verbose library output)
# Set CANVASSTORE_VERBOSE=1 to enable debug mode via environment
if os.environ.get("CANVASSTORE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"canvasstore {version('canvasstore')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="canvasstore",
    help="Multi-tenant canvas document store on object storage.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar=STORE_PATH_ENV,
        help="Path to the store directory (default: ~/.canvasstore/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Multi-tenant canvas document store on object storage."""


# -----------------------------------------------------------------------------
# Common Arguments
# -----------------------------------------------------------------------------

TenantArgument = Annotated[str, typer.Argument(help="Tenant (user) identifier")]


def _run(action: Callable[[EntityStore], Awaitable[Any]]) -> Any:
    """Open the configured store, run one async action against it, close it."""
    config = load_or_create_config(resolve_store_path(_get_store_override()))
    handler = configure_ops_log(config.path)
    store_logger = logging.getLogger("canvasstore")

    async def runner():
        entity_store = open_store(config)
        try:
            return await action(entity_store)
        finally:
            await entity_store.close()

    try:
        return asyncio.run(runner())
    finally:
        store_logger.removeHandler(handler)
        handler.close()


def _echo_json(value: Any) -> None:
    typer.echo(json.dumps(value, indent=2, ensure_ascii=False))


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def workspaces(tenant: TenantArgument):
    """List a tenant's workspaces, most recently updated first."""
    items = _run(lambda es: es.list_workspaces(tenant))
    if _get_json_output():
        _echo_json(items)
        return
    if not items:
        typer.echo("No workspaces")
        return
    for ws in items:
        count = len(ws.get("canvasIds") or [])
        typer.echo(f"{ws.get('id')}  {ws.get('name', '')}  ({count} canvases)")


@app.command()
def canvases(
    tenant: TenantArgument,
    workspace: Annotated[Optional[str], typer.Option(
        "--workspace", "-w",
        help="Only canvases of this workspace",
    )] = None,
):
    """List a tenant's canvases, most recently updated first."""
    items = _run(lambda es: es.list_canvases(tenant, workspace))
    if _get_json_output():
        _echo_json(items)
        return
    if not items:
        typer.echo("No canvases")
        return
    for c in items:
        typer.echo(
            f"{c.get('id')}  {c.get('title', '')}  "
            f"[{c.get('nodeCount', 0)} nodes, workspace {c.get('workspaceId')}]"
        )


@app.command()
def canvas(
    tenant: TenantArgument,
    canvas_id: Annotated[str, typer.Argument(help="Canvas ID")],
):
    """Print a canvas with its node data as JSON."""
    doc = _run(lambda es: es.get_canvas(tenant, canvas_id))
    if doc is None:
        typer.echo(f"Canvas not found: {canvas_id}", err=True)
        raise typer.Exit(1)
    _echo_json(doc)


@app.command("delete-workspace")
def delete_workspace(
    tenant: TenantArgument,
    workspace_id: Annotated[str, typer.Argument(help="Workspace ID")],
):
    """Delete a workspace and all of its canvases."""
    removed = _run(lambda es: es.delete_workspace(tenant, workspace_id))
    typer.echo(f"Deleted workspace {workspace_id} ({removed} canvases)")


@app.command("delete-canvas")
def delete_canvas(
    tenant: TenantArgument,
    canvas_id: Annotated[str, typer.Argument(help="Canvas ID")],
):
    """Delete one canvas and its node data."""
    _run(lambda es: es.delete_canvas(tenant, canvas_id))
    typer.echo(f"Deleted canvas {canvas_id}")


@app.command()
def reindex(tenant: TenantArgument):
    """Rebuild a tenant's index documents from the stored documents."""
    ws_count, canvas_count = _run(lambda es: es.rebuild_indexes(tenant))
    if _get_json_output():
        _echo_json({"workspaces": ws_count, "canvases": canvas_count})
        return
    typer.echo(f"Indexed {ws_count} workspaces, {canvas_count} canvases")


@app.command()
def migrate(
    source: Annotated[Path, typer.Argument(
        help="Legacy SQLite store to copy from (opened read-only)",
    )],
    no_indexes: Annotated[bool, typer.Option(
        "--no-indexes",
        help="Copy documents only, do not write index documents",
    )] = False,
):
    """Copy every user's data from a legacy store into this store."""
    from .legacy_store import LegacyStore
    from .migration import migrate_legacy_store

    if not source.exists():
        typer.echo(f"Error: legacy store not found: {source}", err=True)
        raise typer.Exit(1)

    config = load_or_create_config(resolve_store_path(_get_store_override()))
    handler = configure_ops_log(config.path)

    async def runner():
        blob_store = create_blob_store(config)
        try:
            with LegacyStore(source, read_only=True) as legacy:
                return await migrate_legacy_store(
                    legacy, blob_store, echo=typer.echo, build_indexes=not no_indexes,
                )
        finally:
            await blob_store.close()

    try:
        stats = asyncio.run(runner())
    finally:
        logging.getLogger("canvasstore").removeHandler(handler)
        handler.close()

    if _get_json_output():
        from dataclasses import asdict
        _echo_json(asdict(stats))


@app.command("config")
def show_config():
    """Show the store configuration."""
    config = load_or_create_config(resolve_store_path(_get_store_override()))
    if _get_json_output():
        _echo_json({
            "path": str(config.path),
            "config": str(config.config_path),
            "backend": config.backend.name,
            "params": {k: v for k, v in config.backend.params.items() if k != "token"},
            "cache_ttl": config.cache_ttl,
        })
        return
    typer.echo(f"store: {config.path}")
    typer.echo(f"config: {config.config_path}")
    typer.echo(f"backend: {config.backend.name}")
    for key, value in config.backend.params.items():
        if key == "token":
            value = "***"
        typer.echo(f"  {key}: {value}")
    typer.echo(f"cache ttl: {config.cache_ttl}s")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="canvasstore CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
