"""
One-shot migration from the legacy collection store to the blob layout.

For every user found in the legacy store:

- workspaces are copied verbatim
- each canvas node's ``data`` is written to its own file under
  ``{user}/canvas-data/{canvas}/{node}.json`` and the node keeps a
  ``_dataRef`` pointer to it (the per-node layout; canvases move to the
  bundle format the first time they are saved)
- settings documents are copied verbatim

The legacy store is only read. Checking the result and retiring the legacy
data are separate, manual steps; the printed tally exists so the counts can
be reconciled against the source.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from . import paths
from .api import EntityStore
from .bundler import LEGACY_REF_FIELD
from .legacy_store import LEGACY_COLLECTIONS, LegacyStore
from .protocol import BlobStoreProtocol
from .types import has_node_data

logger = logging.getLogger(__name__)


@dataclass
class MigrationStats:
    """Documents written to the blob store."""
    users: int = 0
    workspaces: int = 0
    canvases: int = 0
    nodes: int = 0
    settings: int = 0


async def _migrate_canvas(
    blob_store: BlobStoreProtocol, user_id: str, canvas_id: str, canvas: dict,
) -> int:
    """Write one canvas in the per-node layout. Returns nodes offloaded."""
    offloaded = 0
    for node in canvas.get("nodes") or []:
        if not has_node_data(node):
            continue
        ref = paths.legacy_node_path(user_id, canvas_id, node["id"])
        await blob_store.write_json(ref, node["data"])
        node[LEGACY_REF_FIELD] = ref
        del node["data"]
        offloaded += 1
    await blob_store.write_json(paths.canvas_path(user_id, canvas_id), canvas)
    return offloaded


async def migrate_legacy_store(
    legacy: LegacyStore,
    blob_store: BlobStoreProtocol,
    *,
    echo: Callable[[str], None] = print,
    build_indexes: bool = True,
) -> MigrationStats:
    """
    Copy every user's documents from the legacy store into the blob store.

    Args:
        legacy: Source store, only read
        blob_store: Target
        echo: Receives human-readable progress lines
        build_indexes: Also write each user's workspace and canvas index
            documents so the migrated data is listable

    Returns:
        Tally of documents written
    """
    stats = MigrationStats()
    user_ids = legacy.discover_users(LEGACY_COLLECTIONS)
    stats.users = len(user_ids)
    echo(f"Found {len(user_ids)} user(s): {', '.join(user_ids)}")
    echo("")

    entity_store = EntityStore(blob_store) if build_indexes else None

    for user_id in user_ids:
        echo(f"-- User: {user_id}")

        workspaces = legacy.list_documents(user_id, "workspaces")
        echo(f"   Workspaces: {len(workspaces)}")
        for ws_id, workspace in workspaces:
            await blob_store.write_json(paths.workspace_path(user_id, ws_id), workspace)
            stats.workspaces += 1
            echo(f"     + {workspace.get('name') or ws_id}")

        canvases = legacy.list_documents(user_id, "canvases")
        echo(f"   Canvases: {len(canvases)}")
        for canvas_id, canvas in canvases:
            node_count = await _migrate_canvas(blob_store, user_id, canvas_id, canvas)
            stats.canvases += 1
            stats.nodes += node_count
            echo(f"     + {canvas.get('title') or canvas_id} ({node_count} nodes)")

        settings = legacy.list_documents(user_id, "settings")
        for settings_id, doc in settings:
            await blob_store.write_json(paths.settings_path(user_id, settings_id), doc)
            stats.settings += 1
        echo(f"   Settings: {len(settings)}")

        if entity_store is not None:
            ws_count, canvas_count = await entity_store.rebuild_indexes(user_id)
            echo(f"   Indexed: {ws_count} workspaces, {canvas_count} canvases")
        echo("")

    echo("=" * 39)
    echo("Migration complete!")
    echo(f"  Users:      {stats.users}")
    echo(f"  Workspaces: {stats.workspaces}")
    echo(f"  Canvases:   {stats.canvases}")
    echo(f"  Nodes:      {stats.nodes}")
    echo(f"  Settings:   {stats.settings}")
    echo("")
    echo("Legacy data has NOT been deleted.")
    echo("Verify everything works, then clean it up manually.")

    logger.info("Migration complete: %s", stats)
    return stats
