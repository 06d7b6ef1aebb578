"""
Core API for canvas storage.

EntityStore is what the HTTP layer calls, always on behalf of one
authenticated tenant:

- workspaces: list / create / update / delete (cascading to canvases)
- canvases: list / get / create / update / delete
- settings: get / save
- seed, rebuild_indexes, ping

Documents are written whole. Updates shallow-merge the given fields into the
stored document and write the result back; like the index updates, this is
an unlocked read-modify-write and concurrent writers to one document can
lose an update.
"""

import logging
from typing import Optional

from . import paths
from .bundler import NodeDataBundler
from .cache import DocumentCache
from .index_store import IndexStore
from .protocol import BlobStoreProtocol, IndexStoreProtocol
from .types import DEFAULT_MODEL, canvas_meta_for_index, sort_by_updated

logger = logging.getLogger(__name__)


class EntityStore:
    """
    Workspace, canvas and settings repositories over a blob store.

    The cache is passed in rather than created here so several stores (or a
    test) can share or reset it.
    """

    def __init__(
        self,
        blob_store: BlobStoreProtocol,
        *,
        cache: Optional[DocumentCache] = None,
        index_store: Optional[IndexStoreProtocol] = None,
        bundler: Optional[NodeDataBundler] = None,
    ):
        self._blobs = blob_store
        self._cache = cache if cache is not None else DocumentCache()
        self._index = index_store if index_store is not None else IndexStore(blob_store, self._cache)
        self._bundler = bundler if bundler is not None else NodeDataBundler(blob_store)

    @property
    def blob_store(self) -> BlobStoreProtocol:
        return self._blobs

    @property
    def cache(self) -> DocumentCache:
        return self._cache

    @property
    def index(self) -> IndexStoreProtocol:
        return self._index

    @property
    def bundler(self) -> NodeDataBundler:
        return self._bundler

    # -------------------------------------------------------------------------
    # Workspaces
    # -------------------------------------------------------------------------

    async def list_workspaces(self, tenant: str) -> list[dict]:
        """All workspaces of a tenant, most recently updated first."""
        entries = await self._index.read_index(tenant, paths.WORKSPACES)
        return sort_by_updated(entries)

    async def create_workspace(self, tenant: str, workspace: dict) -> dict:
        """
        Store a new workspace.

        Workspaces are small, so the index entry is the whole document.
        """
        await self._blobs.write_json(paths.workspace_path(tenant, workspace["id"]), workspace)
        await self._index.upsert_index(tenant, paths.WORKSPACES, workspace)
        logger.debug("Created workspace %s for %s", workspace["id"], tenant)
        return workspace

    async def update_workspace(
        self, tenant: str, workspace_id: str, fields: dict,
    ) -> Optional[dict]:
        """
        Merge fields into an existing workspace.

        Returns:
            The merged document, or None if the workspace does not exist
            (nothing is written in that case)
        """
        path = paths.workspace_path(tenant, workspace_id)
        existing = await self._blobs.read_json(path)
        if existing is None:
            return None

        merged = {**existing, **fields}
        await self._blobs.write_json(path, merged)
        await self._index.upsert_index(tenant, paths.WORKSPACES, merged)
        return merged

    async def delete_workspace(self, tenant: str, workspace_id: str) -> int:
        """
        Delete a workspace and every canvas in it.

        Children go first: each canvas loses its payload files and document,
        then the canvas index is rewritten without them, and only then is the
        workspace itself removed. A crash part way leaves a workspace with
        fewer canvases, never canvases without a workspace.

        Returns:
            Number of canvases deleted
        """
        canvases = await self._index.read_index(tenant, paths.CANVASES)
        doomed = [c for c in canvases if c.get("workspaceId") == workspace_id]
        kept = [c for c in canvases if c.get("workspaceId") != workspace_id]

        for entry in doomed:
            await self._purge_canvas_files(tenant, entry["id"])
        if doomed:
            await self._index.write_index(tenant, paths.CANVASES, kept)

        await self._blobs.delete_file(paths.workspace_path(tenant, workspace_id))
        await self._index.remove_from_index(tenant, paths.WORKSPACES, workspace_id)
        logger.info(
            "Deleted workspace %s for %s (%d canvases)", workspace_id, tenant, len(doomed),
        )
        return len(doomed)

    # -------------------------------------------------------------------------
    # Canvases
    # -------------------------------------------------------------------------

    async def list_canvases(
        self, tenant: str, workspace_id: Optional[str] = None,
    ) -> list[dict]:
        """Canvas index entries, optionally for one workspace, newest first."""
        entries = await self._index.read_index(tenant, paths.CANVASES)
        if workspace_id:
            entries = [e for e in entries if e.get("workspaceId") == workspace_id]
        return sort_by_updated(entries)

    async def get_canvas(self, tenant: str, canvas_id: str) -> Optional[dict]:
        """
        A full canvas with node data restored.

        Returns:
            The canvas, or None if it does not exist
        """
        canvas = await self._blobs.read_json(paths.canvas_path(tenant, canvas_id))
        if canvas is None:
            return None
        if canvas.get("nodes"):
            await self._bundler.hydrate_node_data(canvas["nodes"], tenant, canvas_id)
        return canvas

    async def create_canvas(self, tenant: str, canvas: dict) -> dict:
        """
        Store a new canvas with its node data offloaded into a bundle.

        The index projection is taken before offloading so nodeCount reflects
        the nodes as given. Mutates ``canvas`` (node data is stripped).
        """
        canvas_id = canvas["id"]
        meta = canvas_meta_for_index(canvas)
        if canvas.get("nodes"):
            await self._bundler.offload_node_data(canvas["nodes"], tenant, canvas_id)
        await self._blobs.write_json(paths.canvas_path(tenant, canvas_id), canvas)
        await self._index.upsert_index(tenant, paths.CANVASES, meta)
        logger.debug("Created canvas %s for %s", canvas_id, tenant)
        return canvas

    async def update_canvas(self, tenant: str, canvas_id: str, fields: dict) -> dict:
        """
        Merge fields into a canvas, creating it if absent.

        Node data in ``fields["nodes"]`` is offloaded first, replacing the
        bundle. Updates without node data leave the bundle untouched.
        Mutates ``fields`` (node data is stripped from ``fields["nodes"]``).

        Returns:
            The merged document as stored (node data stripped)
        """
        if fields.get("nodes"):
            await self._bundler.offload_node_data(fields["nodes"], tenant, canvas_id)

        path = paths.canvas_path(tenant, canvas_id)
        existing = await self._blobs.read_json(path)
        merged = {**(existing or {}), **fields}
        merged.setdefault("id", canvas_id)

        await self._blobs.write_json(path, merged)
        await self._index.upsert_index(tenant, paths.CANVASES, canvas_meta_for_index(merged))
        return merged

    async def delete_canvas(self, tenant: str, canvas_id: str) -> None:
        """Delete a canvas, its bundle, any legacy node files and its index entry."""
        await self._purge_canvas_files(tenant, canvas_id)
        await self._index.remove_from_index(tenant, paths.CANVASES, canvas_id)
        logger.debug("Deleted canvas %s for %s", canvas_id, tenant)

    async def _purge_canvas_files(self, tenant: str, canvas_id: str) -> None:
        # Both storage generations of node data, then the document itself
        await self._blobs.delete_file(paths.bundle_path(tenant, canvas_id))
        await self._blobs.delete_by_prefix(paths.legacy_node_prefix(tenant, canvas_id))
        await self._blobs.delete_file(paths.canvas_path(tenant, canvas_id))

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_settings(self, tenant: str, name: str = "ai") -> dict:
        """Stored settings document, or the defaults when none was saved."""
        path = paths.settings_path(tenant, name)
        settings = self._cache.get(path)
        if settings is None:
            settings = await self._blobs.read_json(path)
            if settings is None:
                return {"keys": {}, "defaultModel": DEFAULT_MODEL}
            self._cache.set(path, settings)
        return settings

    async def save_settings(self, tenant: str, fields: dict, name: str = "ai") -> dict:
        """Merge fields into the stored settings and write them back."""
        path = paths.settings_path(tenant, name)
        existing = await self._blobs.read_json(path)
        merged = {**(existing or {}), **fields}
        await self._blobs.write_json(path, merged)
        self._cache.set(path, merged)
        return merged

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def seed(self, tenant: str, workspace: dict, canvas: dict) -> bool:
        """
        Create a first workspace and canvas for a tenant with no data.

        Returns:
            True if seeded, False if the tenant already has workspaces
        """
        if await self._index.read_index(tenant, paths.WORKSPACES):
            return False
        await self.create_workspace(tenant, workspace)
        await self.create_canvas(tenant, canvas)
        logger.info("Seeded tenant %s", tenant)
        return True

    async def rebuild_indexes(self, tenant: str) -> tuple[int, int]:
        """
        Rewrite both index documents from the stored documents.

        Lists every workspace and canvas document under the tenant; used after
        a migration or to repair an index that lost an update. Unparsable
        documents are skipped.

        Returns:
            (workspace count, canvas count)
        """
        workspaces = await self._blobs.list_json_files(paths.workspaces_prefix(tenant))
        canvases = await self._blobs.list_json_files(paths.canvases_prefix(tenant))
        workspaces = [w for w in workspaces if isinstance(w, dict) and w.get("id")]
        canvas_meta = [
            canvas_meta_for_index(c)
            for c in canvases
            if isinstance(c, dict) and c.get("id")
        ]
        await self._index.write_index(tenant, paths.WORKSPACES, workspaces)
        await self._index.write_index(tenant, paths.CANVASES, canvas_meta)
        logger.info(
            "Rebuilt indexes for %s: %d workspaces, %d canvases",
            tenant, len(workspaces), len(canvas_meta),
        )
        return len(workspaces), len(canvas_meta)

    async def ping(self) -> bool:
        """Round-trip to the backend. Raises whatever the transport raises."""
        await self._blobs.exists("_health")
        return True

    async def close(self) -> None:
        """Release the backend's resources."""
        await self._blobs.close()
