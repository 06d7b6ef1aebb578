"""
Node data offloading.

A canvas document keeps node metadata and edges inline. The per-node
``data`` payloads (tables, markdown, images) are moved into one bundle
document per canvas, ``{tenant}/canvas-data/{canvasId}.json``, mapping
node id to payload.

Reading goes through an ordered list of readers, one per storage
generation:

1. BundleReader: the bundle document (current format)
2. LegacyNodeFileReader: one file per node, found through the node's
   ``_dataRef`` path (written by ``canvasstore migrate``)

The first reader that finds anything wins. Adding a format means adding a
reader to the list.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol

from . import paths
from .errors import CorruptDocumentError
from .protocol import BlobStoreProtocol
from .types import empty_node_data, has_node_data

logger = logging.getLogger(__name__)

LEGACY_REF_FIELD = "_dataRef"


class NodeDataReader(Protocol):
    """One storage generation of node payloads."""

    async def load(
        self, nodes: list[dict], tenant: str, canvas_id: str,
    ) -> Optional[dict[str, Any]]:
        """Payloads keyed by node id, or None if this format has nothing."""
        ...


class BundleReader:
    """Reads the single bundle document of a canvas."""

    def __init__(self, blob_store: BlobStoreProtocol):
        self._blobs = blob_store

    async def load(self, nodes, tenant, canvas_id):
        try:
            bundle = await self._blobs.read_json(paths.bundle_path(tenant, canvas_id))
        except CorruptDocumentError as e:
            logger.warning("Ignoring unreadable bundle for canvas %s: %s", canvas_id, e)
            return None
        if bundle is None:
            return None
        if not isinstance(bundle, dict):
            logger.warning("Bundle for canvas %s is not an object, ignoring", canvas_id)
            return None
        return bundle


class LegacyNodeFileReader:
    """
    Reads one file per node through its ``_dataRef`` path.

    A missing or unreadable file only costs that node its payload; the
    failure is logged and the remaining nodes load normally.
    """

    def __init__(self, blob_store: BlobStoreProtocol):
        self._blobs = blob_store

    async def _load_one(self, node: dict, canvas_id: str) -> Optional[Any]:
        ref = node.get(LEGACY_REF_FIELD)
        try:
            data = await self._blobs.read_json(ref)
        except Exception as e:
            logger.warning(
                "Failed to load node %s of canvas %s from %s: %s",
                node.get("id"), canvas_id, ref, e,
            )
            return None
        if data is None:
            logger.warning(
                "Node %s of canvas %s references missing %s",
                node.get("id"), canvas_id, ref,
            )
        return data

    async def load(self, nodes, tenant, canvas_id):
        refs = [n for n in nodes if n.get(LEGACY_REF_FIELD)]
        if not refs:
            return None
        results = await asyncio.gather(*(self._load_one(n, canvas_id) for n in refs))
        return {
            node["id"]: data
            for node, data in zip(refs, results)
            if data is not None
        }


class NodeDataBundler:
    """Splits node payloads out of a canvas and joins them back."""

    def __init__(
        self,
        blob_store: BlobStoreProtocol,
        readers: Optional[list[NodeDataReader]] = None,
    ):
        self._blobs = blob_store
        if readers is None:
            readers = [BundleReader(blob_store), LegacyNodeFileReader(blob_store)]
        self._readers = readers

    async def offload_node_data(
        self, nodes: list[dict], tenant: str, canvas_id: str,
    ) -> Optional[dict[str, Any]]:
        """
        Strip ``data`` from every node and store it in the canvas bundle.

        Mutates ``nodes`` in place. Writes nothing when no node has data.

        Returns:
            The bundle that was written, or None if nothing was written
        """
        bundle: dict[str, Any] = {}
        for node in nodes:
            if has_node_data(node):
                bundle[node["id"]] = node["data"]
            node.pop("data", None)

        if not bundle:
            return None

        await self._blobs.write_json(paths.bundle_path(tenant, canvas_id), bundle)
        logger.debug("Offloaded %d node payload(s) for canvas %s", len(bundle), canvas_id)
        return bundle

    async def _load_payloads(
        self, nodes: list[dict], tenant: str, canvas_id: str,
    ) -> dict[str, Any]:
        for reader in self._readers:
            payloads = await reader.load(nodes, tenant, canvas_id)
            if payloads is not None:
                return payloads
        return {}

    async def hydrate_node_data(
        self, nodes: list[dict], tenant: str, canvas_id: str,
    ) -> list[dict]:
        """
        Put each node's ``data`` back from storage.

        Mutates and returns ``nodes``. ``_dataRef`` is removed from every
        node. A node no reader could supply keeps any inline data it still
        has, otherwise it gets an empty text payload.
        """
        payloads = await self._load_payloads(nodes, tenant, canvas_id)

        missing = 0
        for node in nodes:
            node_id = node.get("id")
            if node_id in payloads:
                node["data"] = payloads[node_id]
            node.pop(LEGACY_REF_FIELD, None)
            if not has_node_data(node):
                node["data"] = empty_node_data()
                missing += 1

        if missing:
            logger.warning(
                "Canvas %s: %d node(s) had no stored data, using placeholders",
                canvas_id, missing,
            )
        return nodes
