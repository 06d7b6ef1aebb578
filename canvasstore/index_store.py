"""
Secondary indexes over the blob store.

Each (tenant, entity type) has one JSON array at ``{tenant}/{type}-index.json``
summarizing every live entity of that type. It is the only way to enumerate
entities without listing and parsing every document.

Upsert and remove are read-modify-write on a single document with no lock
and no conditional write. Two writers updating the same index concurrently
can lose one update: both read the same array and the later write wins.
That is accepted for a single-editor-per-tenant workload. A replacement that
uses conditional writes only has to satisfy IndexStoreProtocol.
"""

import logging

from . import paths
from .cache import DocumentCache
from .errors import CorruptDocumentError
from .protocol import BlobStoreProtocol

logger = logging.getLogger(__name__)


class IndexStore:
    """Cache-fronted index documents, one per tenant and entity type."""

    def __init__(self, blob_store: BlobStoreProtocol, cache: DocumentCache):
        self._blobs = blob_store
        self._cache = cache

    async def read_index(self, tenant: str, entity_type: str) -> list[dict]:
        """
        Current entries of an index.

        Served from the cache when fresh; otherwise read from the blob store
        (an absent document is an empty index) and cached. A damaged index
        (unparsable or not a list) reads as empty and is not cached; the
        ``reindex`` command rebuilds it.
        """
        path = paths.index_path(tenant, entity_type)
        cached = self._cache.get(path)
        if cached is not None:
            return cached

        try:
            entries = await self._blobs.read_json(path)
        except CorruptDocumentError as e:
            logger.warning("%s; listing as empty until `canvasstore reindex %s`", e, tenant)
            return []
        if entries is None:
            entries = []
        elif not isinstance(entries, list):
            logger.warning(
                "Index %s is not a list; listing as empty until `canvasstore reindex %s`",
                path, tenant,
            )
            return []
        self._cache.set(path, entries)
        return entries

    async def write_index(
        self, tenant: str, entity_type: str, entries: list[dict],
    ) -> None:
        """Overwrite an index and refresh its cache entry."""
        path = paths.index_path(tenant, entity_type)
        await self._blobs.write_json(path, entries)
        self._cache.set(path, entries)

    async def upsert_index(
        self,
        tenant: str,
        entity_type: str,
        entry: dict,
        id_field: str = "id",
    ) -> None:
        """
        Replace the entry with the same id, or append it.

        Not atomic; see module docstring.
        """
        entries = await self.read_index(tenant, entity_type)
        key = entry.get(id_field)
        for i, existing in enumerate(entries):
            if existing.get(id_field) == key:
                entries[i] = entry
                break
        else:
            entries.append(entry)
        await self.write_index(tenant, entity_type, entries)

    async def remove_from_index(
        self,
        tenant: str,
        entity_type: str,
        id: str,
        id_field: str = "id",
    ) -> None:
        """
        Drop every entry with the given id. Unknown ids change nothing.

        Not atomic; see module docstring.
        """
        entries = await self.read_index(tenant, entity_type)
        kept = [e for e in entries if e.get(id_field) != id]
        if len(kept) == len(entries):
            return
        await self.write_index(tenant, entity_type, kept)
