"""
Protocol definitions for the storage layer.

Defines interface contracts at two levels:
- BlobStoreProtocol: the durable key -> JSON medium (memory, local disk, GCS)
- IndexStoreProtocol: per-tenant secondary indexes kept on top of it

IndexStore is an unlocked read-modify-write. Keeping callers on the protocol
lets a conditional-write implementation (generation or ETag match) replace
it without touching EntityStore.
"""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class BlobStoreProtocol(Protocol):
    """
    Uninterpreted key/value storage of JSON documents.

    Implemented by:
    - MemoryBlobStore (in-process, tests)
    - LocalBlobStore (one file per key)
    - GCSBlobStore (Google Cloud Storage JSON API)

    Each call is independently durable; nothing is atomic across calls.
    """

    async def read_json(self, path: str) -> Optional[Any]:
        """Parsed document, or None if absent. Raises CorruptDocumentError."""
        ...

    async def write_json(self, path: str, value: Any) -> None:
        """Overwrite the document at path."""
        ...

    async def exists(self, path: str) -> bool: ...

    async def delete_file(self, path: str) -> None:
        """Delete one document. Absence is not an error."""
        ...

    async def delete_by_prefix(self, prefix: str) -> None:
        """Delete every document under prefix. Absence is not an error."""
        ...

    async def list_json_files(self, prefix: str) -> list[Any]:
        """Parse every document under prefix, skipping unparsable ones."""
        ...

    async def close(self) -> None: ...


@runtime_checkable
class IndexStoreProtocol(Protocol):
    """
    One JSON array per (tenant, entity type), the only enumeration path.
    """

    async def read_index(self, tenant: str, entity_type: str) -> list[dict]: ...

    async def write_index(
        self, tenant: str, entity_type: str, entries: list[dict],
    ) -> None: ...

    async def upsert_index(
        self,
        tenant: str,
        entity_type: str,
        entry: dict,
        id_field: str = "id",
    ) -> None: ...

    async def remove_from_index(
        self,
        tenant: str,
        entity_type: str,
        id: str,
        id_field: str = "id",
    ) -> None: ...
