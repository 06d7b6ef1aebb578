"""
Canvas Store

A multi-tenant document store for workspaces and canvases, built on a plain
object store (key -> JSON document) instead of a database.

Quick Start:
    from canvasstore import EntityStore, MemoryBlobStore

    store = EntityStore(MemoryBlobStore())
    await store.create_workspace("user-1", {"id": "w1", "name": "Demo"})
    await store.list_workspaces("user-1")

CLI Usage:
    canvasstore workspaces USER
    canvasstore canvas USER CANVAS_ID
    canvasstore migrate legacy.db

Environment Variables:
    CANVASSTORE_PATH       - Override default store location (~/.canvasstore)
    CANVASSTORE_GCS_TOKEN  - Access token for the gcs backend
    CANVASSTORE_VERBOSE    - Set to 1 for debug logging in the CLI
"""

from .api import EntityStore
from .blob_store import GCSBlobStore, LocalBlobStore, MemoryBlobStore
from .bundler import NodeDataBundler
from .cache import DocumentCache
from .errors import CanvasStoreError, CorruptDocumentError
from .index_store import IndexStore

__version__ = "0.1.0"
__all__ = [
    "EntityStore",
    "DocumentCache",
    "IndexStore",
    "NodeDataBundler",
    "MemoryBlobStore",
    "LocalBlobStore",
    "GCSBlobStore",
    "CanvasStoreError",
    "CorruptDocumentError",
]
