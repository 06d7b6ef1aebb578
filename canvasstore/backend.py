"""
Pluggable blob backend factory.

Creates the blob store named in the configuration. Built-in backends are
``local`` (directory tree), ``memory`` (process memory) and ``gcs`` (Google
Cloud Storage). External backends register via the ``canvasstore.backends``
entry point group.

External backend packages provide a factory function::

    def create_blob_store(config: StoreConfig) -> BlobStoreProtocol:
        ...

and register it in their pyproject.toml::

    [project.entry-points."canvasstore.backends"]
    my-backend = "my_package.backend:create_blob_store"
"""

import os
from pathlib import Path

from .api import EntityStore
from .cache import DocumentCache
from .config import GCS_TOKEN_ENV, StoreConfig
from .protocol import BlobStoreProtocol


def create_blob_store(config: StoreConfig) -> BlobStoreProtocol:
    """
    Create the blob store for a configuration.

    Raises:
        ValueError: Unknown backend name or missing required parameter
    """
    name = config.backend.name
    params = config.backend.params

    if name == "local":
        from .blob_store import LocalBlobStore
        root = params.get("root") or str(config.path / "data")
        return LocalBlobStore(Path(root).expanduser())

    if name == "memory":
        from .blob_store import MemoryBlobStore
        return MemoryBlobStore()

    if name == "gcs":
        from .blob_store import GCSBlobStore
        bucket = params.get("bucket")
        if not bucket:
            raise ValueError("The gcs backend needs a 'bucket' parameter")
        kwargs = {}
        if params.get("api_url"):
            kwargs["api_url"] = params["api_url"]
        if params.get("timeout"):
            kwargs["timeout"] = float(params["timeout"])
        return GCSBlobStore(
            bucket,
            token=params.get("token") or os.environ.get(GCS_TOKEN_ENV),
            **kwargs,
        )

    return _load_backend(name, config)


def _load_backend(name: str, config: StoreConfig) -> BlobStoreProtocol:
    """Load a backend by entry point name."""
    from importlib.metadata import entry_points

    eps = entry_points(group="canvasstore.backends")
    for ep in eps:
        if ep.name == name:
            factory = ep.load()
            return factory(config)

    available = [ep.name for ep in eps]
    if available:
        raise ValueError(
            f"Unknown backend: {name!r}. Built in: local, memory, gcs. "
            f"Registered: {available}"
        )
    raise ValueError(
        f"Unknown backend: {name!r}. Built in: local, memory, gcs. "
        "No other backends registered."
    )


def open_store(config: StoreConfig) -> EntityStore:
    """Wire blob store, cache, index store and bundler into an EntityStore."""
    blob_store = create_blob_store(config)
    return EntityStore(blob_store, cache=DocumentCache(ttl=config.cache_ttl))
