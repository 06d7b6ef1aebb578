"""
Shared pytest fixtures for canvasstore tests.

Everything runs against in-memory or tmp_path-backed stores; no network.
"""

import copy

import pytest

from canvasstore.api import EntityStore
from canvasstore.blob_store import LocalBlobStore, MemoryBlobStore
from canvasstore.bundler import NodeDataBundler
from canvasstore.cache import DocumentCache
from canvasstore.index_store import IndexStore


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingBlobStore:
    """Wraps a blob store and raises on chosen operations, like a dead transport."""

    def __init__(self, real_store):
        self._real = real_store
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def __getattr__(self, name):
        return getattr(self._real, name)

    def _check(self, op: str, path: str):
        self.calls.append((op, path))
        if op in self.fail_on:
            raise ConnectionError(f"simulated transport failure on {op} {path}")

    async def read_json(self, path):
        self._check("read_json", path)
        return await self._real.read_json(path)

    async def write_json(self, path, value):
        self._check("write_json", path)
        return await self._real.write_json(path, value)

    async def delete_file(self, path):
        self._check("delete_file", path)
        return await self._real.delete_file(path)

    async def delete_by_prefix(self, prefix):
        self._check("delete_by_prefix", prefix)
        return await self._real.delete_by_prefix(prefix)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def local_blob_store(tmp_path):
    return LocalBlobStore(tmp_path / "data")


@pytest.fixture
def cache(clock):
    return DocumentCache(ttl=60.0, clock=clock)


@pytest.fixture
def index_store(blob_store, cache):
    return IndexStore(blob_store, cache)


@pytest.fixture
def bundler(blob_store):
    return NodeDataBundler(blob_store)


@pytest.fixture
def entity_store(blob_store, cache):
    return EntityStore(blob_store, cache=cache)


@pytest.fixture
def make_workspace():
    """Factory for workspace documents."""

    def _make(id: str = "w1", name: str = "Demo", updated_at: int = 1_000, **extra):
        doc = {
            "id": id,
            "name": name,
            "icon": "folder",
            "canvasIds": [],
            "tags": [],
            "createdAt": 1_000,
            "updatedAt": updated_at,
        }
        doc.update(extra)
        return doc

    return _make


@pytest.fixture
def make_canvas():
    """Factory for canvas documents with a text node and a table node."""

    def _make(
        id: str = "c1",
        workspace_id: str = "w1",
        updated_at: int = 2_000,
        nodes: list | None = None,
        **extra,
    ):
        if nodes is None:
            nodes = [
                {
                    "id": "n1",
                    "type": "text",
                    "position": {"x": 0, "y": 0},
                    "data": {"type": "text", "title": "A", "content": "hello"},
                },
                {
                    "id": "n2",
                    "type": "table",
                    "position": {"x": 300, "y": 0},
                    "data": {
                        "type": "table",
                        "title": "Prices",
                        "sheetName": "Sheet1",
                        "columns": [{"id": "a", "name": "Year", "width": 80, "colType": "number"}],
                        "rows": [{"id": "r1", "cells": {"a": 2024}}, {"id": "r2", "cells": {"a": 2025}}],
                    },
                },
            ]
        doc = {
            "id": id,
            "workspaceId": workspace_id,
            "title": f"Canvas {id}",
            "template": "custom",
            "modules": [],
            "nodes": copy.deepcopy(nodes),
            "edges": [{"id": "e1", "source": "n1", "target": "n2"}],
            "viewport": {"x": 0, "y": 0, "zoom": 1},
            "createdAt": 1_500,
            "updatedAt": updated_at,
        }
        doc.update(extra)
        return doc

    return _make


@pytest.fixture
def failing_blob_store(blob_store):
    """Memory store behind a wrapper that can be told to fail."""
    return FailingBlobStore(blob_store)
