"""
Tests for the legacy store and the migration into the blob layout.
"""

import sqlite3

import pytest

from canvasstore.api import EntityStore
from canvasstore.bundler import LEGACY_REF_FIELD
from canvasstore.legacy_store import LegacyStore
from canvasstore.migration import MigrationStats, migrate_legacy_store


@pytest.fixture
def legacy(tmp_path):
    store = LegacyStore(tmp_path / "legacy.db")
    yield store
    store.close()


@pytest.fixture
def populated_legacy(legacy, make_workspace, make_canvas):
    """Two users: alice with a workspace, two canvases and settings; bob with one workspace."""
    legacy.put("alice", "workspaces", "w1", make_workspace("w1", name="Research"))
    legacy.put("alice", "canvases", "c1", make_canvas("c1", "w1"))
    legacy.put("alice", "canvases", "c2", make_canvas("c2", "w1", nodes=[
        {"id": "n1", "type": "text", "data": {"type": "text", "title": "Only", "content": "x"}},
        {"id": "n2", "type": "text"},
    ]))
    legacy.put("alice", "settings", "ai", {"keys": {"anthropic": "k"}, "defaultModel": "m"})
    legacy.put("bob", "workspaces", "w9", make_workspace("w9", name="Bob's"))
    return legacy


class TestLegacyStore:

    def test_put_get(self, legacy):
        legacy.put("u1", "workspaces", "w1", {"id": "w1", "name": "Ünïcode"})
        assert legacy.get("u1", "workspaces", "w1") == {"id": "w1", "name": "Ünïcode"}
        assert legacy.get("u1", "workspaces", "nope") is None
        assert legacy.get("u2", "workspaces", "w1") is None

    def test_put_replaces(self, legacy):
        legacy.put("u1", "settings", "ai", {"v": 1})
        legacy.put("u1", "settings", "ai", {"v": 2})
        assert legacy.list_documents("u1", "settings") == [("ai", {"v": 2})]

    def test_list_documents_ordered_by_id(self, legacy):
        for doc_id in ("b", "a", "c"):
            legacy.put("u1", "canvases", doc_id, {"id": doc_id})
        assert [doc_id for doc_id, _ in legacy.list_documents("u1", "canvases")] == ["a", "b", "c"]

    def test_discover_users_across_collections(self, legacy):
        legacy.put("zed", "settings", "ai", {})
        legacy.put("amy", "canvases", "c1", {})
        legacy.put("amy", "workspaces", "w1", {})
        legacy.put("ghost", "other", "x", {})
        assert legacy.discover_users() == ["amy", "zed"]
        assert legacy.discover_users(["settings"]) == ["zed"]
        assert legacy.discover_users([]) == []

    def test_count(self, populated_legacy):
        assert populated_legacy.count("workspaces") == 2
        assert populated_legacy.count("canvases") == 2
        assert populated_legacy.count("missing") == 0

    def test_read_only_requires_existing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LegacyStore(tmp_path / "absent.db", read_only=True)

    def test_read_only_refuses_writes(self, tmp_path):
        path = tmp_path / "legacy.db"
        with LegacyStore(path) as writable:
            writable.put("u1", "workspaces", "w1", {"id": "w1"})

        with LegacyStore(path, read_only=True) as ro:
            assert ro.get("u1", "workspaces", "w1") == {"id": "w1"}
            with pytest.raises(sqlite3.OperationalError):
                ro.put("u1", "workspaces", "w2", {"id": "w2"})


class TestMigration:

    @pytest.mark.asyncio
    async def test_tallies(self, populated_legacy, blob_store):
        stats = await migrate_legacy_store(populated_legacy, blob_store, echo=lambda line: None)
        assert stats == MigrationStats(users=2, workspaces=2, canvases=2, nodes=3, settings=1)

    @pytest.mark.asyncio
    async def test_layout(self, populated_legacy, blob_store):
        await migrate_legacy_store(populated_legacy, blob_store, echo=lambda line: None)

        assert (await blob_store.read_json("alice/workspaces/w1.json"))["name"] == "Research"
        assert (await blob_store.read_json("bob/workspaces/w9.json"))["name"] == "Bob's"
        assert await blob_store.read_json("alice/settings/ai.json") == {
            "keys": {"anthropic": "k"}, "defaultModel": "m",
        }

        canvas = await blob_store.read_json("alice/canvases/c1.json")
        for node in canvas["nodes"]:
            assert "data" not in node
            assert node[LEGACY_REF_FIELD] == f"alice/canvas-data/c1/{node['id']}.json"
        assert (await blob_store.read_json("alice/canvas-data/c1/n1.json"))["content"] == "hello"
        # Per-node files only, no bundle yet
        assert not await blob_store.exists("alice/canvas-data/c1.json")

    @pytest.mark.asyncio
    async def test_node_without_data_gets_no_file(self, populated_legacy, blob_store):
        await migrate_legacy_store(populated_legacy, blob_store, echo=lambda line: None)
        canvas = await blob_store.read_json("alice/canvases/c2.json")
        assert LEGACY_REF_FIELD not in canvas["nodes"][1]
        assert not await blob_store.exists("alice/canvas-data/c2/n2.json")

    @pytest.mark.asyncio
    async def test_migrated_data_is_readable(self, populated_legacy, blob_store, cache, make_canvas):
        await migrate_legacy_store(populated_legacy, blob_store, echo=lambda line: None)
        store = EntityStore(blob_store, cache=cache)

        assert [w["id"] for w in await store.list_workspaces("alice")] == ["w1"]
        assert sorted(c["id"] for c in await store.list_canvases("alice", "w1")) == ["c1", "c2"]

        fetched = await store.get_canvas("alice", "c1")
        assert fetched["nodes"] == make_canvas("c1", "w1")["nodes"]
        assert all(LEGACY_REF_FIELD not in n for n in fetched["nodes"])

    @pytest.mark.asyncio
    async def test_first_save_moves_to_bundle(self, populated_legacy, blob_store, cache):
        await migrate_legacy_store(populated_legacy, blob_store, echo=lambda line: None)
        store = EntityStore(blob_store, cache=cache)

        canvas = await store.get_canvas("alice", "c1")
        await store.update_canvas("alice", "c1", {"nodes": canvas["nodes"]})

        bundle = await blob_store.read_json("alice/canvas-data/c1.json")
        assert sorted(bundle) == ["n1", "n2"]
        stored = await blob_store.read_json("alice/canvases/c1.json")
        assert all(LEGACY_REF_FIELD not in n for n in stored["nodes"])

    @pytest.mark.asyncio
    async def test_without_indexes(self, populated_legacy, blob_store):
        await migrate_legacy_store(
            populated_legacy, blob_store, echo=lambda line: None, build_indexes=False,
        )
        assert not await blob_store.exists("alice/workspaces-index.json")
        assert not await blob_store.exists("alice/canvases-index.json")

    @pytest.mark.asyncio
    async def test_source_is_untouched(self, populated_legacy, blob_store, make_canvas):
        before = populated_legacy.list_documents("alice", "canvases")
        await migrate_legacy_store(populated_legacy, blob_store, echo=lambda line: None)
        assert populated_legacy.list_documents("alice", "canvases") == before
        assert populated_legacy.get("alice", "canvases", "c1") == make_canvas("c1", "w1")

    @pytest.mark.asyncio
    async def test_progress_output(self, populated_legacy, blob_store):
        lines = []
        await migrate_legacy_store(populated_legacy, blob_store, echo=lines.append)

        assert lines[0] == "Found 2 user(s): alice, bob"
        assert "-- User: alice" in lines
        assert "   Workspaces: 1" in lines
        assert "   Canvases: 2" in lines
        assert "     + Canvas c1 (2 nodes)" in lines
        assert "   Indexed: 1 workspaces, 2 canvases" in lines
        assert "Migration complete!" in lines
        assert "  Nodes:      3" in lines
        assert "Legacy data has NOT been deleted." in lines

    @pytest.mark.asyncio
    async def test_empty_legacy_store(self, legacy, blob_store):
        lines = []
        stats = await migrate_legacy_store(legacy, blob_store, echo=lines.append)
        assert stats == MigrationStats()
        assert lines[0] == "Found 0 user(s): "
        assert blob_store.objects == {}

    @pytest.mark.asyncio
    async def test_write_failure_propagates(self, populated_legacy, failing_blob_store):
        failing_blob_store.fail_on.add("write_json")
        with pytest.raises(ConnectionError):
            await migrate_legacy_store(populated_legacy, failing_blob_store, echo=lambda line: None)
