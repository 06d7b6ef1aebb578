"""Tests for the process-local document cache."""

from canvasstore.cache import DEFAULT_TTL, DocumentCache


def test_default_ttl_is_sixty_seconds():
    assert DEFAULT_TTL == 60.0
    assert DocumentCache().ttl == 60.0


def test_get_missing_returns_none(cache):
    assert cache.get("u1/workspaces-index.json") is None


def test_entry_valid_within_ttl(cache, clock):
    cache.set("u1/workspaces-index.json", [{"id": "w1"}])
    clock.advance(59.9)
    assert cache.get("u1/workspaces-index.json") == [{"id": "w1"}]


def test_entry_expires_after_ttl(cache, clock):
    cache.set("u1/workspaces-index.json", [{"id": "w1"}])
    clock.advance(60.0)
    assert cache.get("u1/workspaces-index.json") is None
    # Expired entry is dropped on access
    assert len(cache) == 0


def test_set_restarts_ttl(cache, clock):
    cache.set("k", 1)
    clock.advance(50)
    cache.set("k", 2)
    clock.advance(50)
    assert cache.get("k") == 2


def test_values_are_not_aliased(cache):
    entries = [{"id": "w1"}]
    cache.set("u1/workspaces-index.json", entries)
    entries.append({"id": "w2"})

    got = cache.get("u1/workspaces-index.json")
    assert got == [{"id": "w1"}]
    got.append({"id": "w3"})
    assert cache.get("u1/workspaces-index.json") == [{"id": "w1"}]


def test_invalidate_is_tenant_scoped(cache):
    cache.set("u1/workspaces-index.json", [])
    cache.set("u1/canvases-index.json", [])
    cache.set("u10/workspaces-index.json", [])
    cache.set("u2/settings/ai.json", {})

    removed = cache.invalidate("u1")

    assert removed == 2
    assert cache.get("u1/workspaces-index.json") is None
    assert cache.get("u10/workspaces-index.json") == []
    assert cache.get("u2/settings/ai.json") == {}


def test_invalidate_unknown_tenant(cache):
    cache.set("u1/a.json", 1)
    assert cache.invalidate("nobody") == 0
    assert len(cache) == 1


def test_clear_and_init(cache):
    cache.set("u1/a.json", 1)
    cache.set("u2/a.json", 2)
    cache.clear()
    assert len(cache) == 0

    cache.set("u1/a.json", 1)
    cache.init()
    assert cache.get("u1/a.json") is None


def test_contains(cache, clock):
    cache.set("u1/a.json", {"x": 1})
    assert "u1/a.json" in cache
    clock.advance(61)
    assert "u1/a.json" not in cache


def test_growth_with_distinct_keys(cache, clock):
    """Nothing evicts proactively: one entry per distinct key touched."""
    for i in range(250):
        cache.set(f"tenant-{i}/workspaces-index.json", [])
        cache.set(f"tenant-{i}/canvases-index.json", [])
    assert len(cache) == 500

    # Expiry alone does not shrink the cache, only reads of expired keys do
    clock.advance(3600)
    assert len(cache) == 500
    cache.get("tenant-0/workspaces-index.json")
    assert len(cache) == 499
