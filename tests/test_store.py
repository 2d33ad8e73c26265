"""Tests for the KV backends and the node record store."""

from __future__ import annotations

import asyncio

import pytest

from fleetwatch.db import MemoryStore, SQLiteStore, StoreError
from fleetwatch.nodes import NodeNotFound, NodeRecord, NodeStatus, NodeStore
from fleetwatch.nodes.models import new_configure_key
from fleetwatch.nodes.store import INDEX_KEY, record_key


# ── Persistence backends ──────────────────────────────────────────


class TestMemoryStore:
    async def test_get_missing_returns_none(self):
        assert await MemoryStore().get("nope") is None

    async def test_values_are_copied(self):
        kv = MemoryStore()
        value = {"ids": ["a"]}
        await kv.set("k", value)
        value["ids"].append("b")
        fetched = await kv.get("k")
        fetched["ids"].append("c")
        assert await kv.get("k") == {"ids": ["a"]}

    async def test_delete_missing_is_noop(self):
        kv = MemoryStore({"a": 1})
        await kv.delete("b")
        assert kv.keys() == ["a"]


class TestSQLiteStore:
    async def test_roundtrip_and_overwrite(self, tmp_path):
        kv = SQLiteStore(tmp_path / "fw.db")
        await kv.set("nodes", ["a", "b"])
        await kv.set("nodes", ["a"])
        assert await kv.get("nodes") == ["a"]
        await kv.close()

    async def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "fw.db"
        kv = SQLiteStore(path)
        await kv.set("abc_node", {"id": "abc"})
        await kv.close()

        reopened = SQLiteStore(path)
        assert await reopened.get("abc_node") == {"id": "abc"}
        await reopened.delete("abc_node")
        assert await reopened.get("abc_node") is None
        await reopened.close()

    async def test_creates_parent_directory(self, tmp_path):
        kv = SQLiteStore(tmp_path / "nested" / "dir" / "fw.db")
        assert (tmp_path / "nested" / "dir").is_dir()
        await kv.close()

    async def test_closed_connection_raises_store_error(self, tmp_path):
        kv = SQLiteStore(tmp_path / "fw.db")
        await kv.close()
        with pytest.raises(StoreError):
            await kv.get("nodes")


# ── NodeStore ─────────────────────────────────────────────────────


class _YieldingStore(MemoryStore):
    """Yields to the loop between read and write, like a networked backend."""

    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)


def _node(node_id: str = "n1", **kwargs) -> NodeRecord:
    defaults = dict(name="alpha", address="10.0.0.1", port=8080, api_key="secret")
    defaults.update(kwargs)
    return NodeRecord(id=node_id, **defaults)


class TestNodeStore:
    async def test_empty_index(self, store):
        assert await store.list_ids() == []

    async def test_put_uses_stable_key_shape(self, kv, store):
        await store.put(_node("abc", version_family=2))
        raw = await kv.get(record_key("abc"))
        assert record_key("abc") == "abc_node"
        assert raw["apiKey"] == "secret"
        assert raw["versionFamily"] == 2
        assert raw["status"] == "Unknown"

    async def test_get_missing_raises(self, store):
        with pytest.raises(NodeNotFound):
            await store.get("ghost")

    async def test_find_missing_returns_none(self, store):
        assert await store.find("ghost") is None

    async def test_remove_is_idempotent(self, store):
        await store.put(_node())
        await store.remove("n1")
        await store.remove("n1")
        assert await store.find("n1") is None

    async def test_add_and_discard_id(self, kv, store):
        await store.add_id("a")
        await store.add_id("b")
        await store.add_id("a")
        assert await kv.get(INDEX_KEY) == ["a", "b"]
        assert await store.discard_id("a") is True
        assert await store.discard_id("a") is False
        assert await store.list_index() == ["b"]

    async def test_concurrent_index_writes_are_not_lost(self):
        store = NodeStore(_YieldingStore())
        ids = [f"node-{i}" for i in range(50)]
        await asyncio.gather(*(store.add_id(i) for i in ids))
        assert sorted(await store.list_index()) == sorted(ids)

        await asyncio.gather(*(store.discard_id(i) for i in ids[:25]))
        assert sorted(await store.list_index()) == sorted(ids[25:])

    async def test_all_skips_orphan_ids(self, store):
        await store.put(_node("a"))
        await store.set_index(["a", "orphan"])
        nodes = await store.all()
        assert [n.id for n in nodes] == ["a"]

    async def test_find_by_configure_key(self, store):
        await store.put(_node("a", configure_key="k-1"))
        await store.put(_node("b", configure_key=None))
        await store.set_index(["a", "b"])
        assert (await store.find_by_configure_key("k-1")).id == "a"
        assert await store.find_by_configure_key("k-2") is None

    async def test_node_lock_is_shared_per_id(self, store):
        lock = store.lock("n1")
        assert store.lock("n1") is lock
        assert store.lock("n2") is not lock

    async def test_unused_node_locks_are_released(self, store):
        async with store.lock("n1"):
            assert "n1" in store._node_locks
        assert "n1" not in store._node_locks


class TestNodeRecord:
    def test_roundtrip_dict(self):
        node = _node(status=NodeStatus.ONLINE, remote="r", docker=True)
        assert NodeRecord.from_dict(node.to_dict()) == node

    def test_legacy_status_reads_as_unknown(self):
        node = NodeRecord.from_dict({"id": "x", "status": "Unconfigured"})
        assert node.status == NodeStatus.UNKNOWN

    def test_base_url(self):
        assert _node(address="node.example", port=3002).base_url == "http://node.example:3002"

    def test_configure_keys_are_unique(self):
        assert new_configure_key() != new_configure_key()
