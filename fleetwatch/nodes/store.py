"""Node record store — the node index and per-node records in the KV store."""

from __future__ import annotations

import asyncio
import logging
import weakref

from fleetwatch.db import KeyValueStore
from fleetwatch.nodes.errors import NodeNotFound
from fleetwatch.nodes.models import NodeRecord

logger = logging.getLogger(__name__)

INDEX_KEY = "nodes"
RECORD_SUFFIX = "_node"


def record_key(node_id: str) -> str:
    return f"{node_id}{RECORD_SUFFIX}"


class NodeStore:
    """Keeps the ``nodes`` index and the ``<id>_node`` records consistent.

    Every index mutation is a read-modify-write, so :meth:`add_id` and
    :meth:`discard_id` run under a lock; callers must not rewrite the index
    through :meth:`set_index` while mutating it concurrently.

    Writes to a single node record are serialised with :meth:`lock`; anyone
    who reads a record in order to write it back must hold that lock.

    Args:
        kv: The persistence backend.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv
        self._index_lock = asyncio.Lock()
        self._node_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def lock(self, node_id: str) -> asyncio.Lock:
        """Per-node write lock.  Dropped once nobody holds or awaits it."""
        lock = self._node_locks.get(node_id)
        if lock is None:
            lock = asyncio.Lock()
            self._node_locks[node_id] = lock
        return lock

    # ── Index ──────────────────────────────────────────────────────

    async def list_index(self) -> list[str]:
        ids = await self.kv.get(INDEX_KEY)
        return list(ids) if ids else []

    async def set_index(self, ids: list[str]) -> None:
        await self.kv.set(INDEX_KEY, list(ids))

    async def list_ids(self) -> list[str]:
        return await self.list_index()

    async def add_id(self, node_id: str) -> None:
        async with self._index_lock:
            ids = await self.list_index()
            if node_id not in ids:
                ids.append(node_id)
                await self.set_index(ids)

    async def discard_id(self, node_id: str) -> bool:
        """Drop *node_id* from the index.  Returns False if it was absent."""
        async with self._index_lock:
            ids = await self.list_index()
            if node_id not in ids:
                return False
            await self.set_index([i for i in ids if i != node_id])
            return True

    # ── Records ────────────────────────────────────────────────────

    async def find(self, node_id: str) -> NodeRecord | None:
        data = await self.kv.get(record_key(node_id))
        if not data:
            return None
        return NodeRecord.from_dict(data)

    async def get(self, node_id: str) -> NodeRecord:
        node = await self.find(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    async def put(self, node: NodeRecord) -> None:
        await self.kv.set(record_key(node.id), node.to_dict())

    async def remove(self, node_id: str) -> None:
        await self.kv.delete(record_key(node_id))

    async def all(self) -> list[NodeRecord]:
        """Every indexed record, in index order.  Orphan ids are skipped."""
        nodes = []
        for node_id in await self.list_index():
            node = await self.find(node_id)
            if node is None:
                logger.warning("Index references missing node record: %s", node_id)
                continue
            nodes.append(node)
        return nodes

    async def find_by_configure_key(self, configure_key: str) -> NodeRecord | None:
        for node in await self.all():
            if node.configure_key and node.configure_key == configure_key:
                return node
        return None
