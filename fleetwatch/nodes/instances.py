"""Instance bookkeeping seen from the node registry.

The instance list itself is owned by the deployment side of the panel; this
module only counts instances per node and, when a node is deleted with its
workloads, drops that node's entries.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from fleetwatch.db import KeyValueStore

logger = logging.getLogger(__name__)

INSTANCES_KEY = "instances"


def owner_id(instance: dict) -> str | None:
    """Return the id of the node that owns *instance*.

    Reads the panel's nested ``{"Node": {"id": ...}}`` shape, falling back to
    a flat ``"node"`` field.
    """
    owner = instance.get("Node")
    if isinstance(owner, dict) and owner.get("id") is not None:
        return owner["id"]
    return instance.get("node")


def count_instances(node_ids: Iterable[str], instances: Iterable[dict]) -> dict[str, int]:
    """Instance count per node id, with 0 for nodes hosting nothing.

    Instances owned by ids not in *node_ids* are ignored.
    """
    counts = {node_id: 0 for node_id in node_ids}
    for instance in instances:
        owner = owner_id(instance)
        if owner in counts:
            counts[owner] += 1
    return counts


class InstanceStore:
    """Reads and prunes the shared ``instances`` list."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    async def load(self) -> list[dict]:
        return list(await self.kv.get(INSTANCES_KEY) or [])

    async def save(self, instances: Sequence[dict]) -> None:
        await self.kv.set(INSTANCES_KEY, list(instances))

    async def counts(self, node_ids: Iterable[str]) -> dict[str, int]:
        return count_instances(node_ids, await self.load())

    async def purge_node(self, node_id: str) -> list[dict]:
        """Remove every instance owned by *node_id*.  Returns the removed ones.

        Drops the instances from the shared list, deletes each
        ``<Id>_instance`` record and filters the owners' ``<User>_instances``
        lists.
        """
        instances = await self.load()
        doomed = [i for i in instances if owner_id(i) == node_id]
        if not doomed:
            return []

        await self.save([i for i in instances if owner_id(i) != node_id])
        for instance in doomed:
            if instance.get("Id"):
                await self.kv.delete(f"{instance['Id']}_instance")

        doomed_ids = {i.get("Id") for i in doomed}
        for user in {i.get("User") for i in doomed if i.get("User")}:
            key = f"{user}_instances"
            owned = await self.kv.get(key) or []
            await self.kv.set(key, [i for i in owned if i.get("Id") not in doomed_ids])

        logger.info("Purged %d instance(s) from node %s", len(doomed), node_id)
        return doomed
