"""Registry operations — create, update and delete nodes.

Each mutation writes through :class:`~fleetwatch.nodes.store.NodeStore` and
then probes the node once, so callers always get back a record whose status
reflects a live check.
"""

from __future__ import annotations

import logging
from typing import Any

from fleetwatch.nodes.errors import InvalidArgument, NodeInUse, NodeNotFound, ValidationError
from fleetwatch.nodes.instances import InstanceStore
from fleetwatch.nodes.models import (
    NodeRecord,
    NodeSpec,
    NodeStatus,
    new_configure_key,
    new_node_id,
)
from fleetwatch.nodes.monitor import FleetMonitor
from fleetwatch.nodes.prober import NodeDaemonError, NodeProber
from fleetwatch.nodes.store import NodeStore

logger = logging.getLogger(__name__)

IDLE_UPTIME = "0d 0h 0m"


class NodeRegistry:
    """Central entry point for node lifecycle operations.

    Writes to one node run under that node's :meth:`NodeStore.lock`, which
    the fleet monitor shares; index updates are serialised by the store.
    """

    def __init__(
        self,
        store: NodeStore,
        prober: NodeProber,
        monitor: FleetMonitor,
        instances: InstanceStore,
    ) -> None:
        self.store = store
        self.prober = prober
        self.monitor = monitor
        self.instances = instances

    # ── Lifecycle ──────────────────────────────────────────────────

    async def create(self, spec: NodeSpec) -> NodeRecord:
        """Register a new node, probe it once and return the probed record."""
        missing = spec.missing()
        if missing:
            raise ValidationError(missing)

        node = NodeRecord.from_spec(new_node_id(), spec, configure_key=new_configure_key())
        async with self.store.lock(node.id):
            await self.store.put(node)
            await self.store.add_id(node.id)
            logger.info("Registered node %s (%s) at %s", node.id, node.name, node.base_url)
            return await self.prober.probe(node)

    async def update(self, node_id: str, spec: NodeSpec) -> NodeRecord:
        """Replace every operator field of *node_id* and re-probe it."""
        async with self.store.lock(node_id):
            current = await self.store.find(node_id)
            if current is None:
                raise NodeNotFound(node_id)
            missing = spec.missing()
            if missing:
                raise ValidationError(missing)

            node = NodeRecord.from_spec(node_id, spec, configure_key=current.configure_key)
            await self.store.put(node)
            logger.info("Updated node %s", node_id)
            return await self.prober.probe(node)

    async def delete(self, node_id: str | None, delete_instances: bool = False) -> bool:
        """Remove *node_id* from the registry.

        Unknown ids are a successful no-op.  A node that still hosts
        instances is only removed when *delete_instances* is set; its
        instances are then purged as well.

        Returns:
            True if the id was in the index.
        """
        if not node_id or not str(node_id).strip():
            raise InvalidArgument("Missing node id")

        async with self.store.lock(node_id):
            node = await self.store.find(node_id)
            if node is not None:
                count = (await self.instances.counts([node_id]))[node_id]
                if count and not delete_instances:
                    raise NodeInUse(node_id, count)
                if count:
                    await self.instances.purge_node(node_id)
                    await self._purge_daemon(node)

            removed = await self.store.discard_id(node_id)
            await self.store.remove(node_id)

        if removed:
            logger.info("Deleted node %s", node_id)
        else:
            logger.debug("Delete of unknown node %s ignored", node_id)
        return removed

    # ── Node-side key configuration ────────────────────────────────

    async def rotate_configure_key(self, node_id: str) -> str:
        """Issue a fresh one-time configure key for *node_id*."""
        async with self.store.lock(node_id):
            node = await self.store.get(node_id)
            node.configure_key = new_configure_key()
            await self.store.put(node)
            return node.configure_key

    async def configure(self, configure_key: str | None, access_key: str | None) -> NodeRecord:
        """Let a node daemon set its own access key with a configure key."""
        if not configure_key or not access_key:
            raise InvalidArgument("Missing configureKey or accessKey")

        found = await self.store.find_by_configure_key(configure_key)
        if found is None:
            raise NodeNotFound("<configure key>")

        async with self.store.lock(found.id):
            node = await self.store.find(found.id)
            if node is None or node.configure_key != configure_key:
                raise NodeNotFound("<configure key>")
            node.api_key = access_key
            node.configure_key = None
            node.status = NodeStatus.UNKNOWN
            await self.store.put(node)
            logger.info("Node %s configured its access key", node.id)
            return await self.prober.probe(node)

    # ── Reporting ──────────────────────────────────────────────────

    async def list_nodes(self) -> tuple[list[NodeRecord], dict[str, int]]:
        """Refresh the whole fleet and count instances per node."""
        ids = await self.store.list_index()
        nodes = await self.monitor.refresh(ids)
        counts = await self.instances.counts(ids)
        return nodes, counts

    async def stats(self, node_id: str) -> dict[str, Any]:
        """Probe *node_id* and fetch its daemon's ``/stats`` report."""
        async with self.store.lock(node_id):
            node = await self.prober.probe(await self.store.get(node_id))
        count = (await self.instances.counts([node_id]))[node_id]

        stats: Any = {}
        status = NodeStatus.OFFLINE
        try:
            stats = await self.prober.fetch(node, "/stats")
        except NodeDaemonError as exc:
            logger.info("No stats from node %s: %s", node_id, exc)
        else:
            if isinstance(stats, dict) and stats.get("uptime") != IDLE_UPTIME:
                status = NodeStatus.ONLINE

        return {"node": node, "stats": stats, "status": status, "instance_count": count}

    async def radar_check(self) -> dict[str, int]:
        """Ask every online node for flagged containers and suspend them."""
        nodes = await self.monitor.refresh()
        online = [n for n in nodes if n.status == NodeStatus.ONLINE]
        reports = await self.monitor.map(online, self._flagged)

        flagged: dict[str, str] = {}
        for messages in reports:
            for item in messages:
                if isinstance(item, dict) and isinstance(item.get("containerId"), str):
                    flagged[item["containerId"]] = item.get("message", "")

        instances = await self.instances.load()
        suspended = 0
        for instance in instances:
            container = instance.get("ContainerId")
            if container in flagged:
                instance["suspended"] = True
                instance["suspended-flagg"] = flagged[container]
                suspended += 1
        await self.instances.save(instances)

        logger.info("Radar check: %d node(s), %d instance(s) suspended", len(online), suspended)
        return {"checked": len(online), "suspended": suspended}

    # ── Internal ───────────────────────────────────────────────────

    async def _flagged(self, node: NodeRecord) -> list:
        try:
            report = await self.prober.fetch(node, "/check/all")
        except NodeDaemonError as exc:
            logger.warning("Radar check failed on node %s: %s", node.id, exc)
            return []
        if not isinstance(report, dict):
            return []
        messages = report.get("flaggedMessages")
        if not isinstance(messages, list):
            if messages is not None:
                logger.warning("Node %s sent malformed flaggedMessages: %r", node.id, messages)
            return []
        return messages

    async def _purge_daemon(self, node: NodeRecord) -> None:
        try:
            await self.prober.fetch(node, "/instances/purge/all")
        except NodeDaemonError as exc:
            logger.error("Purge call to node %s failed: %s", node.id, exc)
