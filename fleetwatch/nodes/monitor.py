"""Fleet health monitor — probes every registered node concurrently."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from fleetwatch.nodes.errors import RefreshTimeout
from fleetwatch.nodes.models import NodeRecord, NodeStatus
from fleetwatch.nodes.prober import NodeProber
from fleetwatch.nodes.store import NodeStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONCURRENCY = 32
DEFAULT_DEADLINE = 30.0


class FleetMonitor:
    """Fan-out/fan-in health refresh over the node registry.

    All probes of one pass run concurrently (at most *concurrency* in
    flight) and :meth:`refresh` returns only once every probe has finished.
    A failing node is recorded ``Offline`` by the prober and never affects
    the others.

    Args:
        store:       Node record store.
        prober:      Prober used for each node.
        concurrency: Cap on simultaneous probes.
        deadline:    Overall bound for one pass, in seconds (``None`` = none).
    """

    def __init__(
        self,
        store: NodeStore,
        prober: NodeProber,
        concurrency: int = DEFAULT_CONCURRENCY,
        deadline: float | None = DEFAULT_DEADLINE,
    ) -> None:
        self.store = store
        self.prober = prober
        self.concurrency = max(1, concurrency)
        self.deadline = deadline

    async def refresh(self, node_ids: Sequence[str] | None = None) -> list[NodeRecord]:
        """Probe *node_ids* (default: the whole index) and return the results.

        The returned list follows the order of *node_ids*.  Ids without a
        stored record, or whose record is deleted mid-pass, are skipped.
        Store read failures propagate.
        """
        if node_ids is None:
            node_ids = await self.store.list_index()

        nodes: list[NodeRecord] = []
        for node_id in node_ids:
            node = await self.store.find(node_id)
            if node is None:
                logger.warning("Skipping node %s: no stored record", node_id)
                continue
            nodes.append(node)

        started = time.monotonic()
        probed = await self.map(nodes, self._probe_current)
        by_id = {node.id: node for node in probed if node is not None}

        online = sum(1 for n in by_id.values() if n.status == NodeStatus.ONLINE)
        logger.info(
            "Fleet refresh: %d/%d online in %.2fs",
            online, len(by_id), time.monotonic() - started,
        )
        return [by_id[node.id] for node in nodes if node.id in by_id]

    async def _probe_current(self, node: NodeRecord) -> NodeRecord | None:
        # Probe the record as stored now, not as read at the start of the pass.
        async with self.store.lock(node.id):
            current = await self.store.find(node.id)
            if current is None:
                logger.info("Node %s was removed during refresh", node.id)
                return None
            return await self.prober.probe(current)

    async def map(
        self,
        nodes: Sequence[NodeRecord],
        func: Callable[[NodeRecord], Awaitable[T]],
    ) -> list[T]:
        """Run *func* on every node concurrently and wait for all of them.

        Results line up with *nodes*.  Raises :class:`RefreshTimeout` if the
        pass overruns :attr:`deadline`; in that case no result is returned.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(node: NodeRecord) -> T:
            async with semaphore:
                return await func(node)

        pending = asyncio.gather(*(_bounded(node) for node in nodes))
        if self.deadline is None:
            return list(await pending)
        try:
            return list(await asyncio.wait_for(pending, timeout=self.deadline))
        except asyncio.TimeoutError as exc:
            raise RefreshTimeout(
                f"Fleet pass over {len(nodes)} node(s) exceeded {self.deadline}s"
            ) from exc
