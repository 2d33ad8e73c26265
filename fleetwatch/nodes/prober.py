"""Health prober — one authenticated status call per node.

Uses httpx for async HTTP.  A single :class:`httpx.AsyncClient` is shared by
every probe for connection pooling; call :meth:`NodeProber.aclose` (or use the
prober as an async context manager) when done.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from fleetwatch.nodes.models import NodeRecord, NodeStatus
from fleetwatch.nodes.store import NodeStore

logger = logging.getLogger(__name__)

DEFAULT_USERNAME = "Skyport"
DEFAULT_TIMEOUT = 5.0


class NodeDaemonError(Exception):
    """Base error for calls to a node daemon."""


class NodeUnreachable(NodeDaemonError):
    """Raised when the daemon cannot be reached or times out."""


class NodeBadResponse(NodeDaemonError):
    """Raised on a non-2xx status or a body that is not JSON."""


class NodeProber:
    """Probes node daemons and persists the outcome.

    Args:
        store:    Where probed records are written.
        timeout:  Per-request timeout in seconds.
        username: Basic-auth user; the node's ``apiKey`` is the password.
        client:   Optional pre-built client (tests pass one with a mock
                  transport).  A client passed in is not closed by
                  :meth:`aclose`.
    """

    def __init__(
        self,
        store: NodeStore,
        timeout: float = DEFAULT_TIMEOUT,
        username: str = DEFAULT_USERNAME,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.store = store
        self.timeout = timeout
        self.username = username
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> NodeProber:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def probe(self, node: NodeRecord) -> NodeRecord:
        """Check *node*'s daemon, update its status and persist it.

        Never raises for a node-side failure: the node is marked ``Offline``
        and keeps its last known capability fields.
        """
        try:
            body = await self.fetch(node, "/")
            if not isinstance(body, dict):
                raise NodeBadResponse(f"expected a JSON object, got {type(body).__name__}")
        except NodeDaemonError as exc:
            logger.info("Node %s (%s) offline: %s", node.id, node.base_url, exc)
            node.status = NodeStatus.OFFLINE
        else:
            node.status = NodeStatus.ONLINE
            node.version_family = body.get("versionFamily")
            node.version_release = body.get("versionRelease")
            node.remote = body.get("remote")
            node.docker = body.get("docker")
            if not body.get("online", True):
                logger.warning("Node %s answered but reports online=%r", node.id, body.get("online"))

        await self.store.put(node)
        return node

    async def fetch(self, node: NodeRecord, path: str) -> Any:
        """GET *path* from the node daemon and return the decoded JSON body."""
        if not node.address or node.port is None:
            raise NodeUnreachable(f"node {node.id} has no address")
        url = f"{node.base_url}{path}"
        try:
            response = await self._client.get(
                url,
                auth=(self.username, node.api_key or ""),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except (httpx.TimeoutException, httpx.NetworkError, httpx.InvalidURL) as exc:
            raise NodeUnreachable(f"cannot reach {url}: {exc!r}") from exc
        except httpx.HTTPError as exc:
            raise NodeUnreachable(f"request to {url} failed: {exc!r}") from exc
        if not response.is_success:
            raise NodeBadResponse(f"{url} returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise NodeBadResponse(f"{url} returned a non-JSON body") from exc
