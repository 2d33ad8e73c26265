"""pytest configuration for Fleetwatch tests."""

from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from fleetwatch.db import MemoryStore
from fleetwatch.nodes import FleetMonitor, InstanceStore, NodeProber, NodeRegistry, NodeStore


class FakeFleet:
    """In-process stand-in for node daemons, served through httpx.MockTransport.

    Each ``host:port`` maps to either a JSON body per path or ``None`` for an
    unreachable daemon.  ``delay`` is applied to every answered request.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.daemons: dict[str, dict[str, object] | None] = {}
        self.requests: list[httpx.Request] = []

    def up(self, address: str, port: int, **paths: object) -> None:
        body = {
            "versionFamily": 1,
            "versionRelease": "1.2.0",
            "online": True,
            "remote": "https://example.com/daemon",
            "docker": {"version": "24.0.7"},
        }
        self.daemons[f"{address}:{port}"] = {"/": body, **paths}

    def down(self, address: str, port: int) -> None:
        self.daemons[f"{address}:{port}"] = None

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        daemon = self.daemons.get(f"{request.url.host}:{request.url.port}")
        if daemon is None:
            raise httpx.ConnectError("Connection refused", request=request)
        if self.delay:
            await asyncio.sleep(self.delay)
        body = daemon.get(request.url.path)
        if body is None:
            return httpx.Response(404, json={"error": "not found"})
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    @staticmethod
    def basic_auth(request: httpx.Request) -> tuple[str, str]:
        scheme, _, token = request.headers["authorization"].partition(" ")
        assert scheme == "Basic"
        user, _, password = base64.b64decode(token).decode().partition(":")
        return user, password


@pytest.fixture()
def fleet():
    return FakeFleet()


@pytest.fixture()
def kv():
    return MemoryStore()


@pytest.fixture()
def store(kv):
    return NodeStore(kv)


@pytest.fixture()
async def prober(store, fleet):
    client = fleet.client()
    p = NodeProber(store, timeout=1.0, client=client)
    yield p
    await client.aclose()


@pytest.fixture()
def monitor(store, prober):
    return FleetMonitor(store, prober, concurrency=8, deadline=5.0)


@pytest.fixture()
def registry(kv, store, prober, monitor):
    return NodeRegistry(store, prober, monitor, InstanceStore(kv))
