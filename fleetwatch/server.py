"""Fleetwatch — standalone node registry server.

Exposes:
  /admin/nodes...        — node registry admin API (see fleetwatch.admin_api)
  POST /nodes/configure  — node daemon key configuration
  GET  /health           — liveness check

Start with::

    python -m fleetwatch.server
    # or
    uvicorn --factory fleetwatch.server:create_app --host 0.0.0.0 --port 5200
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fleetwatch import __version__
from fleetwatch.admin_api import node_router, router
from fleetwatch.audit import AuditLog
from fleetwatch.config import FleetConfig
from fleetwatch.db import KeyValueStore, SQLiteStore, StoreError
from fleetwatch.nodes import FleetMonitor, InstanceStore, NodeProber, NodeRegistry, NodeStore

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────
# FastAPI app
# ──────────────────────────────────────────────────────────────────

def create_app(
    config: FleetConfig | None = None,
    kv: KeyValueStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the application and wire the registry components.

    Args:
        config:      Settings (default: read from the environment).
        kv:          Persistence backend (default: SQLite under ``data_dir``).
        http_client: Client for node daemon calls (default: a new one).
    """
    if config is None:
        config = FleetConfig.from_env()
    if kv is None:
        kv = SQLiteStore(config.db_path)

    store = NodeStore(kv)
    prober = NodeProber(
        store,
        timeout=config.probe_timeout,
        username=config.node_username,
        client=http_client,
    )
    monitor = FleetMonitor(
        store,
        prober,
        concurrency=config.probe_concurrency,
        deadline=config.refresh_deadline,
    )
    registry = NodeRegistry(store, prober, monitor, InstanceStore(kv))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Fleetwatch %s started", __version__)
        yield
        await prober.aclose()
        await kv.close()
        logger.info("Fleetwatch stopped")

    app = FastAPI(title="Fleetwatch", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.registry = registry
    app.state.audit = AuditLog(kv, retention_days=config.audit_retention_days)
    app.include_router(router)
    app.include_router(node_router)

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Internal error"})

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn
    config = FleetConfig.from_env()
    logging.basicConfig(level=logging.INFO)
    logger.info("Starting Fleetwatch server on %s:%d", config.host, config.port)
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
