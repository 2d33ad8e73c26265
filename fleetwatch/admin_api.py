"""Admin API router for Fleetwatch.

Provides RESTful endpoints for registering, editing, deleting and checking
the nodes of the fleet.

All ``/admin`` endpoints require a valid admin JWT (see :mod:`fleetwatch.auth`).
``POST /nodes/configure`` is called by node daemons and is authorised by
the node's one-time configure key instead.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel

from fleetwatch.audit import AuditLog
from fleetwatch.auth import require_admin
from fleetwatch.nodes import (
    InvalidArgument,
    NodeInUse,
    NodeNotFound,
    NodeRegistry,
    NodeSpec,
    RefreshTimeout,
    ValidationError,
)

router = APIRouter(prefix="/admin", tags=["admin"])
node_router = APIRouter(tags=["nodes"])


# ── Helper ────────────────────────────────────────────────────────

def _registry(request: Request) -> NodeRegistry:
    return request.app.state.registry


def _audit(request: Request) -> AuditLog:
    return request.app.state.audit


async def _log(request: Request, admin: dict, action: str) -> None:
    ip = request.client.host if request.client else None
    await _audit(request).record(admin.get("sub", ""), admin.get("username", ""), action, ip)


# ══════════════════════════════════════════════════════════════════
# NODES
# ══════════════════════════════════════════════════════════════════

class NodeRequest(BaseModel):
    name: str | None = None
    tags: str | None = None
    ram: str | None = None
    disk: str | None = None
    processor: str | None = None
    address: str | None = None
    port: int | None = None
    apiKey: str | None = None

    def to_spec(self) -> NodeSpec:
        return NodeSpec(
            name=self.name,
            tags=self.tags,
            ram=self.ram,
            disk=self.disk,
            processor=self.processor,
            address=self.address,
            port=self.port,
            api_key=self.apiKey,
        )


class DeleteNodeRequest(BaseModel):
    node_id: str | None = None


@router.get("/nodes")
async def list_nodes(request: Request, _: dict = Depends(require_admin)):
    try:
        nodes, counts = await _registry(request).list_nodes()
    except RefreshTimeout as exc:
        raise HTTPException(status_code=504, detail=str(exc))
    return {"nodes": [n.to_dict() for n in nodes], "instance_counts": counts}


@router.post("/nodes", status_code=201)
async def create_node(req: NodeRequest, request: Request, admin: dict = Depends(require_admin)):
    try:
        node = await _registry(request).create(req.to_spec())
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    await _log(request, admin, "node:create")
    return node.to_dict()


@router.post("/nodes/delete", status_code=204)
async def delete_node(
    request: Request,
    req: DeleteNodeRequest | None = None,
    delete_instances: bool = Query(False),
    admin: dict = Depends(require_admin),
):
    node_id = req.node_id if req else None
    try:
        removed = await _registry(request).delete(node_id, delete_instances=delete_instances)
    except InvalidArgument as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except NodeInUse as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    if removed:
        await _log(request, admin, "node:delete")
    return Response(status_code=204)


@router.post("/nodes/radar/check")
async def radar_check(request: Request, _: dict = Depends(require_admin)):
    try:
        return await _registry(request).radar_check()
    except RefreshTimeout as exc:
        raise HTTPException(status_code=504, detail=str(exc))


@router.get("/nodes/{node_id}")
async def get_node(node_id: str, request: Request, _: dict = Depends(require_admin)):
    node = await _registry(request).store.find(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return node.to_dict()


@router.put("/nodes/{node_id}", status_code=201)
async def update_node(
    node_id: str, req: NodeRequest, request: Request, admin: dict = Depends(require_admin)
):
    try:
        node = await _registry(request).update(node_id, req.to_spec())
    except (NodeNotFound, ValidationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    await _log(request, admin, "node:update")
    return node.to_dict()


@router.get("/nodes/{node_id}/stats")
async def node_stats(node_id: str, request: Request, _: dict = Depends(require_admin)):
    try:
        report = await _registry(request).stats(node_id)
    except NodeNotFound:
        raise HTTPException(status_code=404, detail="Node not found")
    report["node"] = report["node"].to_dict()
    report["status"] = report["status"].value
    return report


@router.get("/nodes/{node_id}/configure-command")
async def configure_command(node_id: str, request: Request, _: dict = Depends(require_admin)):
    try:
        key = await _registry(request).rotate_configure_key(node_id)
    except NodeNotFound:
        raise HTTPException(status_code=404, detail="Node not found")
    panel_url = str(request.base_url).rstrip("/")
    return {
        "nodeId": node_id,
        "configureCommand": f"npm run configure -- --panel {panel_url} --key {key}",
    }


# ══════════════════════════════════════════════════════════════════
# AUDIT
# ══════════════════════════════════════════════════════════════════

@router.get("/audit")
async def list_audit(
    request: Request,
    _: dict = Depends(require_admin),
    limit: int = Query(50, ge=1, le=500),
):
    entries = await _audit(request).entries()
    return {"entries": list(reversed(entries))[:limit], "total": len(entries)}


# ══════════════════════════════════════════════════════════════════
# NODE DAEMON CALLBACK
# ══════════════════════════════════════════════════════════════════

@node_router.post("/nodes/configure")
async def configure_node(
    request: Request,
    configureKey: str | None = Query(None),
    accessKey: str | None = Query(None),
):
    try:
        await _registry(request).configure(configureKey, accessKey)
    except InvalidArgument as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except NodeNotFound:
        raise HTTPException(status_code=404, detail="Node not found")
    return {"message": "Node configured successfully"}
