"""fleetwatch.nodes — node registry and health monitoring.

Exports:
    NodeRecord      — dataclass for one registered node
    NodeStore       — node index + records on top of the KV store
    NodeProber      — authenticated status check of one node daemon
    FleetMonitor    — concurrent refresh of the whole fleet
    NodeRegistry    — create / update / delete orchestration
    count_instances — per-node instance counts
"""

from __future__ import annotations

from fleetwatch.nodes.errors import (
    InvalidArgument,
    NodeInUse,
    NodeNotFound,
    RefreshTimeout,
    RegistryError,
    ValidationError,
)
from fleetwatch.nodes.instances import InstanceStore, count_instances
from fleetwatch.nodes.models import NodeRecord, NodeSpec, NodeStatus
from fleetwatch.nodes.monitor import FleetMonitor
from fleetwatch.nodes.prober import NodeProber
from fleetwatch.nodes.registry import NodeRegistry
from fleetwatch.nodes.store import NodeStore

__all__ = [
    "FleetMonitor",
    "InstanceStore",
    "InvalidArgument",
    "NodeInUse",
    "NodeNotFound",
    "NodeProber",
    "NodeRecord",
    "NodeRegistry",
    "NodeSpec",
    "NodeStatus",
    "NodeStore",
    "RefreshTimeout",
    "RegistryError",
    "ValidationError",
    "count_instances",
]
