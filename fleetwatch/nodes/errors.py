"""Errors raised by registry operations.

Probe failures are deliberately absent: they are recorded as
``status = Offline`` on the node, never raised.
"""

from __future__ import annotations


class RegistryError(Exception):
    """Base error for node registry failures."""


class ValidationError(RegistryError):
    """Raised when required node fields are missing."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required field(s): {', '.join(missing)}")


class NodeNotFound(RegistryError):
    """Raised when an operation references an unknown node id."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class InvalidArgument(RegistryError):
    """Raised for malformed requests, e.g. a delete without a node id."""


class NodeInUse(RegistryError):
    """Raised when deleting a node that still hosts instances."""

    def __init__(self, node_id: str, instance_count: int) -> None:
        self.node_id = node_id
        self.instance_count = instance_count
        super().__init__(f"Node {node_id} still hosts {instance_count} instance(s)")


class RefreshTimeout(RegistryError):
    """Raised when a fleet refresh overruns its deadline."""
