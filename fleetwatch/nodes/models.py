"""Node record types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NodeStatus(str, Enum):
    UNKNOWN = "Unknown"
    ONLINE = "Online"
    OFFLINE = "Offline"


# Fields a node cannot be reached without.
REQUIRED_FIELDS = ("address", "port", "api_key")

# dataclass attribute -> persisted key
_KEYS: dict[str, str] = {
    "id": "id",
    "name": "name",
    "tags": "tags",
    "ram": "ram",
    "disk": "disk",
    "processor": "processor",
    "address": "address",
    "port": "port",
    "api_key": "apiKey",
    "status": "status",
    "version_family": "versionFamily",
    "version_release": "versionRelease",
    "remote": "remote",
    "docker": "docker",
    "configure_key": "configureKey",
}


def new_node_id() -> str:
    return str(uuid.uuid4())


def new_configure_key() -> str:
    """One-time key a node daemon exchanges for its access key."""
    return str(uuid.uuid4())


@dataclass
class NodeSpec:
    """Operator-supplied fields for creating or replacing a node."""

    name: str | None = None
    tags: str | None = None
    ram: str | None = None
    disk: str | None = None
    processor: str | None = None
    address: str | None = None
    port: int | None = None
    api_key: str | None = None

    def missing(self) -> list[str]:
        """Names of required fields that are absent or blank."""
        out = []
        for name in REQUIRED_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                out.append(_KEYS[name])
        return out


@dataclass
class NodeRecord:
    """Identity and last-known state of one fleet member.

    Capability fields (``version_family`` … ``docker``) are only written by a
    successful probe and keep their previous values while a node is offline.
    """

    id: str
    name: str | None = None
    tags: str | None = None
    ram: str | None = None
    disk: str | None = None
    processor: str | None = None
    address: str | None = None
    port: int | None = None
    api_key: str | None = None
    status: NodeStatus = NodeStatus.UNKNOWN
    version_family: Any = None
    version_release: Any = None
    remote: Any = None
    docker: Any = None
    configure_key: str | None = field(default=None, repr=False)

    @classmethod
    def from_spec(cls, node_id: str, spec: NodeSpec, configure_key: str | None = None) -> NodeRecord:
        return cls(
            id=node_id,
            name=spec.name,
            tags=spec.tags,
            ram=spec.ram,
            disk=spec.disk,
            processor=spec.processor,
            address=spec.address,
            port=spec.port,
            api_key=spec.api_key,
            status=NodeStatus.UNKNOWN,
            configure_key=configure_key,
        )

    @property
    def base_url(self) -> str:
        return f"http://{self.address}:{self.port}"

    def to_dict(self) -> dict:
        """Serialize to the persisted (camelCase) shape."""
        data = {key: getattr(self, attr) for attr, key in _KEYS.items()}
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> NodeRecord:
        kwargs = {attr: data.get(key) for attr, key in _KEYS.items() if key in data}
        try:
            kwargs["status"] = NodeStatus(data.get("status"))
        except ValueError:
            # Legacy states such as "Unconfigured" read as not yet probed.
            kwargs["status"] = NodeStatus.UNKNOWN
        return cls(**kwargs)
