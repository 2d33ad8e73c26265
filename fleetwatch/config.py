"""Runtime configuration for Fleetwatch.

Every setting is read from a ``FLEETWATCH_*`` environment variable; unset
or unparsable values fall back to the defaults below.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_PREFIX = "FLEETWATCH_"


@dataclass
class FleetConfig:
    """Fleetwatch settings — loaded from the environment."""

    data_dir: str = "./data"
    host: str = "0.0.0.0"
    port: int = 5200

    # Probing
    probe_timeout: float = 5.0  # seconds, per node
    probe_concurrency: int = 32  # max probes in flight per refresh
    refresh_deadline: float = 30.0  # seconds, whole fleet refresh
    node_username: str = "Skyport"  # basic-auth user the node daemons expect

    # Audit
    audit_retention_days: int = 30

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir) / "fleetwatch.db"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> FleetConfig:
        env = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            caster = {"int": int, "float": float}.get(f.type, str)
            try:
                values[f.name] = caster(raw)
            except ValueError:
                logger.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, f.name.upper(), raw)
        return cls(**values)
