"""Admin audit trail, kept under the ``audits`` key."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone

from fleetwatch.db import KeyValueStore, StoreError

logger = logging.getLogger(__name__)

AUDITS_KEY = "audits"
_EXPIRED = datetime.min.replace(tzinfo=timezone.utc)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AuditEntry:
    userId: str
    username: str
    action: str  # "node:create" | "node:update" | "node:delete"
    ip: str | None = None
    timestamp: str = field(default_factory=_now)


class AuditLog:
    """Append-only log of admin actions with a rolling retention window."""

    def __init__(self, kv: KeyValueStore, retention_days: int = 30) -> None:
        self.kv = kv
        self.retention = timedelta(days=retention_days)
        self._lock = asyncio.Lock()

    async def entries(self) -> list[dict]:
        stored = await self.kv.get(AUDITS_KEY)
        if not isinstance(stored, list):
            return []
        return [e for e in stored if isinstance(e, dict)]

    async def record(self, user_id: str, username: str, action: str, ip: str | None = None) -> None:
        """Append an entry.  Failures are logged, never raised."""
        entry = AuditEntry(userId=str(user_id), username=username, action=action, ip=ip)
        cutoff = datetime.now(timezone.utc) - self.retention
        try:
            async with self._lock:
                kept = [e for e in await self.entries() if _parse(e.get("timestamp")) >= cutoff]
                kept.append(asdict(entry))
                await self.kv.set(AUDITS_KEY, kept)
        except StoreError:
            logger.exception("Could not record audit entry %s by %s", action, username)


def _parse(stamp: object) -> datetime:
    """Entry timestamp; anything unreadable counts as expired."""
    if not isinstance(stamp, str):
        return _EXPIRED
    try:
        parsed = datetime.fromisoformat(stamp)
    except ValueError:
        return _EXPIRED
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
