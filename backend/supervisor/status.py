"""
Status record for a supervised backend.

Rules:
- Pure data: frozen dataclasses, no I/O, no clocks.
- Mutated only by the reducer through dataclasses.replace().
- `to_dict()` renders the camelCase shape served by /api/status.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from supervisor.enums.topology import Confidence, Topology


@dataclass(frozen=True)
class MemberInfo:
    """One node of a replica set, shard list, cluster or sentinel view."""

    address: str | None
    role: str
    health: str
    name: str | None = None
    lag_s: float | None = None
    uptime_s: int | None = None
    node_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "address": self.address,
            "role": self.role,
            "health": self.health,
        }
        if self.name is not None:
            out["name"] = self.name
        if self.lag_s is not None:
            out["lag"] = self.lag_s
        if self.uptime_s is not None:
            out["uptime"] = self.uptime_s
        if self.node_id is not None:
            out["id"] = self.node_id
        return out


@dataclass(frozen=True)
class TopologyReport:
    """Classifier output; copied into the status record on success."""

    topology: Topology
    role: str | None = None
    members: tuple[MemberInfo, ...] = ()
    replica_set: str | None = None
    confidence: Confidence = Confidence.PROBED


@dataclass(frozen=True)
class StatusRecord:
    """
    Immutable snapshot of one backend's connection status.

    Invariant: connected=False implies the topology fields are reset.
    The reducer enforces it in _update_status().
    """

    connected: bool = False
    message: str = "Not initialized"
    last_checked_ms: int | None = None

    # Bumped on every status mutation (observability counter)
    connection_attempts: int = 0

    # Bumped only when a transport connect is actually attempted
    transport_attempts: int = 0

    last_error: str | None = None

    # ------------------------------------------------------------------
    # Topology (owned by the classifier)
    # ------------------------------------------------------------------
    topology: Topology = Topology.UNKNOWN
    role: str | None = None
    members: tuple[MemberInfo, ...] = ()
    replica_set: str | None = None
    confidence: Confidence | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "message": self.message,
            "lastChecked": format_ts(self.last_checked_ms),
            "connectionAttempts": self.connection_attempts,
            "transportAttempts": self.transport_attempts,
            "lastError": self.last_error,
            "topology": self.topology.value,
            "role": self.role,
            "replicaSet": self.replica_set,
            "confidence": self.confidence.value if self.confidence else None,
            "members": [m.to_dict() for m in self.members],
        }


def format_ts(ts_ms: int | None) -> str | None:
    """ISO-8601 UTC with millisecond precision, like Date.toISOString()."""
    if ts_ms is None:
        return None
    dt = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
