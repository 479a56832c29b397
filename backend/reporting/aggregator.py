"""
Composite status and health reports.

Pure builders (build_composite_status / build_health) work on
BackendSnapshot values; StatusAggregator binds them to a live registry.
Nothing here mutates supervisor state.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from reporting.process_metrics import format_uptime, memory_usage
from supervisor.registry import BackendRegistry
from supervisor.runtime import BackendSnapshot
from supervisor.status import format_ts


HEALTHY = "healthy"
DEGRADED = "degraded"

CHECK_PASS = "pass"
CHECK_FAIL = "fail"
CHECK_SKIPPED = "skipped"


@dataclass(frozen=True)
class AppInfo:
    name: str
    version: str
    environment: str


def _now_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# Pure builders
# =============================================================================

def health_check(snapshot: BackendSnapshot) -> str:
    """
    pass    - connected
    skipped - optional backend that is not configured
    fail    - everything else (including an unconfigured mandatory backend)
    """
    if not snapshot.configured:
        return CHECK_FAIL if snapshot.mandatory else CHECK_SKIPPED
    return CHECK_PASS if snapshot.status.connected else CHECK_FAIL


def build_health(snapshots: Sequence[BackendSnapshot], now_ms: int) -> dict[str, Any]:
    checks = {snap.name: health_check(snap) for snap in snapshots}
    healthy = all(result != CHECK_FAIL for result in checks.values())
    return {
        "status": HEALTHY if healthy else DEGRADED,
        "checks": checks,
        "timestamp": format_ts(now_ms),
    }


def service_entry(snapshot: BackendSnapshot, ping: bool | None) -> dict[str, Any]:
    entry = snapshot.status.to_dict()
    entry.update({
        "state": snapshot.link.value,
        "mandatory": snapshot.mandatory,
        "configured": snapshot.configured,
        "ping": ping if snapshot.configured else None,
        "retry": snapshot.retry.to_dict(),
        "uri": "***configured***" if snapshot.configured else "not configured",
        "target": snapshot.target,
    })
    return entry


def build_composite_status(
    snapshots: Sequence[BackendSnapshot],
    pings: Mapping[str, bool],
    app_info: AppInfo,
    process: Mapping[str, Any],
    now_ms: int,
) -> dict[str, Any]:
    """
    Full /api/status document.

    process carries "uptime" and "memory" (see reporting.process_metrics).
    """
    health = build_health(snapshots, now_ms)
    return {
        "application": {
            "name": app_info.name,
            "version": app_info.version,
            "environment": app_info.environment,
            "status": "running",
            "health": health["status"],
        },
        "uptime": process.get("uptime"),
        "services": {
            snap.name: service_entry(snap, pings.get(snap.name))
            for snap in snapshots
        },
        "memory": process.get("memory"),
        "timestamp": format_ts(now_ms),
    }


# =============================================================================
# Live aggregator
# =============================================================================

class StatusAggregator:
    """Reads a BackendRegistry on demand; owns no backend state."""

    def __init__(
        self,
        registry: BackendRegistry,
        app_info: AppInfo,
        *,
        started_ms: int | None = None,
        clock: Callable[[], int] = _now_ms,
        memory: Callable[[], dict[str, Any]] = memory_usage,
    ) -> None:
        self._registry = registry
        self._app_info = app_info
        self._clock = clock
        self._started_ms = clock() if started_ms is None else started_ms
        self._memory = memory

    @property
    def app_info(self) -> AppInfo:
        return self._app_info

    def now_ms(self) -> int:
        return self._clock()

    def uptime(self) -> dict[str, Any]:
        return format_uptime(self._clock() - self._started_ms)

    async def get_composite_status(self) -> dict[str, Any]:
        """Pings every backend concurrently, then reports current snapshots."""
        pings = await self._registry.ping_all()
        return build_composite_status(
            self._registry.snapshots(),
            pings,
            self._app_info,
            {"uptime": self.uptime(), "memory": self._memory()},
            self._clock(),
        )

    def get_health(self) -> dict[str, Any]:
        return build_health(self._registry.snapshots(), self._clock())
