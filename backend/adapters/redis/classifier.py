"""
Redis topology classifier.

Derives the deployment shape from live diagnostics (INFO, SENTINEL
MASTERS, CLUSTER NODES) rather than echoing configuration, except where
the transport type itself already fixes the topology (cluster client).

Error policy:
- "unknown command" / permission / feature-disabled replies raise
  ProbeUnsupported internally and lead to a coarser classification.
- Connectivity failures and timeouts raise ClassificationError.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Protocol

from redis.exceptions import RedisError, ResponseError

from adapters.redis.info import (
    RedisInfo,
    normalize_role,
    parse_cluster_nodes,
    parse_info,
    parse_sentinel_masters,
)
from config import RedisTransportMode
from defaults import PROBE_TIMEOUT_MS
from observability.logger import log_event
from supervisor.enums.topology import Confidence, Topology
from supervisor.errors import ClassificationError, ProbeUnsupported
from supervisor.status import MemberInfo, TopologyReport


_UNSUPPORTED_MARKERS = (
    "unknown command",
    "unknown subcommand",
    "noperm",
    "no permissions",
    "cluster support disabled",
)


class RedisProbe(Protocol):
    """Diagnostic calls the classifier needs from a live client."""

    async def info(self) -> Any: ...

    async def sentinel_masters(self) -> Any: ...

    async def cluster_nodes(self) -> Any: ...


def is_unsupported(exc: BaseException) -> bool:
    """True for replies meaning 'this diagnostic is not available here'."""
    if not isinstance(exc, ResponseError):
        return False
    text = str(exc).lower()
    return any(marker in text for marker in _UNSUPPORTED_MARKERS)


async def _call(aw: Awaitable[Any], timeout_s: float, what: str) -> Any:
    try:
        return await asyncio.wait_for(aw, timeout_s)
    except ResponseError as exc:
        if is_unsupported(exc):
            raise ProbeUnsupported(f"{what}: {exc}") from exc
        raise ClassificationError(f"{what}: {exc}") from exc
    except (RedisError, OSError, asyncio.TimeoutError) as exc:
        raise ClassificationError(f"{what}: {type(exc).__name__}: {exc}") from exc


# =============================================================================
# Member builders
# =============================================================================

async def _cluster_members(probe: RedisProbe, timeout_s: float) -> tuple[MemberInfo, ...]:
    """CLUSTER NODES as members; any failure leaves the list empty."""
    try:
        raw = await _call(probe.cluster_nodes(), timeout_s, "CLUSTER NODES")
    except (ProbeUnsupported, ClassificationError) as exc:
        log_event({
            "event_type": "REDIS_CLUSTER_NODES_UNAVAILABLE",
            "backend": "redis",
            "message": str(exc),
        }, level="WARNING")
        return ()

    return tuple(
        MemberInfo(
            address=node.address,
            role=node.role,
            health="up" if node.healthy else "down",
            node_id=node.node_id,
        )
        for node in parse_cluster_nodes(raw)
    )


async def _sentinel_members(probe: RedisProbe, timeout_s: float) -> tuple[MemberInfo, ...]:
    """SENTINEL MASTERS as members. Raises ProbeUnsupported."""
    raw = await _call(probe.sentinel_masters(), timeout_s, "SENTINEL MASTERS")
    return tuple(
        MemberInfo(
            address=master.address,
            role="monitored-primary",
            health="down" if master.is_down else "up",
            name=master.name,
        )
        for master in parse_sentinel_masters(raw)
    )


def _replication_members(info: RedisInfo) -> tuple[MemberInfo, ...]:
    if info.is_replica:
        return (
            MemberInfo(
                address=info.master_address,
                role="primary",
                health="up" if info.master_link_status == "up" else "down",
            ),
            MemberInfo(
                address=None,
                role="replica",
                health="up",
                name="current",
                uptime_s=info.uptime_s,
            ),
        )

    members = [
        MemberInfo(
            address=None,
            role="primary",
            health="up",
            name="current",
            uptime_s=info.uptime_s,
        )
    ]
    for replica in info.replicas:
        members.append(
            MemberInfo(
                address=replica.address,
                role="replica",
                health="up" if replica.online else "down",
                lag_s=float(replica.lag) if replica.lag is not None else None,
            )
        )
    return tuple(members)


# =============================================================================
# Classifier
# =============================================================================

async def classify_redis(
    probe: RedisProbe,
    mode: RedisTransportMode,
    *,
    probe_timeout_ms: int = PROBE_TIMEOUT_MS,
) -> TopologyReport:
    """
    Classify a live Redis deployment.

    Order (first match wins):
    1. cluster client           -> clustered (no probing needed)
    2. sentinel client          -> sentinel-managed, monitored primaries as members
    3. standard client, by INFO -> clustered | sentinel-managed | replicated | standalone
    """
    timeout_s = probe_timeout_ms / 1000.0

    if mode is RedisTransportMode.CLUSTER:
        return TopologyReport(
            topology=Topology.CLUSTERED,
            role="cluster-node",
            members=await _cluster_members(probe, timeout_s),
        )

    if mode is RedisTransportMode.SENTINEL:
        return await _classify_sentinel_client(probe, timeout_s)

    try:
        info = parse_info(await _call(probe.info(), timeout_s, "INFO"))
    except ProbeUnsupported:
        return TopologyReport(
            topology=Topology.STANDALONE,
            confidence=Confidence.FALLBACK,
        )

    if info.cluster_enabled:
        return TopologyReport(
            topology=Topology.CLUSTERED,
            role="cluster-node",
            members=await _cluster_members(probe, timeout_s),
        )

    # Best effort: a standard URI pointed at a sentinel process
    if info.redis_mode == "sentinel":
        try:
            members = await _sentinel_members(probe, timeout_s)
        except ProbeUnsupported:
            pass
        else:
            return TopologyReport(
                topology=Topology.SENTINEL_MANAGED,
                role="sentinel",
                members=members,
            )

    if info.is_replica or (info.role == "master" and info.connected_slaves > 0):
        return TopologyReport(
            topology=Topology.REPLICATED,
            role=normalize_role(info.role),
            members=_replication_members(info),
        )

    return TopologyReport(
        topology=Topology.STANDALONE,
        role=normalize_role(info.role),
    )


async def _classify_sentinel_client(probe: RedisProbe, timeout_s: float) -> TopologyReport:
    role: str | None = None
    confidence = Confidence.PROBED

    try:
        role = normalize_role(parse_info(await _call(probe.info(), timeout_s, "INFO")).role)
    except ProbeUnsupported:
        confidence = Confidence.INFERRED

    try:
        members = await _sentinel_members(probe, timeout_s)
    except ProbeUnsupported:
        members = ()
        confidence = Confidence.INFERRED

    return TopologyReport(
        topology=Topology.SENTINEL_MANAGED,
        role=role,
        members=members,
        confidence=confidence,
    )
