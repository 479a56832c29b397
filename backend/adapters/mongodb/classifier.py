"""
MongoDB topology classifier.

A replica-set name in serverStatus is not trusted on its own: a mongod
started with a replSet name but never initiated (or a standalone with a
leftover name) is verified with replSetGetStatus first.

Error policy:
- CommandNotFound / Unauthorized / "no such command" raise
  ProbeUnsupported internally and lead to a coarser classification.
- NoReplicationEnabled (code 76) during verification means standalone.
- Connectivity failures and timeouts raise ClassificationError.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping

from pymongo.errors import OperationFailure, PyMongoError

from adapters.mongodb.server_status import (
    ServerShape,
    members_from_hosts,
    parse_hello,
    parse_list_shards,
    parse_repl_set_status,
    parse_server_status,
)
from defaults import (
    MONGO_CODE_COMMAND_NOT_FOUND,
    MONGO_CODE_NO_REPLICATION_ENABLED,
    MONGO_CODE_UNAUTHORIZED,
    PROBE_TIMEOUT_MS,
)
from observability.logger import log_event
from supervisor.enums.topology import Confidence, Topology
from supervisor.errors import ClassificationError, ProbeUnsupported
from supervisor.status import TopologyReport


RunCommand = Callable[[str], Awaitable[Mapping[str, Any]]]

_UNSUPPORTED_CODES = frozenset({MONGO_CODE_COMMAND_NOT_FOUND, MONGO_CODE_UNAUTHORIZED})
_UNSUPPORTED_MARKERS = ("no such command", "command not found", "not authorized", "unauthorized")


class NotReplicated(ProbeUnsupported):
    """replSetGetStatus on a mongod that is not running with --replSet."""


def is_no_replication(exc: OperationFailure) -> bool:
    if exc.code == MONGO_CODE_NO_REPLICATION_ENABLED:
        return True
    return "not running with --replset" in str(exc).lower()


def is_unsupported(exc: OperationFailure) -> bool:
    if exc.code in _UNSUPPORTED_CODES:
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _UNSUPPORTED_MARKERS)


async def _call(run_command: RunCommand, name: str, timeout_s: float) -> Mapping[str, Any]:
    try:
        return await asyncio.wait_for(run_command(name), timeout_s)
    except OperationFailure as exc:
        if is_no_replication(exc):
            raise NotReplicated(f"{name}: {exc}") from exc
        if is_unsupported(exc):
            raise ProbeUnsupported(f"{name}: {exc}") from exc
        raise ClassificationError(f"{name}: {exc}") from exc
    except (PyMongoError, OSError, asyncio.TimeoutError) as exc:
        raise ClassificationError(f"{name}: {type(exc).__name__}: {exc}") from exc


async def _server_shape(run_command: RunCommand, timeout_s: float) -> ServerShape | None:
    """serverStatus, then hello, then legacy isMaster. None if all are unsupported."""
    try:
        return parse_server_status(await _call(run_command, "serverStatus", timeout_s))
    except ProbeUnsupported as exc:
        log_event({
            "event_type": "MONGO_SERVER_STATUS_UNAVAILABLE",
            "backend": "mongodb",
            "message": str(exc),
        }, level="DEBUG")

    try:
        return parse_hello(await _call(run_command, "hello", timeout_s))
    except ProbeUnsupported:
        pass

    try:
        return parse_hello(await _call(run_command, "isMaster", timeout_s))
    except ProbeUnsupported as exc:
        log_event({
            "event_type": "MONGO_SELF_DESCRIPTION_UNAVAILABLE",
            "backend": "mongodb",
            "message": str(exc),
        }, level="WARNING")
        return None


async def classify_mongo(
    run_command: RunCommand,
    *,
    probe_timeout_ms: int = PROBE_TIMEOUT_MS,
) -> TopologyReport:
    """
    Classify a live MongoDB deployment.

    Order (first match wins):
    1. replica-set name, confirmed by replSetGetStatus -> replicated
       (NoReplicationEnabled -> standalone)
    2. mongos router                                   -> sharded
    3. otherwise                                       -> standalone

    No self-description command available -> standalone (fallback).
    """
    timeout_s = probe_timeout_ms / 1000.0
    shape = await _server_shape(run_command, timeout_s)
    if shape is None:
        return TopologyReport(topology=Topology.STANDALONE, confidence=Confidence.FALLBACK)

    if shape.repl_set_name:
        return await _classify_replica_set(run_command, shape, timeout_s)

    if shape.is_router:
        try:
            members = parse_list_shards(await _call(run_command, "listShards", timeout_s))
        except ProbeUnsupported:
            return TopologyReport(
                topology=Topology.SHARDED,
                role="mongos",
                confidence=Confidence.INFERRED,
            )
        return TopologyReport(topology=Topology.SHARDED, role="mongos", members=members)

    return TopologyReport(topology=Topology.STANDALONE, role="primary")


async def _classify_replica_set(
    run_command: RunCommand, shape: ServerShape, timeout_s: float
) -> TopologyReport:
    try:
        doc = await _call(run_command, "replSetGetStatus", timeout_s)
    except NotReplicated:
        log_event({
            "event_type": "MONGO_REPLICA_SET_NOT_ENABLED",
            "backend": "mongodb",
            "replica_set": shape.repl_set_name,
        })
        return TopologyReport(topology=Topology.STANDALONE, role="primary")
    except ProbeUnsupported:
        return TopologyReport(
            topology=Topology.REPLICATED,
            role=shape.role,
            members=members_from_hosts(shape),
            replica_set=shape.repl_set_name,
            confidence=Confidence.INFERRED,
        )

    status = parse_repl_set_status(doc)
    return TopologyReport(
        topology=Topology.REPLICATED,
        role=status.self_role or shape.role,
        members=status.members,
        replica_set=status.name or shape.repl_set_name,
    )
