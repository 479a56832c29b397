"""
Typed parsers for MongoDB diagnostic documents.

Accepts serverStatus, hello / legacy isMaster, replSetGetStatus and
listShards replies as plain mappings (what motor returns). Missing or
malformed fields get defined defaults; parsers never raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from supervisor.status import MemberInfo


@dataclass(frozen=True)
class ServerShape:
    """What one mongod / mongos says about itself."""

    process: str | None = None
    repl_set_name: str | None = None
    hosts: tuple[str, ...] = ()
    primary: str | None = None
    is_writable_primary: bool = False
    is_secondary: bool = False
    msg: str | None = None
    me: str | None = None
    uptime_s: int | None = None
    version: str | None = None

    @property
    def is_router(self) -> bool:
        if self.msg == "isdbgrid":
            return True
        return self.process is not None and "mongos" in self.process

    @property
    def role(self) -> str | None:
        if self.is_router:
            return "mongos"
        if self.is_writable_primary:
            return "primary"
        if self.is_secondary:
            return "secondary"
        return None


def _str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _hosts(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(h) for h in value)


def _writable(doc: Mapping[str, Any]) -> bool:
    return bool(doc.get("isWritablePrimary", doc.get("ismaster", False)))


def parse_server_status(doc: Mapping[str, Any]) -> ServerShape:
    """serverStatus: replication details live under the `repl` sub-document."""
    repl = doc.get("repl")
    if not isinstance(repl, Mapping):
        repl = {}

    return ServerShape(
        process=_str(doc.get("process")),
        repl_set_name=_str(repl.get("setName")),
        hosts=_hosts(repl.get("hosts")),
        primary=_str(repl.get("primary")),
        is_writable_primary=_writable(repl),
        is_secondary=bool(repl.get("secondary", False)),
        me=_str(repl.get("me")),
        uptime_s=_int(doc.get("uptime")),
        version=_str(doc.get("version")),
    )


def parse_hello(doc: Mapping[str, Any]) -> ServerShape:
    """hello / isMaster: replication fields are top level; mongos sets msg=isdbgrid."""
    return ServerShape(
        repl_set_name=_str(doc.get("setName")),
        hosts=_hosts(doc.get("hosts")),
        primary=_str(doc.get("primary")),
        is_writable_primary=_writable(doc),
        is_secondary=bool(doc.get("secondary", False)),
        msg=_str(doc.get("msg")),
        me=_str(doc.get("me")),
    )


# =============================================================================
# replSetGetStatus
# =============================================================================

@dataclass(frozen=True)
class ReplicaSetStatus:
    name: str | None
    self_role: str | None
    members: tuple[MemberInfo, ...]


def _lag_s(primary: Any, member: Any) -> float | None:
    if not isinstance(primary, datetime) or not isinstance(member, datetime):
        return None
    return max((primary - member).total_seconds(), 0.0)


def parse_repl_set_status(doc: Mapping[str, Any]) -> ReplicaSetStatus:
    """
    Members with role from stateStr, health, uptime and lag.

    Lag is measured against the primary's optimeDate and only reported
    for non-primary members.
    """
    raw_members = doc.get("members")
    if not isinstance(raw_members, (list, tuple)):
        raw_members = []
    entries = [m for m in raw_members if isinstance(m, Mapping)]

    primary_optime = None
    for m in entries:
        if str(m.get("stateStr", "")).upper() == "PRIMARY":
            primary_optime = m.get("optimeDate")
            break

    self_role: str | None = None
    members: list[MemberInfo] = []
    for m in entries:
        role = str(m.get("stateStr", "unknown")).lower()
        if m.get("self"):
            self_role = role
        members.append(
            MemberInfo(
                address=_str(m.get("name")),
                role=role,
                health="up" if m.get("health") == 1 else "down",
                uptime_s=_int(m.get("uptime")),
                lag_s=None if role == "primary" else _lag_s(primary_optime, m.get("optimeDate")),
                node_id=_str(m.get("_id")),
            )
        )

    return ReplicaSetStatus(
        name=_str(doc.get("set")),
        self_role=self_role,
        members=tuple(members),
    )


def members_from_hosts(shape: ServerShape) -> tuple[MemberInfo, ...]:
    """Coarse member list from the host list alone; health is not known."""
    return tuple(
        MemberInfo(
            address=host,
            role="primary" if host == shape.primary else "secondary",
            health="unknown",
        )
        for host in shape.hosts
    )


# =============================================================================
# listShards
# =============================================================================

def parse_list_shards(doc: Mapping[str, Any]) -> tuple[MemberInfo, ...]:
    shards = doc.get("shards")
    if not isinstance(shards, (list, tuple)):
        return ()

    members: list[MemberInfo] = []
    for shard in shards:
        if not isinstance(shard, Mapping):
            continue
        state = shard.get("state")
        members.append(
            MemberInfo(
                address=_str(shard.get("host")),
                role="shard",
                health="up" if state in (None, 1) else "down",
                name=_str(shard.get("_id")),
            )
        )
    return tuple(members)
