"""
Typed parsers for Redis diagnostic replies.

Each parser accepts both shapes it can meet in practice:
- raw protocol text / flat key-value arrays (as sent by the server)
- the pre-parsed dicts produced by redis-py response callbacks

Missing or malformed fields get defined defaults; parsers never raise
on unexpected content.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping


_ROLE_NAMES: dict[str, str] = {
    "master": "primary",
    "slave": "replica",
    "replica": "replica",
    "sentinel": "sentinel",
}


def normalize_role(raw: str | None) -> str | None:
    """Map Redis role names onto the shared vocabulary."""
    if raw is None:
        return None
    return _ROLE_NAMES.get(raw.lower(), raw.lower())


def _s(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _int(value: Any, default: int | None = None) -> int | None:
    if value is None:
        return default
    try:
        return int(_s(value))
    except ValueError:
        return default


# =============================================================================
# INFO
# =============================================================================

@dataclass(frozen=True)
class ReplicaEntry:
    """One `slaveN:` line of INFO replication."""

    ip: str
    port: int | None
    state: str | None = None
    offset: int | None = None
    lag: int | None = None

    @property
    def address(self) -> str:
        return f"{self.ip}:{self.port}" if self.port is not None else self.ip

    @property
    def online(self) -> bool:
        return self.state == "online"


@dataclass(frozen=True)
class RedisInfo:
    """The subset of INFO the classifier relies on."""

    role: str = "master"
    redis_mode: str | None = None
    cluster_enabled: bool = False
    connected_slaves: int = 0
    master_host: str | None = None
    master_port: int | None = None
    master_link_status: str | None = None
    replicas: tuple[ReplicaEntry, ...] = ()
    uptime_s: int | None = None
    redis_version: str | None = None

    @property
    def is_replica(self) -> bool:
        return self.role in ("slave", "replica")

    @property
    def master_address(self) -> str:
        host = self.master_host or "unknown"
        port = self.master_port if self.master_port is not None else "unknown"
        return f"{host}:{port}"


def parse_info_text(text: str) -> dict[str, str]:
    """
    Parse raw INFO output into a flat field map.

    Section headers ("# Server") and blank lines are skipped. Only the
    first ':' separates key from value (values such as IPv6 addresses
    may contain more).
    """
    fields: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition(":")
        if sep and key:
            fields[key] = value.strip()
    return fields


def parse_replica(value: Any) -> ReplicaEntry | None:
    """Accept 'ip=...,port=...,state=...' or redis-py's dict form."""
    if isinstance(value, Mapping):
        parts = {_s(k): v for k, v in value.items()}
    else:
        parts = {}
        for item in _s(value).split(","):
            key, sep, val = item.partition("=")
            if sep and key:
                parts[key.strip()] = val.strip()

    ip = parts.get("ip")
    if ip is None:
        return None
    return ReplicaEntry(
        ip=_s(ip),
        port=_int(parts.get("port")),
        state=_s(parts["state"]) if "state" in parts else None,
        offset=_int(parts.get("offset")),
        lag=_int(parts.get("lag")),
    )


def parse_info(raw: str | bytes | Mapping[str, Any]) -> RedisInfo:
    """Build a typed RedisInfo from raw INFO text or a redis-py INFO dict."""
    if isinstance(raw, (str, bytes)):
        fields: Mapping[str, Any] = parse_info_text(_s(raw))
    else:
        fields = {_s(k): v for k, v in raw.items()}

    connected_slaves = _int(fields.get("connected_slaves"), 0) or 0
    replicas: list[ReplicaEntry] = []
    for i in range(connected_slaves):
        entry = fields.get(f"slave{i}")
        if entry is None:
            continue
        parsed = parse_replica(entry)
        if parsed is not None:
            replicas.append(parsed)

    cluster_enabled = fields.get("cluster_enabled")

    return RedisInfo(
        role=_s(fields.get("role", "master")).lower(),
        redis_mode=_s(fields["redis_mode"]) if "redis_mode" in fields else None,
        cluster_enabled=_s(cluster_enabled) in ("1", "True", "true"),
        connected_slaves=connected_slaves,
        master_host=_s(fields["master_host"]) if "master_host" in fields else None,
        master_port=_int(fields.get("master_port")),
        master_link_status=(
            _s(fields["master_link_status"]) if "master_link_status" in fields else None
        ),
        replicas=tuple(replicas),
        uptime_s=_int(fields.get("uptime_in_seconds")),
        redis_version=(
            _s(fields["redis_version"]) if "redis_version" in fields else None
        ),
    )


# =============================================================================
# SENTINEL MASTERS
# =============================================================================

_DOWN_FLAGS = frozenset({"down", "s_down", "o_down", "disconnected"})


@dataclass(frozen=True)
class SentinelMaster:
    """One primary monitored by a sentinel."""

    name: str
    ip: str | None
    port: int | None
    flags: frozenset[str]
    num_other_sentinels: int | None = None
    num_replicas: int | None = None

    @property
    def address(self) -> str | None:
        if self.ip is None:
            return None
        return f"{self.ip}:{self.port}" if self.port is not None else self.ip

    @property
    def is_down(self) -> bool:
        return bool(self.flags & _DOWN_FLAGS)


def _flags(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, (set, frozenset, list, tuple)):
        return frozenset(_s(v) for v in value)
    return frozenset(f for f in _s(value).split(",") if f)


def _pairs(flat: Iterable[Any]) -> dict[str, Any]:
    items = list(flat)
    return {_s(items[i]): items[i + 1] for i in range(0, len(items) - 1, 2)}


def _sentinel_master(fields: Mapping[str, Any], fallback_name: str | None) -> SentinelMaster:
    flags = set(_flags(fields.get("flags")))
    # redis-py replaces raw flags with is_* booleans
    if fields.get("is_sdown"):
        flags.add("s_down")
    if fields.get("is_odown"):
        flags.add("o_down")
    if fields.get("is_disconnected"):
        flags.add("disconnected")

    return SentinelMaster(
        name=_s(fields.get("name", fallback_name or "unknown")),
        ip=_s(fields["ip"]) if "ip" in fields else None,
        port=_int(fields.get("port")),
        flags=frozenset(flags),
        num_other_sentinels=_int(
            fields.get("num-other-sentinels", fields.get("num_other_sentinels"))
        ),
        num_replicas=_int(fields.get("num-slaves", fields.get("num_slaves"))),
    )


def parse_sentinel_masters(raw: Any) -> tuple[SentinelMaster, ...]:
    """
    Accept either:
    - a list of flat [k1, v1, k2, v2, ...] arrays (raw reply)
    - redis-py's {name: {field: value}} dict
    """
    if raw is None:
        return ()

    masters: list[SentinelMaster] = []
    if isinstance(raw, Mapping):
        for name, fields in raw.items():
            if isinstance(fields, Mapping):
                masters.append(
                    _sentinel_master({_s(k): v for k, v in fields.items()}, _s(name))
                )
        return tuple(masters)

    for item in raw:
        if isinstance(item, Mapping):
            masters.append(_sentinel_master({_s(k): v for k, v in item.items()}, None))
        else:
            masters.append(_sentinel_master(_pairs(item), None))
    return tuple(masters)


# =============================================================================
# CLUSTER NODES
# =============================================================================

@dataclass(frozen=True)
class ClusterNodeEntry:
    """One line of CLUSTER NODES."""

    node_id: str
    address: str
    flags: frozenset[str]
    connected: bool

    @property
    def role(self) -> str:
        return "primary" if "master" in self.flags else "replica"

    @property
    def healthy(self) -> bool:
        return self.connected and not self.flags & {"fail", "fail?"}


def parse_cluster_nodes(raw: Any) -> tuple[ClusterNodeEntry, ...]:
    """
    Accept raw CLUSTER NODES text or redis-py's {address: {...}} dict.

    Text lines: <id> <ip:port@cport> <flags> <master> <ping> <pong> <epoch> <link> ...
    """
    if raw is None:
        return ()

    nodes: list[ClusterNodeEntry] = []
    if isinstance(raw, Mapping):
        for address, fields in raw.items():
            if not isinstance(fields, Mapping):
                continue
            fields = {_s(k): v for k, v in fields.items()}
            connected = fields.get("connected", False)
            nodes.append(
                ClusterNodeEntry(
                    node_id=_s(fields.get("node_id", "")),
                    address=_s(address).split("@", 1)[0],
                    flags=_flags(fields.get("flags")),
                    connected=connected is True or _s(connected) == "connected",
                )
            )
        return tuple(nodes)

    for line in _s(raw).splitlines():
        parts = line.split()
        if len(parts) < 8:
            continue
        nodes.append(
            ClusterNodeEntry(
                node_id=parts[0],
                address=parts[1].split("@", 1)[0],
                flags=_flags(parts[2]),
                connected=parts[7] == "connected",
            )
        )
    return tuple(nodes)
