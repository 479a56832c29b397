# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from adapters.redis.classifier import classify_redis, is_unsupported
from config import RedisTransportMode
from supervisor.enums.topology import Confidence, Topology
from supervisor.errors import ClassificationError


STANDALONE_INFO = {"role": "master", "redis_mode": "standalone", "connected_slaves": 0}

CLUSTER_NODES = (
    "07c3 10.0.0.1:7000@17000 myself,master - 0 0 1 connected 0-5460\n"
    "67ed 10.0.0.2:7001@17001 slave 07c3 0 1426238317239 1 connected\n"
)


class FakeProbe:
    """Answers diagnostics from canned replies; exceptions are raised."""

    def __init__(self, *, info: Any = None, masters: Any = None, nodes: Any = None) -> None:
        self._info = info
        self._masters = masters
        self._nodes = nodes
        self.calls: list[str] = []

    async def _reply(self, name: str, value: Any) -> Any:
        self.calls.append(name)
        if isinstance(value, BaseException):
            raise value
        return value

    async def info(self) -> Any:
        return await self._reply("info", self._info)

    async def sentinel_masters(self) -> Any:
        return await self._reply("sentinel_masters", self._masters)

    async def cluster_nodes(self) -> Any:
        return await self._reply("cluster_nodes", self._nodes)


def classify(probe: FakeProbe, mode: RedisTransportMode):
    return asyncio.run(classify_redis(probe, mode, probe_timeout_ms=1000))


def test_cluster_config_wins_over_standalone_looking_info():
    probe = FakeProbe(info=STANDALONE_INFO, nodes=CLUSTER_NODES)

    report = classify(probe, RedisTransportMode.CLUSTER)

    assert report.topology is Topology.CLUSTERED
    assert report.role == "cluster-node"
    assert [m.role for m in report.members] == ["primary", "replica"]
    assert "info" not in probe.calls


def test_cluster_members_failure_is_tolerated():
    probe = FakeProbe(nodes=RedisConnectionError("reset"))

    report = classify(probe, RedisTransportMode.CLUSTER)

    assert report.topology is Topology.CLUSTERED
    assert report.members == ()


def test_sentinel_config_lists_monitored_primaries():
    probe = FakeProbe(
        info={"role": "master"},
        masters={"mymaster": {"ip": "10.0.0.1", "port": 6379, "flags": "master"}},
    )

    report = classify(probe, RedisTransportMode.SENTINEL)

    assert report.topology is Topology.SENTINEL_MANAGED
    assert report.role == "primary"
    assert report.members[0].name == "mymaster"
    assert report.members[0].health == "up"
    assert report.confidence is Confidence.PROBED


def test_sentinel_without_masters_command_is_inferred():
    probe = FakeProbe(
        info={"role": "master"},
        masters=ResponseError("ERR unknown command 'SENTINEL'"),
    )

    report = classify(probe, RedisTransportMode.SENTINEL)

    assert report.topology is Topology.SENTINEL_MANAGED
    assert report.members == ()
    assert report.confidence is Confidence.INFERRED


def test_standard_standalone():
    report = classify(FakeProbe(info=STANDALONE_INFO), RedisTransportMode.STANDARD)

    assert report.topology is Topology.STANDALONE
    assert report.role == "primary"


def test_standard_cluster_enabled():
    probe = FakeProbe(info={"role": "master", "cluster_enabled": 1}, nodes=CLUSTER_NODES)

    report = classify(probe, RedisTransportMode.STANDARD)

    assert report.topology is Topology.CLUSTERED


def test_standard_replica_reports_primary_link():
    probe = FakeProbe(info={
        "role": "slave",
        "master_host": "10.0.0.1",
        "master_port": 6379,
        "master_link_status": "down",
    })

    report = classify(probe, RedisTransportMode.STANDARD)

    assert report.topology is Topology.REPLICATED
    assert report.role == "replica"
    assert report.members[0].address == "10.0.0.1:6379"
    assert report.members[0].health == "down"


def test_standard_primary_with_replicas():
    probe = FakeProbe(info={
        "role": "master",
        "connected_slaves": 1,
        "slave0": "ip=10.0.0.2,port=6379,state=online,offset=5,lag=1",
    })

    report = classify(probe, RedisTransportMode.STANDARD)

    assert report.topology is Topology.REPLICATED
    assert report.role == "primary"
    assert report.members[1].address == "10.0.0.2:6379"
    assert report.members[1].lag_s == 1.0


def test_standard_uri_pointing_at_sentinel():
    probe = FakeProbe(
        info={"redis_mode": "sentinel", "role": "sentinel"},
        masters=[["name", "mymaster", "ip", "10.0.0.1", "port", "6379", "flags", "o_down"]],
    )

    report = classify(probe, RedisTransportMode.STANDARD)

    assert report.topology is Topology.SENTINEL_MANAGED
    assert report.role == "sentinel"
    assert report.members[0].health == "down"


def test_info_unsupported_falls_back_to_standalone():
    probe = FakeProbe(info=ResponseError("NOPERM this user has no permissions to run 'info'"))

    report = classify(probe, RedisTransportMode.STANDARD)

    assert report.topology is Topology.STANDALONE
    assert report.confidence is Confidence.FALLBACK


def test_connectivity_failure_raises_classification_error():
    probe = FakeProbe(info=RedisConnectionError("Connection refused"))

    with pytest.raises(ClassificationError):
        classify(probe, RedisTransportMode.STANDARD)


def test_is_unsupported_only_for_response_errors():
    assert is_unsupported(ResponseError("ERR unknown subcommand 'nodes'"))
    assert not is_unsupported(ResponseError("WRONGTYPE Operation"))
    assert not is_unsupported(RedisConnectionError("unknown command"))
