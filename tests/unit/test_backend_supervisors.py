# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
from types import SimpleNamespace
from typing import Any

from adapters.mongodb.supervisor import DriverTopologyBridge, MongoSupervisor
from adapters.redis.supervisor import RedisSupervisor, RedisTransport
from config import HostPort, MongoConfig, RedisConfig, RedisTransportMode
from supervisor.enums.state import LinkState
from supervisor.enums.topology import Topology
from supervisor.events import EventType


async def wait_topology(sup: Any, topology: Topology) -> None:
    for _ in range(200):
        if sup.get_status().topology is topology:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"topology never became {topology}")


# ---------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------

class FakePool:
    def __init__(self) -> None:
        self.disconnected = False

    async def disconnect(self, inuse_connections: bool = True) -> None:
        self.disconnected = inuse_connections


class FakeRedis:
    def __init__(self, info: dict[str, Any], *, fail_close: bool = False) -> None:
        self._info = info
        self._fail_close = fail_close
        self.closed = False
        self.connection_pool = FakePool()

    async def ping(self) -> bool:
        return True

    async def info(self) -> dict[str, Any]:
        return self._info

    async def execute_command(self, *args: Any) -> str:
        return ""

    async def aclose(self) -> None:
        if self._fail_close:
            raise OSError("socket already gone")
        self.closed = True


def test_redis_supervisor_classifies_replica():
    client = FakeRedis({"role": "slave", "master_host": "10.0.0.1", "master_port": 6379})
    built: list[RedisConfig] = []

    def factory(config: RedisConfig) -> RedisTransport:
        built.append(config)
        return RedisTransport(mode=config.transport_mode, client=client)

    async def scenario() -> None:
        sup = RedisSupervisor(transport_factory=factory, heartbeat_interval_ms=60_000)
        config = RedisConfig(uri="redis://:secret@cache:6379/0")
        await sup.connect(config)

        assert sup.state.link is LinkState.READY
        assert sup.describe_target() == "redis://cache:6379/0"
        await wait_topology(sup, Topology.REPLICATED)
        assert sup.get_status().role == "replica"

        await sup.disconnect()
        assert client.closed
        assert built == [config]

    asyncio.run(scenario())


def test_redis_forced_close_after_graceful_failure():
    client = FakeRedis({"role": "master"}, fail_close=True)

    async def scenario() -> None:
        sup = RedisSupervisor(
            transport_factory=lambda cfg: RedisTransport(mode=cfg.transport_mode, client=client),
            heartbeat_interval_ms=60_000,
        )
        await sup.connect(RedisConfig(uri="redis://cache:6379"))
        await sup.disconnect()

        assert client.connection_pool.disconnected
        assert not sup.get_status().connected

    asyncio.run(scenario())


def test_redis_describe_target_per_mode():
    sup = RedisSupervisor()
    sup._configure(  # pylint: disable=protected-access
        RedisConfig(
            uri="redis://x",
            cluster_nodes=(HostPort("n1", 7000), HostPort("n2", 7001)),
        )
    )
    assert sup.transport_mode is RedisTransportMode.CLUSTER
    assert sup.describe_target() == "cluster: n1:7000,n2:7001"

    sup._configure(  # pylint: disable=protected-access
        RedisConfig(sentinel_hosts=(HostPort("s1", 26379),), sentinel_master="cache")
    )
    assert sup.describe_target() == "sentinel(cache): s1:26379"


# ---------------------------------------------------------------------
# MongoDB
# ---------------------------------------------------------------------

class FakeAdmin:
    def __init__(self, replies: dict[str, Any]) -> None:
        self._replies = replies
        self.commands: list[str] = []

    async def command(self, name: str) -> Any:
        self.commands.append(name)
        return self._replies[name]


class FakeMotorClient:
    def __init__(self, replies: dict[str, Any]) -> None:
        self.admin = FakeAdmin(replies)
        self.closed = False

    def close(self) -> None:
        self.closed = True


def test_mongo_supervisor_connects_and_classifies():
    client = FakeMotorClient({
        "ping": {"ok": 1.0},
        "serverStatus": {"process": "mongod"},
    })
    listeners: list[Any] = []

    def factory(uri: str, listener: Any) -> FakeMotorClient:
        listeners.append(listener)
        return client

    async def scenario() -> None:
        sup = MongoSupervisor(client_factory=factory, heartbeat_interval_ms=60_000)
        await sup.connect(MongoConfig(uri="mongodb://u:p@db:27017/app"))

        assert sup.get_status().connected
        assert sup.describe_target() == "mongodb://db:27017/app"
        assert isinstance(listeners[0], DriverTopologyBridge)
        await wait_topology(sup, Topology.STANDALONE)
        assert await sup.ping()

        await sup.disconnect()
        assert client.closed
        assert client.admin.commands[0] == "ping"

    asyncio.run(scenario())


class RecordingSupervisor:
    def __init__(self) -> None:
        self.events: list[Any] = []

    def emit_threadsafe(self, event: Any) -> None:
        self.events.append(event)


def description(readable: bool, kind: str = "ReplicaSetWithPrimary", servers: tuple = ("a",)):
    return SimpleNamespace(
        has_readable_server=lambda: readable,
        topology_type=kind,
        topology_type_name=kind,
        server_descriptions=lambda: {s: None for s in servers},
    )


def changed(prev: Any, new: Any) -> Any:
    return SimpleNamespace(previous_description=prev, new_description=new)


def test_driver_bridge_translates_topology_changes():
    sink = RecordingSupervisor()
    bridge = DriverTopologyBridge(sink, lambda: 7)  # type: ignore[arg-type]

    bridge.description_changed(changed(description(False), description(True)))
    bridge.description_changed(changed(description(True), description(True, servers=("a", "b"))))
    bridge.description_changed(changed(description(True), description(True)))
    bridge.description_changed(changed(description(True), description(False)))

    assert [e.event_type for e in sink.events] == [
        EventType.TRANSPORT_READY,
        EventType.TOPOLOGY_REFRESH,
        EventType.TRANSPORT_CLOSED,
    ]
    assert sink.events[0].source == "driver"
    assert all(e.ts_ms == 7 for e in sink.events)


def test_driver_bridge_ignores_open_and_close():
    sink = RecordingSupervisor()
    bridge = DriverTopologyBridge(sink, lambda: 0)  # type: ignore[arg-type]

    bridge.opened(SimpleNamespace(topology_id="t"))  # type: ignore[arg-type]
    bridge.closed(SimpleNamespace(topology_id="t"))  # type: ignore[arg-type]

    assert sink.events == []
