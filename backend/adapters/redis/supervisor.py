"""
Redis connection supervisor.

Builds exactly one redis.asyncio transport per configuration, in fixed
precedence: cluster node list > sentinel hosts > standard URI.

redis-py reconnects lazily on the next command, so the runtime
heartbeat is what turns that into READY / DISCONNECTED transitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from redis.asyncio import Redis
from redis.asyncio.cluster import ClusterNode, RedisCluster
from redis.asyncio.sentinel import Sentinel
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, ResponseError

from adapters.redis.classifier import classify_redis
from config import RedisConfig, RedisTransportMode, redact_uri
from defaults import (
    CONNECT_TIMEOUT_MS,
    REDIS_HEALTH_CHECK_INTERVAL_S,
    SOCKET_TIMEOUT_MS,
)
from supervisor.runtime import Supervisor
from supervisor.status import TopologyReport


# ------------------------------------------------------------------
# Transport bundle
# ------------------------------------------------------------------

@dataclass
class RedisTransport:
    """
    One data client plus, for sentinel mode, the sentinel clients.

    client is a Redis or RedisCluster instance (duck-typed in tests).
    """

    mode: RedisTransportMode
    client: Any
    sentinels: list[Any] = field(default_factory=list)


def build_transport(config: RedisConfig) -> RedisTransport:
    """Construct (but do not connect) the client for the configured mode."""
    connect_timeout_s = CONNECT_TIMEOUT_MS / 1000.0
    socket_timeout_s = SOCKET_TIMEOUT_MS / 1000.0
    mode = config.transport_mode

    if mode is RedisTransportMode.CLUSTER:
        client = RedisCluster(
            startup_nodes=[ClusterNode(n.host, n.port) for n in config.cluster_nodes],
            socket_connect_timeout=connect_timeout_s,
            socket_timeout=socket_timeout_s,
            decode_responses=True,
        )
        return RedisTransport(mode=mode, client=client)

    if mode is RedisTransportMode.SENTINEL:
        sentinel = Sentinel(
            [(h.host, h.port) for h in config.sentinel_hosts],
            socket_connect_timeout=connect_timeout_s,
            socket_timeout=socket_timeout_s,
            sentinel_kwargs={
                "socket_connect_timeout": connect_timeout_s,
                "socket_timeout": socket_timeout_s,
                "decode_responses": True,
            },
            decode_responses=True,
        )
        client = sentinel.master_for(config.sentinel_master)
        return RedisTransport(mode=mode, client=client, sentinels=list(sentinel.sentinels))

    if config.uri is None:
        raise ValueError("standard Redis transport requires a URI")

    client = Redis.from_url(
        config.uri,
        socket_connect_timeout=connect_timeout_s,
        socket_timeout=socket_timeout_s,
        health_check_interval=REDIS_HEALTH_CHECK_INTERVAL_S,
        decode_responses=True,
    )
    return RedisTransport(mode=mode, client=client)


class _TransportProbe:
    """Adapts a RedisTransport to the classifier's RedisProbe protocol."""

    def __init__(self, transport: RedisTransport) -> None:
        self._t = transport

    async def info(self) -> Any:
        return await self._t.client.info()

    async def sentinel_masters(self) -> Any:
        if not self._t.sentinels:
            return await self._t.client.sentinel_masters()

        last_exc: Exception | None = None
        for sentinel in self._t.sentinels:
            try:
                return await sentinel.sentinel_masters()
            except ResponseError:
                raise
            except (RedisError, OSError) as exc:
                last_exc = exc
        raise RedisConnectionError(f"no sentinel reachable: {last_exc}")

    async def cluster_nodes(self) -> Any:
        return await self._t.client.execute_command("CLUSTER NODES")


# ------------------------------------------------------------------
# Supervisor
# ------------------------------------------------------------------

class RedisSupervisor(Supervisor):
    """
    Supervises the optional Redis backend.

    One supervisor == one transport. Not configured (connect(None)) is a
    normal, healthy state for this backend.
    """

    def __init__(
        self,
        *,
        mandatory: bool = False,
        transport_factory: Callable[[RedisConfig], RedisTransport] = build_transport,
        **kwargs: Any,
    ) -> None:
        super().__init__(name="redis", mandatory=mandatory, **kwargs)
        self._transport_factory = transport_factory
        self._config: RedisConfig | None = None
        self._transport: RedisTransport | None = None

    @property
    def transport_mode(self) -> RedisTransportMode | None:
        return self._config.transport_mode if self._config else None

    def describe_target(self) -> str | None:
        cfg = self._config
        if cfg is None:
            return None
        mode = cfg.transport_mode
        if mode is RedisTransportMode.CLUSTER:
            return "cluster: " + ",".join(str(n) for n in cfg.cluster_nodes)
        if mode is RedisTransportMode.SENTINEL:
            hosts = ",".join(str(h) for h in cfg.sentinel_hosts)
            return f"sentinel({cfg.sentinel_master}): {hosts}"
        return redact_uri(cfg.uri) if cfg.uri else None

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    def _configure(self, config: RedisConfig) -> None:
        self._config = config

    async def _open_transport(self) -> None:
        if self._config is None:
            raise RuntimeError("redis supervisor used before connect()")
        if self._transport is None:
            self._transport = self._transport_factory(self._config)

        if not await self._transport.client.ping():
            raise RedisConnectionError("PING did not return PONG")

    async def _probe_ping(self) -> bool:
        if self._transport is None:
            return False
        return bool(await self._transport.client.ping())

    async def _classify(self) -> TopologyReport:
        if self._transport is None:
            raise RuntimeError("no transport")
        return await classify_redis(
            _TransportProbe(self._transport),
            self._transport.mode,
            probe_timeout_ms=int(self._probe_timeout_s * 1000),
        )

    async def _close_transport(self, *, force: bool) -> None:
        transport = self._transport
        if transport is None:
            return

        if force:
            pool = getattr(transport.client, "connection_pool", None)
            if pool is not None:
                await pool.disconnect(inuse_connections=True)
        else:
            await transport.client.aclose()
            for sentinel in transport.sentinels:
                await sentinel.aclose()

        self._transport = None

    def _has_transport(self) -> bool:
        return self._transport is not None
