"""
MongoDB connection supervisor.

The motor client owns its own server monitoring and reconnects forever
in the background. Its topology events arrive on pymongo monitor
threads and are forwarded into the supervisor with emit_threadsafe().
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import monitoring

from adapters.mongodb.classifier import classify_mongo
from config import MongoConfig, redact_uri
from defaults import (
    CONNECT_TIMEOUT_MS,
    MONGO_MAX_IDLE_TIME_MS,
    MONGO_MAX_POOL_SIZE,
    MONGO_MIN_POOL_SIZE,
    SERVER_SELECTION_TIMEOUT_MS,
    SOCKET_TIMEOUT_MS,
)
from observability.logger import log_event
from supervisor.events import EventType, TopologyRefresh, TransportClosed, TransportReady
from supervisor.runtime import Supervisor
from supervisor.status import TopologyReport


class DriverTopologyBridge(monitoring.TopologyListener):
    """
    Translates pymongo topology changes into supervisor events.

    readable server appears      -> TransportReady(source="driver")
    last readable server gone    -> TransportClosed
    server set / type changes    -> TopologyRefresh
    """

    def __init__(self, supervisor: Supervisor, clock: Callable[[], int]) -> None:
        self._supervisor = supervisor
        self._clock = clock

    def opened(self, event: monitoring.TopologyOpenedEvent) -> None:
        """Opening says nothing about reachability; the first description change does."""

    def closed(self, event: monitoring.TopologyClosedEvent) -> None:
        """Only follows our own close, which the supervisor already recorded."""

    def description_changed(self, event: monitoring.TopologyDescriptionChangedEvent) -> None:
        prev = event.previous_description
        new = event.new_description
        was_readable = prev.has_readable_server()
        is_readable = new.has_readable_server()

        if is_readable and not was_readable:
            self._supervisor.emit_threadsafe(
                TransportReady(
                    event_type=EventType.TRANSPORT_READY,
                    ts_ms=self._clock(),
                    source="driver",
                )
            )
        elif was_readable and not is_readable:
            self._supervisor.emit_threadsafe(
                TransportClosed(
                    event_type=EventType.TRANSPORT_CLOSED,
                    ts_ms=self._clock(),
                    reason="no readable server",
                )
            )
        elif is_readable and (
            new.topology_type != prev.topology_type
            or set(new.server_descriptions()) != set(prev.server_descriptions())
        ):
            self._supervisor.emit_threadsafe(
                TopologyRefresh(
                    event_type=EventType.TOPOLOGY_REFRESH,
                    ts_ms=self._clock(),
                    reason=f"driver topology {new.topology_type_name}",
                )
            )


def build_client(uri: str, listener: monitoring.TopologyListener) -> AsyncIOMotorClient:
    """Construct the motor client; no I/O happens until the first command."""
    return AsyncIOMotorClient(
        uri,
        serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS,
        connectTimeoutMS=CONNECT_TIMEOUT_MS,
        socketTimeoutMS=SOCKET_TIMEOUT_MS,
        maxPoolSize=MONGO_MAX_POOL_SIZE,
        minPoolSize=MONGO_MIN_POOL_SIZE,
        maxIdleTimeMS=MONGO_MAX_IDLE_TIME_MS,
        retryWrites=True,
        retryReads=True,
        event_listeners=[listener],
    )


class MongoSupervisor(Supervisor):
    """Supervises the mandatory MongoDB backend."""

    def __init__(
        self,
        *,
        mandatory: bool = True,
        client_factory: Callable[[str, monitoring.TopologyListener], Any] = build_client,
        **kwargs: Any,
    ) -> None:
        super().__init__(name="mongodb", mandatory=mandatory, **kwargs)
        self._client_factory = client_factory
        self._config: MongoConfig | None = None
        self._client: Any = None
        self._bridge = DriverTopologyBridge(self, self._clock)

    def describe_target(self) -> str | None:
        return redact_uri(self._config.uri) if self._config else None

    async def _run_admin_command(self, name: str) -> Any:
        return await self._client.admin.command(name)

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    def _configure(self, config: MongoConfig) -> None:
        self._config = config

    async def _open_transport(self) -> None:
        if self._config is None:
            raise RuntimeError("mongodb supervisor used before connect()")
        if self._client is None:
            self._client = self._client_factory(self._config.uri, self._bridge)
        await self._run_admin_command("ping")

    async def _probe_ping(self) -> bool:
        if self._client is None:
            return False
        reply = await self._run_admin_command("ping")
        return bool(reply.get("ok"))

    async def _classify(self) -> TopologyReport:
        if self._client is None:
            raise RuntimeError("no transport")
        return await classify_mongo(
            self._run_admin_command,
            probe_timeout_ms=int(self._probe_timeout_s * 1000),
        )

    async def _close_transport(self, *, force: bool) -> None:
        client = self._client
        if client is None:
            return

        if force:
            # Monitor threads are daemonic; dropping the reference is all that is left
            self._client = None
            log_event({
                "event_type": "MONGO_CLIENT_ABANDONED",
                "backend": self.name,
            }, level="WARNING")
            return

        # close() joins the driver's monitor threads
        await asyncio.to_thread(client.close)
        self._client = None

    def _has_transport(self) -> bool:
        return self._client is not None
