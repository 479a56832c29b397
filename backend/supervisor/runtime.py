"""
Runtime execution shell for one supervised backend.

Responsibilities:
- Own supervisor state
- Call pure reducer
- Execute commands with side effects (connect attempts, timers, classification)
- Run the heartbeat that detects background reconnection
- Expose the status-query surface (get_status / snapshot / ping)

Non-responsibilities:
- Driver specifics (see adapters/mongodb, adapters/redis)
- Classification rules (see the adapter classifiers)
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

from config import RetryConfig
from defaults import (
    CLASSIFY_TIMEOUT_MS,
    CLOSE_TIMEOUT_MS,
    CONNECT_TIMEOUT_MS,
    HEARTBEAT_INTERVAL_MS,
    PROBE_TIMEOUT_MS,
)
from observability.logger import log_event
from observability.metrics import timed
from supervisor.commands import (
    CancelClassification,
    CancelReconnect,
    CloseTransport,
    Command,
    LogEvent,
    OpenTransport,
    ScheduleReconnect,
    StartClassification,
)
from supervisor.enums.state import LinkState
from supervisor.errors import BackendConnectionError
from supervisor.events import (
    ClassificationFailed,
    ConnectFailed,
    ConnectRequested,
    Event,
    EventType,
    RetryReady,
    ShutdownRequested,
    TopologyClassified,
    TopologyRefresh,
    TransportClosed,
    TransportError,
    TransportReady,
)
from supervisor.reducer import reduce
from supervisor.retry import RetryState
from supervisor.state_dataclass import SupervisorState
from supervisor.status import StatusRecord, TopologyReport


TIMER_RECONNECT = "reconnect"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def describe_error(exc: BaseException) -> str:
    """Human-readable reason; some exceptions (timeouts) have an empty str()."""
    text = str(exc).strip()
    return text or type(exc).__name__


@dataclass(frozen=True)
class BackendSnapshot:
    """
    Read-only view of one supervisor for the aggregator.

    Taken atomically from the current state; never mutated afterwards.
    """

    name: str
    mandatory: bool
    configured: bool
    link: LinkState
    status: StatusRecord
    retry: RetryState
    target: str | None = None


class Supervisor(ABC):
    """
    Runtime execution boundary for a single backend connection.

    Responsibilities:
    - Own the authoritative supervisor state
    - Act as the universal event sink for the backend
      (connect attempts, driver callbacks, timers, heartbeat, classifier)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects

    Guarantees:
    - Reducer is called exactly once per incoming event
    - Events for this backend are serialized by an asyncio.Lock
    - State is updated before any side effects execute
    - Network I/O runs in tasks that re-enter handle_event with the outcome,
      so the lock is never held across a connect or a classification
    - At most one classification task and one reconnect timer exist
    """

    def __init__(
        self,
        *,
        name: str,
        mandatory: bool,
        retry: RetryConfig | None = None,
        connect_timeout_ms: int = CONNECT_TIMEOUT_MS,
        probe_timeout_ms: int = PROBE_TIMEOUT_MS,
        classify_timeout_ms: int = CLASSIFY_TIMEOUT_MS,
        heartbeat_interval_ms: int = HEARTBEAT_INTERVAL_MS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.name = name
        self.mandatory = mandatory

        self._state = SupervisorState(
            backend=name,
            retry=RetryState.from_config(retry or RetryConfig()),
        )
        self._connect_timeout_s = connect_timeout_ms / 1000.0
        self._probe_timeout_s = probe_timeout_ms / 1000.0
        self._classify_timeout_s = classify_timeout_ms / 1000.0
        self._heartbeat_interval_s = heartbeat_interval_ms / 1000.0
        self._clock = clock

        self._lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._attempt_task: asyncio.Task[None] | None = None
        self._classify_task: asyncio.Task[None] | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._last_attempt_error: BaseException | None = None

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _configure(self, config: Any) -> None:
        """Store backend configuration; called once per connect()."""

    @abstractmethod
    async def _open_transport(self) -> None:
        """
        Create the transport if needed and confirm the handshake.

        Must raise on failure. Bounded by the connect timeout.
        """

    @abstractmethod
    async def _probe_ping(self) -> bool:
        """Lightweight liveness probe on the current transport."""

    @abstractmethod
    async def _classify(self) -> TopologyReport:
        """Run the topology classifier against the live transport."""

    @abstractmethod
    async def _close_transport(self, *, force: bool) -> None:
        """Close the transport; force=True skips protocol-level quit."""

    @abstractmethod
    def _has_transport(self) -> bool:
        """True if a transport object exists (connected or not)."""

    def describe_target(self) -> str | None:
        """Redacted connection target for status output."""
        return None

    # ------------------------------------------------------------------
    # Status-query surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> SupervisorState:
        """
        Return the current immutable supervisor state.

        Consumers must never modify this state directly.
        """
        return self._state

    def get_status(self) -> StatusRecord:
        """Immutable snapshot; never blocks, never mutates."""
        return self._state.status

    def snapshot(self) -> BackendSnapshot:
        state = self._state
        return BackendSnapshot(
            name=self.name,
            mandatory=self.mandatory,
            configured=state.configured,
            link=state.link,
            status=state.status,
            retry=state.retry,
            target=self.describe_target() if state.configured else None,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, config: Any, *, raise_on_failure: bool = False) -> None:
        """
        Start supervising the backend.

        config=None marks an optional backend as not configured; this is
        not an error. Otherwise the first attempt is awaited. On failure
        a reconnection is already scheduled; BackendConnectionError is
        raised only if raise_on_failure is set.
        """
        self._loop = asyncio.get_running_loop()

        if config is None:
            log_event({
                "event_type": "BACKEND_NOT_CONFIGURED",
                "backend": self.name,
            })
            await self.handle_event(
                ConnectRequested(
                    event_type=EventType.CONNECT_REQUESTED,
                    ts_ms=self._clock(),
                    configured=False,
                )
            )
            return

        self._configure(config)
        log_event({
            "event_type": "BACKEND_CONNECTING",
            "backend": self.name,
            "target": self.describe_target(),
        })

        await self.handle_event(
            ConnectRequested(
                event_type=EventType.CONNECT_REQUESTED,
                ts_ms=self._clock(),
                configured=True,
            )
        )

        # asyncio.wait: a concurrent disconnect() may cancel the attempt
        task = self._attempt_task
        if task is not None:
            await asyncio.wait([task])

        self._start_watch()

        err = self._last_attempt_error
        if raise_on_failure and err is not None and not self._state.status.connected:
            raise BackendConnectionError(self.name, describe_error(err)) from err

    async def disconnect(self) -> None:
        """
        Orderly shutdown: graceful close, forced close on failure.

        Never raises.
        """
        try:
            await self._cancel_task(self._watch_task)
            self._watch_task = None
            await self._cancel_task(self._attempt_task)
            self._attempt_task = None

            await self.handle_event(
                ShutdownRequested(
                    event_type=EventType.SHUTDOWN_REQUESTED,
                    ts_ms=self._clock(),
                )
            )

            for timer_id in list(self._timers.keys()):
                self._cancel_timer(timer_id)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "BACKEND_DISCONNECT_ERROR",
                "backend": self.name,
                "exception": type(exc).__name__,
                "message": describe_error(exc),
            }, level="ERROR")

    async def ping(self) -> bool:
        """
        Liveness probe bounded by the probe timeout.

        Returns False (never raises) if there is no transport,
        or if the probe fails or times out.
        """
        alive, _ = await self._probe()
        return alive

    async def _probe(self) -> tuple[bool, BaseException | None]:
        """Probe outcome plus the exception that failed it, if any."""
        if not self._state.configured or not self._has_transport():
            return False, None
        try:
            with timed("ping_latency", backend=self.name, state=self._state.link.value):
                alive = bool(
                    await asyncio.wait_for(self._probe_ping(), self._probe_timeout_s)
                )
            return alive, None
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "BACKEND_PING_FAILED",
                "backend": self.name,
                "message": describe_error(exc),
            }, level="DEBUG")
            return False, exc

    async def refresh_topology(self, reason: str | None = None) -> None:
        """Re-run classification if READY and no run is in flight."""
        await self.handle_event(
            TopologyRefresh(
                event_type=EventType.TOPOLOGY_REFRESH,
                ts_ms=self._clock(),
                reason=reason,
            )
        )

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the supervisor pipeline.

        Processing steps:
        1. Pass the current state and event to the pure reducer
        2. Swap in the new supervisor state
        3. Execute all emitted commands sequentially

        This method is the *only* entry point for events affecting
        supervisor state.
        """
        async with self._lock:
            new_state, commands = reduce(self._state, event)
            self._state = new_state

            for cmd in commands:
                await self._execute_command(cmd)

    def emit_threadsafe(self, event: Event) -> None:
        """
        Deliver an event from a foreign thread (driver monitor callbacks).

        Dropped if the supervisor has no running loop yet or anymore.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(self.handle_event(event), loop)
        future.add_done_callback(self._log_dispatch_failure)

    def _log_dispatch_failure(self, future: concurrent.futures.Future[None]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            return
        log_event({
            "event_type": "BACKEND_EVENT_DISPATCH_FAILED",
            "backend": self.name,
            "exception": type(exc).__name__,
            "message": describe_error(exc),
        }, level="ERROR")

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event(cmd.event, level=cmd.level)

        elif isinstance(cmd, OpenTransport):
            self._attempt_task = asyncio.create_task(self._run_attempt(cmd.attempt))

        elif isinstance(cmd, ScheduleReconnect):
            self._schedule_reconnect(attempt=cmd.attempt, delay_ms=cmd.delay_ms)

        elif isinstance(cmd, CancelReconnect):
            self._cancel_timer(TIMER_RECONNECT)

        elif isinstance(cmd, StartClassification):
            self._start_classification(cmd.epoch)

        elif isinstance(cmd, CancelClassification):
            task = self._classify_task
            self._classify_task = None
            if task is not None and not task.done():
                task.cancel()

        elif isinstance(cmd, CloseTransport):
            await self._close_safely()

        else:
            log_event({
                "event_type": "COMMAND_NOT_IMPLEMENTED",
                "backend": self.name,
                "command_type": type(cmd).__name__,
            }, level="WARNING")

    async def _run_attempt(self, attempt: int) -> None:
        try:
            with timed("connect_attempt", backend=self.name, details={"attempt": attempt}):
                await asyncio.wait_for(self._open_transport(), self._connect_timeout_s)
        except asyncio.CancelledError:
            return
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._last_attempt_error = exc
            await self.handle_event(
                ConnectFailed(
                    event_type=EventType.CONNECT_FAILED,
                    ts_ms=self._clock(),
                    reason=describe_error(exc),
                    attempt=attempt,
                )
            )
            return

        self._last_attempt_error = None
        await self.handle_event(
            TransportReady(
                event_type=EventType.TRANSPORT_READY,
                ts_ms=self._clock(),
                source="connect",
            )
        )

    async def _close_safely(self) -> None:
        """Graceful close with a forced fallback; logs, never raises."""
        if not self._has_transport():
            return
        try:
            await asyncio.wait_for(
                self._close_transport(force=False), CLOSE_TIMEOUT_MS / 1000.0
            )
            log_event({
                "event_type": "BACKEND_DISCONNECTED_GRACEFULLY",
                "backend": self.name,
            })
            return
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "BACKEND_GRACEFUL_CLOSE_FAILED",
                "backend": self.name,
                "message": describe_error(exc),
            }, level="ERROR")

        try:
            await asyncio.wait_for(
                self._close_transport(force=True), CLOSE_TIMEOUT_MS / 1000.0
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "BACKEND_FORCED_CLOSE_FAILED",
                "backend": self.name,
                "message": describe_error(exc),
            }, level="ERROR")

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _start_classification(self, epoch: int) -> None:
        """Replace any in-flight run; results are tagged with epoch."""
        previous = self._classify_task
        if previous is not None and not previous.done():
            previous.cancel()

        async def _classification_task() -> None:
            try:
                with timed(
                    "topology_classification",
                    backend=self.name,
                    details={"epoch": epoch},
                ):
                    report = await asyncio.wait_for(
                        self._classify(), self._classify_timeout_s
                    )
            except asyncio.CancelledError:
                return
            except Exception as exc:  # pylint: disable=broad-exception-caught
                await self.handle_event(
                    ClassificationFailed(
                        event_type=EventType.CLASSIFICATION_FAILED,
                        ts_ms=self._clock(),
                        epoch=epoch,
                        reason=describe_error(exc),
                    )
                )
                return

            await self.handle_event(
                TopologyClassified(
                    event_type=EventType.TOPOLOGY_CLASSIFIED,
                    ts_ms=self._clock(),
                    epoch=epoch,
                    report=report,
                )
            )

        self._classify_task = asyncio.create_task(_classification_task())

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _schedule_reconnect(self, *, attempt: int, delay_ms: int) -> None:
        """
        Start or replace the reconnect timer.

        The timer re-enters handle_event() with RetryReady, maintaining
        the single event entry point invariant.
        """
        self._cancel_timer(TIMER_RECONNECT)

        async def _retry_task() -> None:
            try:
                await asyncio.sleep(delay_ms / 1000.0)
                await self.handle_event(
                    RetryReady(
                        event_type=EventType.RETRY_READY,
                        ts_ms=self._clock(),
                        attempt=attempt,
                    )
                )
            except asyncio.CancelledError:
                return

        self._timers[TIMER_RECONNECT] = asyncio.create_task(_retry_task())

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        task = self._timers.pop(timer_id, None)
        if task is not None and not task.done():
            task.cancel()

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _start_watch(self) -> None:
        if self._watch_task is None or self._watch_task.done():
            self._watch_task = asyncio.create_task(self._watch())

    async def _watch(self) -> None:
        """
        Periodic liveness check.

        READY + probe raised       -> TransportError (reason from the exception)
        READY + probe returned no  -> TransportClosed
        not READY + probe succeeds -> TransportReady(source="background")

        Keeps running after retries are exhausted; this is what lets a
        backend that comes back much later return to READY.
        """
        try:
            while not self._state.shutting_down:
                await asyncio.sleep(self._heartbeat_interval_s)

                link = self._state.link
                if link in (LinkState.UNINITIALIZED, LinkState.CONNECTING):
                    continue

                alive, exc = await self._probe()
                if link is LinkState.READY and exc is not None:
                    await self.handle_event(
                        TransportError(
                            event_type=EventType.TRANSPORT_ERROR,
                            ts_ms=self._clock(),
                            reason=describe_error(exc),
                        )
                    )
                elif link is LinkState.READY and not alive:
                    await self.handle_event(
                        TransportClosed(
                            event_type=EventType.TRANSPORT_CLOSED,
                            ts_ms=self._clock(),
                            reason="heartbeat failed",
                        )
                    )
                elif link is not LinkState.READY and alive:
                    await self.handle_event(
                        TransportReady(
                            event_type=EventType.TRANSPORT_READY,
                            ts_ms=self._clock(),
                            source="background",
                        )
                    )
        except asyncio.CancelledError:
            return

    @staticmethod
    async def _cancel_task(task: asyncio.Task[None] | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
