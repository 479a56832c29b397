"""
Pure supervisor reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (link state, event) pair is handled or explicitly ignored (logged).
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

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
from supervisor.enums.topology import Topology
from supervisor.events import (
    ClassificationFailed,
    ConnectFailed,
    ConnectRequested,
    Event,
    RetryReady,
    ShutdownRequested,
    TopologyClassified,
    TopologyRefresh,
    TransportClosed,
    TransportError,
    TransportReady,
)
from supervisor.retry import (
    begin_attempt,
    compute_delay_ms,
    finish_attempt,
    reset,
    should_retry,
)
from supervisor.state_dataclass import SupervisorState
from supervisor.status import StatusRecord


MSG_NOT_CONFIGURED = "not configured"
MSG_CONNECTING = "Connecting..."
MSG_CONNECTED = "Connected successfully"
MSG_RECONNECTED = "Reconnected successfully"
MSG_CONNECTION_ERROR = "Connection error"
MSG_DISCONNECTED = "Disconnected"
MSG_SHUTDOWN = "Disconnected (shutdown)"
MSG_RETRIES_EXHAUSTED = "Max reconnection attempts reached"
ERR_RETRIES_EXHAUSTED = "Failed to reconnect after maximum retries"


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: SupervisorState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
    *,
    level: str = "INFO",
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "backend": state.backend,
            "state": state.link.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "retry": {
                "current": state.retry.current_retry,
                "max": state.retry.max_retries,
                "reconnecting": state.retry.is_reconnecting,
            },
            "details": details or {},
        },
        level=level,
    )


def _ignore(
    state: SupervisorState,
    event: Event,
    reason: str,
) -> tuple[SupervisorState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignored", {"reason": reason}, level="DEBUG"),)


def _state_changed(
    before: SupervisorState,
    after: SupervisorState,
    event: Event,
    source: str,
) -> LogEvent:
    return _log(
        after,
        event,
        "state_changed",
        {
            "from_state": before.link.value,
            "to_state": after.link.value,
            "source": source,
        },
    )


def _clear_topology(status: StatusRecord) -> StatusRecord:
    return replace(
        status,
        topology=Topology.UNKNOWN,
        role=None,
        members=(),
        replica_set=None,
        confidence=None,
    )


def _update_status(status: StatusRecord, ts_ms: int, **changes: Any) -> StatusRecord:
    """
    Single mutation point for the status record.

    Stamps last_checked, bumps the mutation counter, and clears topology
    whenever the result is not connected.
    """
    updated = replace(
        status,
        **changes,
        last_checked_ms=ts_ms,
        connection_attempts=status.connection_attempts + 1,
    )
    if not updated.connected:
        updated = _clear_topology(updated)
    return updated


def _schedule_reconnect(
    state: SupervisorState,
    event: Event,
) -> tuple[SupervisorState, tuple[Command, ...]]:
    """
    Ask for the next reconnection attempt if policy allows.

    - No-op while another attempt is pending (isReconnecting guard).
    - Gives up once max_retries attempts were scheduled since the last READY.
    """
    if state.shutting_down:
        return state, ()

    if state.retry.is_reconnecting:
        return state, (
            _log(state, event, "reconnect_already_pending", level="DEBUG"),
        )

    if not should_retry(state.retry):
        given_up = replace(
            state,
            status=_update_status(
                state.status,
                event.ts_ms,
                connected=False,
                message=MSG_RETRIES_EXHAUSTED,
                last_error=ERR_RETRIES_EXHAUSTED,
            ),
        )
        return given_up, (
            _log(
                given_up,
                event,
                "retries_exhausted",
                {"max_retries": state.retry.max_retries},
                level="ERROR",
            ),
        )

    retry = begin_attempt(state.retry)
    delay_ms = compute_delay_ms(retry)
    new_state = replace(state, retry=retry)

    return new_state, (
        ScheduleReconnect(attempt=retry.current_retry, delay_ms=delay_ms),
        _log(
            new_state,
            event,
            "reconnect_scheduled",
            {"attempt": retry.current_retry, "delay_ms": delay_ms},
        ),
    )


def _leave_ready(
    state: SupervisorState,
    event: Event,
    *,
    link: LinkState,
    message: str,
    last_error: str | None,
    decision: str,
    level: str,
) -> tuple[SupervisorState, tuple[Command, ...]]:
    """Shared path for TransportError / TransportClosed."""
    new_state = replace(
        state,
        link=link,
        classifying=False,
        status=_update_status(
            state.status,
            event.ts_ms,
            connected=False,
            message=message,
            last_error=last_error,
        ),
    )

    cmds: list[Command] = []
    if state.classifying:
        cmds.append(CancelClassification())
    if state.link is not link:
        cmds.append(_state_changed(state, new_state, event, decision))
    cmds.append(_log(new_state, event, decision, {"reason": last_error}, level=level))

    new_state, retry_cmds = _schedule_reconnect(new_state, event)
    return new_state, tuple(cmds) + retry_cmds


# =============================================================================
# Reducer
# =============================================================================

def reduce(  # pylint: disable=too-many-return-statements,too-many-branches
    state: SupervisorState, event: Event
) -> tuple[SupervisorState, tuple[Command, ...]]:
    """
    Pure reducer for one backend's connection lifecycle.

    Given the current supervisor state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (link, event) pair is handled or explicitly ignored
    - Epoch-safe: ignores classification results from an earlier READY
    """

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------
    if isinstance(event, ShutdownRequested):
        if state.shutting_down:
            return _ignore(state, event, "already_shutting_down")

        new_state = replace(
            state,
            link=LinkState.DISCONNECTED,
            shutting_down=True,
            classifying=False,
            retry=finish_attempt(state.retry),
            status=_update_status(
                state.status,
                event.ts_ms,
                connected=False,
                message=MSG_SHUTDOWN if state.configured else state.status.message,
            ),
        )
        cmds: tuple[Command, ...] = (CancelReconnect(), CancelClassification())
        if state.configured:
            cmds += (CloseTransport(),)
        return new_state, cmds + (
            _state_changed(state, new_state, event, "shutdown"),
        )

    if state.shutting_down:
        return _ignore(state, event, "shutting_down")

    # ------------------------------------------------------------------
    # connect()
    # ------------------------------------------------------------------
    if isinstance(event, ConnectRequested):
        if not event.configured:
            new_state = replace(
                state,
                configured=False,
                status=_update_status(
                    state.status,
                    event.ts_ms,
                    connected=False,
                    message=MSG_NOT_CONFIGURED,
                    last_error=None,
                ),
            )
            return new_state, (
                _log(new_state, event, "not_configured"),
            )

        if state.link in (LinkState.CONNECTING, LinkState.READY):
            return _ignore(state, event, "already_connecting")

        new_state = replace(
            state,
            link=LinkState.CONNECTING,
            configured=True,
            status=replace(
                _update_status(
                    state.status,
                    event.ts_ms,
                    connected=False,
                    message=MSG_CONNECTING,
                ),
                transport_attempts=state.status.transport_attempts + 1,
            ),
        )
        return new_state, (
            _state_changed(state, new_state, event, "connect_requested"),
            OpenTransport(attempt=0),
        )

    if not state.configured:
        return _ignore(state, event, "not_configured")

    # ------------------------------------------------------------------
    # READY
    # ------------------------------------------------------------------
    if isinstance(event, TransportReady):
        if state.link is LinkState.READY:
            return _ignore(state, event, "already_ready")

        first = state.epoch == 0
        epoch = state.epoch + 1
        new_state = replace(
            state,
            link=LinkState.READY,
            retry=reset(state.retry),
            epoch=epoch,
            classifying=True,
            status=_update_status(
                state.status,
                event.ts_ms,
                connected=True,
                message=MSG_CONNECTED if first else MSG_RECONNECTED,
                last_error=None,
            ),
        )

        cmds = ()
        if state.retry.is_reconnecting:
            cmds += (CancelReconnect(),)
        if state.classifying:
            cmds += (CancelClassification(),)

        return new_state, cmds + (
            _state_changed(state, new_state, event, "transport_ready"),
            _log(new_state, event, "transport_ready", {"source": event.source}),
            StartClassification(epoch=epoch),
        )

    # ------------------------------------------------------------------
    # ERROR / DISCONNECTED
    # ------------------------------------------------------------------
    # While an attempt is in flight its own outcome decides the transition.
    if isinstance(event, TransportError):
        if state.link in (LinkState.UNINITIALIZED, LinkState.CONNECTING):
            return _ignore(state, event, "attempt_pending")
        return _leave_ready(
            state,
            event,
            link=LinkState.ERROR,
            message=MSG_CONNECTION_ERROR,
            last_error=event.reason,
            decision="transport_error",
            level="ERROR",
        )

    if isinstance(event, TransportClosed):
        if state.link in (LinkState.UNINITIALIZED, LinkState.CONNECTING):
            return _ignore(state, event, "attempt_pending")
        if state.link is LinkState.DISCONNECTED and state.retry.is_reconnecting:
            return _ignore(state, event, "already_disconnected")
        return _leave_ready(
            state,
            event,
            link=LinkState.DISCONNECTED,
            message=MSG_DISCONNECTED,
            last_error=event.reason or state.status.last_error,
            decision="transport_closed",
            level="WARNING",
        )

    if isinstance(event, ConnectFailed):
        if state.link is LinkState.READY:
            return _ignore(state, event, "stale_attempt_failure")

        new_state = replace(
            state,
            link=LinkState.ERROR,
            retry=finish_attempt(state.retry),
            status=_update_status(
                state.status,
                event.ts_ms,
                connected=False,
                message=event.reason,
                last_error=event.reason,
            ),
        )
        cmds = (
            _state_changed(state, new_state, event, "connect_failed"),
            _log(
                new_state,
                event,
                "connect_failed",
                {"attempt": event.attempt, "reason": event.reason},
                level="ERROR",
            ),
        )
        new_state, retry_cmds = _schedule_reconnect(new_state, event)
        return new_state, cmds + retry_cmds

    # ------------------------------------------------------------------
    # Retry timer
    # ------------------------------------------------------------------
    if isinstance(event, RetryReady):
        if state.link is LinkState.READY:
            return _ignore(state, event, "already_ready")
        if (
            not state.retry.is_reconnecting
            or event.attempt != state.retry.current_retry
        ):
            return _ignore(state, event, "stale_retry_timer")

        new_state = replace(
            state,
            link=LinkState.CONNECTING,
            status=replace(
                _update_status(
                    state.status,
                    event.ts_ms,
                    connected=False,
                    message=(
                        f"Reconnecting (attempt {event.attempt}/"
                        f"{state.retry.max_retries})..."
                    ),
                ),
                transport_attempts=state.status.transport_attempts + 1,
            ),
        )
        return new_state, (
            _state_changed(state, new_state, event, "retry_ready"),
            OpenTransport(attempt=event.attempt),
        )

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------
    if isinstance(event, TopologyRefresh):
        if state.link is not LinkState.READY:
            return _ignore(state, event, "not_ready")
        if state.classifying:
            return _ignore(state, event, "classification_in_flight")

        new_state = replace(state, classifying=True)
        return new_state, (
            _log(new_state, event, "topology_refresh", {"reason": event.reason}),
            StartClassification(epoch=state.epoch),
        )

    if isinstance(event, TopologyClassified):
        if event.epoch != state.epoch or state.link is not LinkState.READY:
            return _ignore(state, event, "stale_classification")
        if event.report is None:
            return replace(state, classifying=False), (
                _log(state, event, "classification_empty", level="WARNING"),
            )

        report = event.report
        new_state = replace(
            state,
            classifying=False,
            status=_update_status(
                state.status,
                event.ts_ms,
                topology=report.topology,
                role=report.role,
                members=report.members,
                replica_set=report.replica_set,
                confidence=report.confidence,
            ),
        )
        return new_state, (
            _log(
                new_state,
                event,
                "topology_classified",
                {
                    "topology": report.topology.value,
                    "role": report.role,
                    "members": len(report.members),
                    "confidence": report.confidence.value,
                },
            ),
        )

    if isinstance(event, ClassificationFailed):
        if event.epoch != state.epoch:
            return _ignore(state, event, "stale_classification")

        new_state = replace(state, classifying=False)
        return new_state, (
            _log(
                new_state,
                event,
                "classification_failed",
                {"reason": event.reason},
                level="WARNING",
            ),
        )

    return _ignore(state, event, "unhandled_event")
