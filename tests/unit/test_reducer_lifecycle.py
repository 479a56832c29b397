# pylint: disable=missing-module-docstring,missing-function-docstring
from dataclasses import replace

from config import RetryConfig
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
from supervisor.enums.topology import Confidence, Topology
from supervisor.events import (
    ClassificationFailed,
    ConnectFailed,
    ConnectRequested,
    EventType,
    RetryReady,
    ShutdownRequested,
    TopologyClassified,
    TopologyRefresh,
    TransportClosed,
    TransportError,
    TransportReady,
)
from supervisor.reducer import (
    ERR_RETRIES_EXHAUSTED,
    MSG_CONNECTED,
    MSG_NOT_CONFIGURED,
    MSG_RECONNECTED,
    MSG_RETRIES_EXHAUSTED,
    reduce,
)
from supervisor.retry import RetryState
from supervisor.state_dataclass import SupervisorState
from supervisor.status import MemberInfo, TopologyReport


# ---------------------------------------------------------------------
# Event helpers (mirror runtime construction)
# ---------------------------------------------------------------------

def connect_requested(ts_ms: int = 0, configured: bool = True) -> ConnectRequested:
    return ConnectRequested(
        event_type=EventType.CONNECT_REQUESTED, ts_ms=ts_ms, configured=configured
    )


def ready(ts_ms: int = 0, source: str = "connect") -> TransportReady:
    return TransportReady(event_type=EventType.TRANSPORT_READY, ts_ms=ts_ms, source=source)


def closed(ts_ms: int = 0) -> TransportClosed:
    return TransportClosed(event_type=EventType.TRANSPORT_CLOSED, ts_ms=ts_ms, reason="gone")


def error(ts_ms: int = 0) -> TransportError:
    return TransportError(event_type=EventType.TRANSPORT_ERROR, ts_ms=ts_ms, reason="boom")


def connect_failed(attempt: int, ts_ms: int = 0) -> ConnectFailed:
    return ConnectFailed(
        event_type=EventType.CONNECT_FAILED, ts_ms=ts_ms, reason="refused", attempt=attempt
    )


def retry_ready(attempt: int, ts_ms: int = 0) -> RetryReady:
    return RetryReady(event_type=EventType.RETRY_READY, ts_ms=ts_ms, attempt=attempt)


def classified(epoch: int, report: TopologyReport) -> TopologyClassified:
    return TopologyClassified(
        event_type=EventType.TOPOLOGY_CLASSIFIED, ts_ms=0, epoch=epoch, report=report
    )


def shutdown() -> ShutdownRequested:
    return ShutdownRequested(event_type=EventType.SHUTDOWN_REQUESTED, ts_ms=0)


REPLICATED = TopologyReport(
    topology=Topology.REPLICATED,
    role="primary",
    members=(MemberInfo(address="a:27017", role="primary", health="up"),),
    replica_set="rs0",
)


def fresh(max_retries: int = 3) -> SupervisorState:
    return SupervisorState(
        backend="mongodb",
        retry=RetryState.from_config(RetryConfig(max_retries=max_retries)),
    )


def of_type(commands: tuple[Command, ...], cls: type) -> list[Command]:
    return [c for c in commands if isinstance(c, cls)]


def ready_state() -> SupervisorState:
    state, _ = reduce(fresh(), connect_requested())
    state, _ = reduce(state, ready())
    return state


# ---------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------

def test_connect_requested_opens_transport():
    state, commands = reduce(fresh(), connect_requested(ts_ms=5))

    assert state.link is LinkState.CONNECTING
    assert state.configured
    assert state.status.transport_attempts == 1
    assert state.status.last_checked_ms == 5
    assert of_type(commands, OpenTransport) == [OpenTransport(attempt=0)]


def test_unconfigured_backend_is_not_an_error():
    state, commands = reduce(fresh(), connect_requested(configured=False))

    assert state.link is LinkState.UNINITIALIZED
    assert not state.configured
    assert state.status.message == MSG_NOT_CONFIGURED
    assert not state.status.connected
    assert state.status.last_error is None
    assert not of_type(commands, OpenTransport)

    # Nothing but shutdown has any effect afterwards
    after, cmds = reduce(state, ready())
    assert after == state
    assert all(isinstance(c, LogEvent) for c in cmds)


def test_ready_starts_classification_and_resets_retry():
    state, _ = reduce(fresh(), connect_requested())
    state = replace(state, epoch=1, retry=replace(state.retry, current_retry=2))

    state, commands = reduce(state, ready())

    assert state.link is LinkState.READY
    assert state.status.connected
    assert state.status.message == MSG_RECONNECTED
    assert state.retry.current_retry == 0
    assert state.epoch == 2
    assert state.classifying
    assert of_type(commands, StartClassification) == [StartClassification(epoch=2)]


def test_first_ready_reports_connected_message():
    assert ready_state().status.message == MSG_CONNECTED


def test_driver_reported_first_ready_is_not_a_reconnect():
    state, _ = reduce(fresh(), connect_requested())
    state, _ = reduce(state, ready(source="driver"))
    assert state.status.message == MSG_CONNECTED

    # The attempt's own confirmation arrives second and changes nothing
    after, _ = reduce(state, ready(source="connect"))
    assert after == state


def test_ready_after_retries_exhausted_still_reads_connected_first_time():
    state, _ = reduce(fresh(), connect_requested())
    state = replace(state, retry=replace(state.retry, current_retry=3))
    state, _ = reduce(state, ready(source="background"))
    assert state.status.message == MSG_CONNECTED

    state, _ = reduce(state, closed())
    state, _ = reduce(state, ready(source="background"))
    assert state.status.message == MSG_RECONNECTED


def test_connect_failure_schedules_linear_backoff():
    state, _ = reduce(fresh(), connect_requested())
    state, commands = reduce(state, connect_failed(attempt=0))

    assert state.link is LinkState.ERROR
    assert state.status.last_error == "refused"
    assert state.retry.is_reconnecting
    assert of_type(commands, ScheduleReconnect) == [ScheduleReconnect(attempt=1, delay_ms=5000)]


def test_retry_timer_opens_next_attempt():
    state, _ = reduce(fresh(), connect_requested())
    state, _ = reduce(state, connect_failed(attempt=0))

    state, commands = reduce(state, retry_ready(attempt=1))

    assert state.link is LinkState.CONNECTING
    assert state.status.transport_attempts == 2
    assert of_type(commands, OpenTransport) == [OpenTransport(attempt=1)]


def test_stale_retry_timer_is_ignored():
    state, _ = reduce(fresh(), connect_requested())
    state, _ = reduce(state, connect_failed(attempt=0))

    after, commands = reduce(state, retry_ready(attempt=7))

    assert after == state
    assert not of_type(commands, OpenTransport)


def test_max_retries_bounds_scheduled_attempts():
    state, _ = reduce(fresh(max_retries=2), connect_requested())
    state, commands = reduce(state, connect_failed(attempt=0))
    scheduled = of_type(commands, ScheduleReconnect)

    while scheduled:
        attempt = scheduled[0].attempt
        state, _ = reduce(state, retry_ready(attempt=attempt))
        state, commands = reduce(state, connect_failed(attempt=attempt))
        scheduled = of_type(commands, ScheduleReconnect)

    assert state.retry.current_retry == 2
    assert state.status.message == MSG_RETRIES_EXHAUSTED
    assert state.status.last_error == ERR_RETRIES_EXHAUSTED

    # Background reconnection still brings it back
    state, _ = reduce(state, ready(source="background"))
    assert state.status.connected
    assert state.retry.current_retry == 0


def test_disconnect_clears_topology_and_schedules_once():
    state = ready_state()
    state, _ = reduce(state, classified(state.epoch, REPLICATED))
    assert state.status.topology is Topology.REPLICATED

    state, commands = reduce(state, closed())

    assert state.link is LinkState.DISCONNECTED
    assert state.status.topology is Topology.UNKNOWN
    assert state.status.members == ()
    assert state.status.role is None
    assert state.status.replica_set is None
    assert len(of_type(commands, ScheduleReconnect)) == 1

    # Repeated drop while a retry is pending: no second loop
    again, commands = reduce(state, closed())
    assert not of_type(commands, ScheduleReconnect)
    assert again.retry == state.retry


def test_error_while_reconnecting_does_not_schedule_again():
    state = ready_state()
    state, _ = reduce(state, error())
    assert state.link is LinkState.ERROR

    state, commands = reduce(state, error())
    assert not of_type(commands, ScheduleReconnect)


def test_transport_events_ignored_while_connecting():
    state, _ = reduce(fresh(), connect_requested())

    after, _ = reduce(state, closed())
    assert after == state


def test_ready_cancels_pending_reconnect():
    state = ready_state()
    state, _ = reduce(state, closed())

    state, commands = reduce(state, ready(source="driver"))

    assert of_type(commands, CancelReconnect)
    assert state.retry.current_retry == 0
    assert not state.retry.is_reconnecting


def test_stale_classification_is_discarded():
    state = ready_state()
    old_epoch = state.epoch
    state, _ = reduce(state, closed())
    state, _ = reduce(state, ready(source="background"))

    after, _ = reduce(state, classified(old_epoch, REPLICATED))

    assert after.status.topology is Topology.UNKNOWN


def test_classification_result_populates_status():
    state = ready_state()
    before = state.status.connection_attempts

    state, _ = reduce(state, classified(state.epoch, REPLICATED))

    assert not state.classifying
    assert state.status.topology is Topology.REPLICATED
    assert state.status.replica_set == "rs0"
    assert state.status.confidence is Confidence.PROBED
    assert state.status.connection_attempts == before + 1


def test_classification_failure_keeps_unknown_topology():
    state = ready_state()
    state, commands = reduce(
        state,
        ClassificationFailed(
            event_type=EventType.CLASSIFICATION_FAILED, ts_ms=0, epoch=state.epoch, reason="timeout"
        ),
    )

    assert not state.classifying
    assert state.status.topology is Topology.UNKNOWN
    assert state.status.connected
    assert [c.level for c in of_type(commands, LogEvent)] == ["WARNING"]


def test_topology_refresh_only_when_idle_and_ready():
    refresh = TopologyRefresh(event_type=EventType.TOPOLOGY_REFRESH, ts_ms=0, reason="test")
    state = ready_state()

    _, commands = reduce(state, refresh)
    assert not of_type(commands, StartClassification)

    state, _ = reduce(state, classified(state.epoch, REPLICATED))
    state, commands = reduce(state, refresh)
    assert of_type(commands, StartClassification) == [StartClassification(epoch=state.epoch)]


def test_shutdown_closes_and_suppresses_retries():
    state = ready_state()

    state, commands = reduce(state, shutdown())

    assert state.shutting_down
    assert state.link is LinkState.DISCONNECTED
    assert of_type(commands, CloseTransport)
    assert of_type(commands, CancelReconnect)
    assert of_type(commands, CancelClassification)

    after, commands = reduce(state, connect_failed(attempt=0))
    assert after == state
    assert not of_type(commands, ScheduleReconnect)


def test_connection_attempts_never_decrease():
    state = fresh()
    seen = [state.status.connection_attempts]
    for event in (connect_requested(), connect_failed(0), retry_ready(1), ready(), closed(), ready()):
        state, _ = reduce(state, event)
        seen.append(state.status.connection_attempts)

    assert seen == sorted(seen)
