"""
Event definitions for the supervisor reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Timestamps are supplied by the event source (runtime, driver bridge,
or a fake clock in tests) so the reducer stays deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from supervisor.status import TopologyReport


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (link state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Lifecycle requests
    # ------------------------------------------------------------------
    CONNECT_REQUESTED = "CONNECT_REQUESTED"
    SHUTDOWN_REQUESTED = "SHUTDOWN_REQUESTED"

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    TRANSPORT_READY = "TRANSPORT_READY"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    TRANSPORT_CLOSED = "TRANSPORT_CLOSED"
    CONNECT_FAILED = "CONNECT_FAILED"

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------
    RETRY_READY = "RETRY_READY"

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------
    TOPOLOGY_REFRESH = "TOPOLOGY_REFRESH"
    TOPOLOGY_CLASSIFIED = "TOPOLOGY_CLASSIFIED"
    CLASSIFICATION_FAILED = "CLASSIFICATION_FAILED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Lifecycle Events
# =============================================================================

@dataclass(frozen=True)
class ConnectRequested(Event):
    """connect() was called; configured=False marks an optional, absent backend."""
    configured: bool = True


@dataclass(frozen=True)
class ShutdownRequested(Event):
    """Orderly shutdown; no further reconnection may be scheduled."""


# =============================================================================
# Transport Events
# =============================================================================

@dataclass(frozen=True)
class TransportReady(Event):
    """
    Handshake confirmed.

    source:
        "connect"     - an attempt issued by the supervisor succeeded
        "background"  - heartbeat found the transport alive again
        "driver"      - the driver's own monitor reported a usable server
    """
    source: str = "connect"


@dataclass(frozen=True)
class TransportError(Event):
    """The transport reported an error on an established connection."""
    reason: str = ""


@dataclass(frozen=True)
class TransportClosed(Event):
    """The connection was lost or closed."""
    reason: str | None = None


@dataclass(frozen=True)
class ConnectFailed(Event):
    """A connect attempt (initial or scheduled) failed."""
    reason: str = ""
    attempt: int = 0


# =============================================================================
# Retry Events
# =============================================================================

@dataclass(frozen=True)
class RetryReady(Event):
    """The reconnect backoff timer expired."""
    attempt: int = 0


# =============================================================================
# Topology Events
# =============================================================================

@dataclass(frozen=True)
class TopologyRefresh(Event):
    """Request a re-classification (driver saw the topology change)."""
    reason: str | None = None


@dataclass(frozen=True)
class TopologyClassified(Event):
    """Classifier finished; epoch must match the READY it was started for."""
    epoch: int = 0
    report: TopologyReport | None = None


@dataclass(frozen=True)
class ClassificationFailed(Event):
    """Classifier raised or timed out."""
    epoch: int = 0
    reason: str = ""
