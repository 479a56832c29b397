"""
Side-effect command definitions for the supervisor.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging and runtime dispatch.
    """

    # Transport
    OPEN_TRANSPORT = "OPEN_TRANSPORT"
    CLOSE_TRANSPORT = "CLOSE_TRANSPORT"

    # Retry timer
    SCHEDULE_RECONNECT = "SCHEDULE_RECONNECT"
    CANCEL_RECONNECT = "CANCEL_RECONNECT"

    # Topology
    START_CLASSIFICATION = "START_CLASSIFICATION"
    CANCEL_CLASSIFICATION = "CANCEL_CLASSIFICATION"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Transport Commands
# =============================================================================

@dataclass(frozen=True)
class OpenTransport(Command):
    """
    Request a connect attempt.

    attempt == 0 is the initial connect; N >= 1 is the Nth reconnection.
    The runtime must answer with TransportReady or ConnectFailed.
    """
    attempt: int
    command_type: CommandType = CommandType.OPEN_TRANSPORT


@dataclass(frozen=True)
class CloseTransport(Command):
    """Graceful close, falling back to a forced close."""
    command_type: CommandType = CommandType.CLOSE_TRANSPORT


# =============================================================================
# Retry Commands
# =============================================================================

@dataclass(frozen=True)
class ScheduleReconnect(Command):
    """
    Request that the runtime emit RetryReady(attempt) after delay_ms.

    Reducer remains pure: it decides *that* a retry should happen,
    runtime performs the waiting.
    """
    attempt: int
    delay_ms: int
    command_type: CommandType = CommandType.SCHEDULE_RECONNECT


@dataclass(frozen=True)
class CancelReconnect(Command):
    """Drop a pending reconnect timer, if any."""
    command_type: CommandType = CommandType.CANCEL_RECONNECT


# =============================================================================
# Topology Commands
# =============================================================================

@dataclass(frozen=True)
class StartClassification(Command):
    """Run the topology classifier once; results are tagged with epoch."""
    epoch: int
    command_type: CommandType = CommandType.START_CLASSIFICATION


@dataclass(frozen=True)
class CancelClassification(Command):
    """Cancel an in-flight classification run, if any."""
    command_type: CommandType = CommandType.CANCEL_CLASSIFICATION


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    level: str = "INFO"
    command_type: CommandType = CommandType.LOG_EVENT
