"""
Authoritative supervisor state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from config import RetryConfig
from supervisor.enums.state import LinkState
from supervisor.retry import RetryState
from supervisor.status import StatusRecord


@dataclass(frozen=True)
class SupervisorState:
    """Immutable snapshot of all supervisor-owned state for one backend."""

    backend: str

    retry: RetryState = field(
        default_factory=lambda: RetryState.from_config(RetryConfig())
    )

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    link: LinkState = LinkState.UNINITIALIZED
    status: StatusRecord = field(default_factory=StatusRecord)

    # False until connect() is called with a configuration
    configured: bool = False

    # Set by ShutdownRequested; suppresses reconnection scheduling
    shutting_down: bool = False

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------
    # Bumped on every entry into READY; stale results carry an older epoch
    epoch: int = 0

    # True while a classifier run is in flight (at most one per backend)
    classifying: bool = False
