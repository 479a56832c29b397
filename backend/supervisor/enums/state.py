"""
Connection lifecycle state enumeration.

Rules:
- This enum defines ONLY the link states of one backend connection.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class LinkState(str, Enum):
    """
    Lifecycle of a single supervised backend connection.

    UNINITIALIZED -> CONNECTING -> READY -> (ERROR | DISCONNECTED)
    -> CONNECTING (retry) -> ...

    There is no terminal state; a supervisor whose retries are
    exhausted still returns to READY on a background reconnection.
    """

    UNINITIALIZED = "UNINITIALIZED"
    CONNECTING = "CONNECTING"
    READY = "READY"
    ERROR = "ERROR"
    DISCONNECTED = "DISCONNECTED"
