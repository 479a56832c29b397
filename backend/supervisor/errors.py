"""
Supervisor exception types.

Connectivity failures never escape a supervisor except through
BackendConnectionError, and only when the caller asked for it.
"""

from __future__ import annotations


class SupervisorError(Exception):
    """Base class for supervisor errors."""


class BackendConnectionError(SupervisorError):
    """Initial connect failed; a background retry is already scheduled."""

    def __init__(self, backend: str, reason: str) -> None:
        super().__init__(f"{backend}: {reason}")
        self.backend = backend
        self.reason = reason


class ClassificationError(SupervisorError):
    """A diagnostic probe failed for a reason other than 'unsupported'."""


class ProbeUnsupported(SupervisorError):
    """
    A diagnostic command is unknown, disabled or not permitted.

    Classifiers catch this and fall back to a coarser classification.
    """
