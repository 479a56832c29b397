"""
Explicit registry of backend supervisors.

Constructed once at startup and passed by reference to whatever needs
status (aggregator, HTTP layer). There is no module-level singleton.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterator, Mapping, Sequence

from observability.logger import log_event
from supervisor.runtime import BackendSnapshot, Supervisor


class BackendRegistry:
    """Ordered collection of supervisors, keyed by backend name."""

    def __init__(self, supervisors: Sequence[Supervisor]) -> None:
        self._supervisors: dict[str, Supervisor] = {}
        for sup in supervisors:
            if sup.name in self._supervisors:
                raise ValueError(f"duplicate backend name: {sup.name}")
            self._supervisors[sup.name] = sup

    def __iter__(self) -> Iterator[Supervisor]:
        return iter(self._supervisors.values())

    def __len__(self) -> int:
        return len(self._supervisors)

    def get(self, name: str) -> Supervisor | None:
        return self._supervisors.get(name)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._supervisors)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect_all(self, configs: Mapping[str, Any]) -> None:
        """
        Connect every backend concurrently.

        Backends missing from configs are treated as not configured.
        Never raises: each supervisor records its own failure.
        """
        results = await asyncio.gather(
            *(sup.connect(configs.get(sup.name)) for sup in self),
            return_exceptions=True,
        )
        for sup, result in zip(self, results):
            if isinstance(result, BaseException):
                log_event({
                    "event_type": "BACKEND_CONNECT_RAISED",
                    "backend": sup.name,
                    "exception": type(result).__name__,
                    "message": str(result),
                }, level="ERROR")

    async def disconnect_all(self, timeout_s: float) -> bool:
        """
        Disconnect every backend, giving up after timeout_s.

        Returns True if every supervisor finished within the timeout.
        """
        try:
            await asyncio.wait_for(
                asyncio.gather(*(sup.disconnect() for sup in self)),
                timeout_s,
            )
        except asyncio.TimeoutError:
            log_event({
                "event_type": "FORCED_SHUTDOWN_AFTER_TIMEOUT",
                "timeout_s": timeout_s,
            }, level="ERROR")
            return False
        return True

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def snapshots(self) -> tuple[BackendSnapshot, ...]:
        return tuple(sup.snapshot() for sup in self)

    async def ping_all(self) -> dict[str, bool]:
        results = await asyncio.gather(*(sup.ping() for sup in self))
        return dict(zip(self.names, results))
