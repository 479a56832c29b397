"""
Reconnection retry policy.

Purpose:
- Centralize backoff and give-up rules
- Keep the reducer pure
- Allow the runtime to make deterministic scheduling decisions

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass, replace

from config import RetryConfig


# =============================================================================
# Retry State
# =============================================================================

@dataclass(frozen=True)
class RetryState:
    """
    Immutable reconnection bookkeeping for one backend.

    Semantics:
    - current_retry == 0: no reconnection attempt since the last READY.
    - current_retry == N: the Nth scheduled attempt is pending or done.
    - is_reconnecting: an attempt is scheduled or in flight; further
      disconnect/error events must not schedule another one.
    - Once current_retry >= max_retries the supervisor stops scheduling.
      Background reconnection may still deliver READY, which resets.
    """

    max_retries: int
    base_delay_ms: int
    cap_delay_ms: int
    current_retry: int = 0
    is_reconnecting: bool = False

    @staticmethod
    def from_config(cfg: RetryConfig) -> RetryState:
        return RetryState(
            max_retries=cfg.max_retries,
            base_delay_ms=cfg.base_delay_ms,
            cap_delay_ms=cfg.cap_delay_ms,
        )

    @property
    def exhausted(self) -> bool:
        return self.current_retry >= self.max_retries

    def to_dict(self) -> dict[str, int | bool]:
        return {
            "currentRetry": self.current_retry,
            "maxRetries": self.max_retries,
            "baseDelayMs": self.base_delay_ms,
            "isReconnecting": self.is_reconnecting,
        }


# =============================================================================
# Policy
# =============================================================================

def should_retry(state: RetryState) -> bool:
    """
    Returns True if another reconnection attempt may be scheduled.

    Give-up condition: the next attempt number would exceed max_retries,
    so at most max_retries attempts are ever scheduled between READYs.
    """
    return state.current_retry + 1 <= state.max_retries


def compute_delay_ms(state: RetryState, attempt: int | None = None) -> int:
    """
    Linear backoff capped at cap_delay_ms.

    delay = min(attempt * base_delay_ms, cap_delay_ms)
    """
    n = state.current_retry if attempt is None else attempt
    return min(max(n, 0) * state.base_delay_ms, state.cap_delay_ms)


def begin_attempt(state: RetryState) -> RetryState:
    """Claim the next attempt slot and raise the reconnecting guard."""
    return replace(
        state,
        current_retry=state.current_retry + 1,
        is_reconnecting=True,
    )


def finish_attempt(state: RetryState) -> RetryState:
    """Drop the reconnecting guard; the attempt counter is kept."""
    return replace(state, is_reconnecting=False)


def reset(state: RetryState) -> RetryState:
    """Fresh counters after a successful READY transition."""
    return replace(state, current_retry=0, is_reconnecting=False)
