"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- Leveled: events below the configured level are dropped
- No side effects beyond logging
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


LEVELS: dict[str, int] = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
}

_min_level: int = LEVELS["INFO"]
_json_lines: bool = True


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def configure(*, level: str = "INFO", json_lines: bool = True) -> None:
    """
    Set the minimum level and output format.

    Unknown level names fall back to INFO.
    """
    global _min_level, _json_lines  # pylint: disable=global-statement
    _min_level = LEVELS.get(level.upper(), LEVELS["INFO"])
    _json_lines = json_lines


def log_event(event: Mapping[str, Any], *, level: str = "INFO") -> None:
    """
    Write a single log event to stdout.

    The caller supplies the event dict (event_type, backend, details...).

    This function:
    - Adds `level`, and `ts_ms` if missing
    - Serializes to JSON (or a plain line when JSON logs are disabled)
    - Writes exactly one line
    - Never raises
    """
    if LEVELS.get(level, LEVELS["INFO"]) < _min_level:
        return

    payload: dict[str, Any] = {"level": level, **event}
    payload.setdefault("ts_ms", int(time.time() * 1000))

    if not _json_lines:
        _print(_plain_line(payload))
        return

    try:
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never raise
        fallback: dict[str, Any] = {
            "level": level,
            "ts_ms": payload.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)


def _plain_line(payload: Mapping[str, Any]) -> str:
    head = f"{payload.get('level')} {payload.get('event_type', '-')}"
    rest = " ".join(
        f"{k}={v}"
        for k, v in payload.items()
        if k not in ("level", "event_type", "ts_ms")
    )
    return f"{head} {rest}".rstrip()
