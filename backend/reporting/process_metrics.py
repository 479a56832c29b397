"""
Process-level facts for /api/status: uptime and memory.
"""

from __future__ import annotations

from typing import Any

import psutil


_MB = 1024 * 1024


def format_uptime(uptime_ms: int) -> dict[str, Any]:
    """
    Uptime as milliseconds, whole seconds and "Nd Nh Nm Ns".

    Negative inputs (clock skew) are clamped to zero.
    """
    uptime_ms = max(int(uptime_ms), 0)
    seconds = uptime_ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    return {
        "milliseconds": uptime_ms,
        "seconds": seconds,
        "formatted": f"{days}d {hours % 24}h {minutes % 60}m {seconds % 60}s",
    }


def memory_usage(process: psutil.Process | None = None) -> dict[str, Any]:
    proc = process or psutil.Process()
    info = proc.memory_info()
    return {
        "rss": info.rss,
        "vms": info.vms,
        "rssMb": round(info.rss / _MB, 2),
        "vmsMb": round(info.vms / _MB, 2),
    }
