"""
DEFAULTS-AS-CONSTANTS
---------------------
Single source of truth for all behavioral constants in the service.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Environment overrides are resolved in config.py, never here.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Application identity
# =============================================================================

APP_NAME_DEFAULT: Final[str] = "MERN DevOps Demo"
APP_VERSION_DEFAULT: Final[str] = "2.0.0"
ENV_DEFAULT: Final[str] = "development"

HTTP_HOST_DEFAULT: Final[str] = "0.0.0.0"
HTTP_PORT_DEFAULT: Final[int] = 5000

# =============================================================================
# Backends
# =============================================================================

MONGO_URI_DEFAULT: Final[str] = "mongodb://mongodb:27017/devops-demo"
REDIS_SENTINEL_MASTER_DEFAULT: Final[str] = "mymaster"
REDIS_PORT_DEFAULT: Final[int] = 6379
REDIS_SENTINEL_PORT_DEFAULT: Final[int] = 26379

# =============================================================================
# Retry / backoff
# =============================================================================
# delay = min(attempt * base, cap)

MAX_RETRIES_DEFAULT: Final[int] = 10
RETRY_BASE_DELAY_MS_DEFAULT: Final[int] = 5_000
RETRY_DELAY_CAP_MS_DEFAULT: Final[int] = 30_000

# =============================================================================
# Timeouts
# =============================================================================

CONNECT_TIMEOUT_MS: Final[int] = 10_000
SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5_000
SOCKET_TIMEOUT_MS: Final[int] = 45_000

# Upper bound for one diagnostic command or liveness probe
PROBE_TIMEOUT_MS: Final[int] = 5_000

# Upper bound for a whole classification run (several sequential probes)
CLASSIFY_TIMEOUT_MS: Final[int] = 15_000

# Close of a single transport during orderly shutdown
CLOSE_TIMEOUT_MS: Final[int] = 5_000

# disconnect_all() hard limit before the process exits anyway
SHUTDOWN_TIMEOUT_MS_DEFAULT: Final[int] = 10_000

# =============================================================================
# Heartbeat (background reconnection detection)
# =============================================================================

HEARTBEAT_INTERVAL_MS: Final[int] = 5_000

# =============================================================================
# MongoDB pool options
# =============================================================================

MONGO_MAX_POOL_SIZE: Final[int] = 10
MONGO_MIN_POOL_SIZE: Final[int] = 2
MONGO_MAX_IDLE_TIME_MS: Final[int] = 30_000

# Server error codes
MONGO_CODE_COMMAND_NOT_FOUND: Final[int] = 59
MONGO_CODE_NO_REPLICATION_ENABLED: Final[int] = 76
MONGO_CODE_UNAUTHORIZED: Final[int] = 13

# =============================================================================
# Redis
# =============================================================================

REDIS_HEALTH_CHECK_INTERVAL_S: Final[int] = 30
