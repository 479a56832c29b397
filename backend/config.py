"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide typed, immutable config objects per backend

Non-responsibilities:
- No connection logic
- No behavioral constants (see defaults.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from defaults import (
    APP_NAME_DEFAULT,
    APP_VERSION_DEFAULT,
    ENV_DEFAULT,
    HTTP_HOST_DEFAULT,
    HTTP_PORT_DEFAULT,
    MAX_RETRIES_DEFAULT,
    MONGO_URI_DEFAULT,
    REDIS_PORT_DEFAULT,
    REDIS_SENTINEL_MASTER_DEFAULT,
    REDIS_SENTINEL_PORT_DEFAULT,
    RETRY_BASE_DELAY_MS_DEFAULT,
    RETRY_DELAY_CAP_MS_DEFAULT,
    SHUTDOWN_TIMEOUT_MS_DEFAULT,
)


class RedisTransportMode(str, Enum):
    """
    How the Redis client is constructed.

    Selection precedence is fixed: CLUSTER > SENTINEL > STANDARD.
    """

    CLUSTER = "cluster"
    SENTINEL = "sentinel"
    STANDARD = "standard"


@dataclass(frozen=True)
class HostPort:
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class RetryConfig:
    """Reconnection ceiling and linear backoff parameters."""

    max_retries: int = MAX_RETRIES_DEFAULT
    base_delay_ms: int = RETRY_BASE_DELAY_MS_DEFAULT
    cap_delay_ms: int = RETRY_DELAY_CAP_MS_DEFAULT


@dataclass(frozen=True)
class MongoConfig:
    uri: str
    retry: RetryConfig = field(default_factory=RetryConfig)


@dataclass(frozen=True)
class RedisConfig:
    """
    Redis connection settings.

    Exactly one transport is used even if several sources are set;
    see transport_mode for the precedence.
    """

    uri: str | None = None
    cluster_nodes: tuple[HostPort, ...] = ()
    sentinel_hosts: tuple[HostPort, ...] = ()
    sentinel_master: str = REDIS_SENTINEL_MASTER_DEFAULT
    retry: RetryConfig = field(default_factory=RetryConfig)

    @property
    def transport_mode(self) -> RedisTransportMode:
        if self.cluster_nodes:
            return RedisTransportMode.CLUSTER
        if self.sentinel_hosts:
            return RedisTransportMode.SENTINEL
        return RedisTransportMode.STANDARD


@dataclass(frozen=True)
class DeploymentInfo:
    """Free-form deployment facts echoed by /api/architecture."""

    platform: str = "Docker Compose"
    orchestration: str = "Docker Compose"
    load_balancer: str = "none"
    frontend_replicas: int = 1
    backend_replicas: int = 1


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the backend registry and the HTTP layer.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = ENV_DEFAULT
    log_level: str = "INFO"
    enable_json_logs: bool = True

    app_name: str = APP_NAME_DEFAULT
    app_version: str = APP_VERSION_DEFAULT

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    host: str = HTTP_HOST_DEFAULT
    port: int = HTTP_PORT_DEFAULT
    cors_origin: str = "*"
    shutdown_timeout_ms: int = SHUTDOWN_TIMEOUT_MS_DEFAULT

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    # Mandatory; always configured (falls back to MONGO_URI_DEFAULT)
    mongo: MongoConfig = field(
        default_factory=lambda: MongoConfig(uri=MONGO_URI_DEFAULT)
    )

    # Optional; None means "not configured"
    redis: RedisConfig | None = None

    deployment: DeploymentInfo = field(default_factory=DeploymentInfo)

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env(environ: Mapping[str, str] | None = None) -> AppConfig:
        """
        Load configuration from environment variables.

        Malformed integers fall back to their defaults rather than raising.
        """
        env = os.environ if environ is None else environ

        cap_ms = _int(env, "RETRY_DELAY_CAP", RETRY_DELAY_CAP_MS_DEFAULT)

        mongo = MongoConfig(
            uri=env.get("MONGO_URI") or MONGO_URI_DEFAULT,
            retry=RetryConfig(
                max_retries=_int(env, "MONGO_MAX_RETRIES", MAX_RETRIES_DEFAULT),
                base_delay_ms=_int(
                    env, "MONGO_RETRY_DELAY", RETRY_BASE_DELAY_MS_DEFAULT
                ),
                cap_delay_ms=cap_ms,
            ),
        )

        return AppConfig(
            env=env.get("ENV") or env.get("NODE_ENV") or ENV_DEFAULT,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            enable_json_logs=env.get("ENABLE_JSON_LOGS", "1") == "1",
            app_name=env.get("APP_NAME", APP_NAME_DEFAULT),
            app_version=env.get("APP_VERSION", APP_VERSION_DEFAULT),
            host=env.get("HOST", HTTP_HOST_DEFAULT),
            port=_int(env, "PORT", HTTP_PORT_DEFAULT),
            cors_origin=env.get("CORS_ORIGIN", "*"),
            shutdown_timeout_ms=_int(
                env, "SHUTDOWN_TIMEOUT", SHUTDOWN_TIMEOUT_MS_DEFAULT
            ),
            mongo=mongo,
            redis=_redis_from_env(env, cap_ms),
            deployment=DeploymentInfo(
                platform=env.get("DEPLOYMENT_PLATFORM", "Docker Compose"),
                orchestration=env.get("ORCHESTRATION", "Docker Compose"),
                load_balancer=env.get("LOAD_BALANCER", "none"),
                frontend_replicas=_int(env, "FRONTEND_REPLICAS", 1),
                backend_replicas=_int(env, "BACKEND_REPLICAS", 1),
            ),
        )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _redis_from_env(env: Mapping[str, str], cap_ms: int) -> RedisConfig | None:
    uri = env.get("REDIS_URI") or None
    cluster = parse_host_list(env.get("REDIS_CLUSTER_NODES", ""), REDIS_PORT_DEFAULT)
    sentinels = parse_host_list(
        env.get("REDIS_SENTINEL_HOSTS", ""), REDIS_SENTINEL_PORT_DEFAULT
    )

    if uri is None and not cluster and not sentinels:
        return None

    return RedisConfig(
        uri=uri,
        cluster_nodes=cluster,
        sentinel_hosts=sentinels,
        sentinel_master=env.get("REDIS_SENTINEL_MASTER", REDIS_SENTINEL_MASTER_DEFAULT),
        retry=RetryConfig(
            max_retries=_int(env, "REDIS_MAX_RETRIES", MAX_RETRIES_DEFAULT),
            base_delay_ms=_int(env, "REDIS_RETRY_DELAY", RETRY_BASE_DELAY_MS_DEFAULT),
            cap_delay_ms=cap_ms,
        ),
    )


def parse_host_list(raw: str, default_port: int) -> tuple[HostPort, ...]:
    """
    Parse "host1:port1,host2,host3:port3" into HostPort entries.

    Entries without a port get default_port. Blank entries are skipped.
    """
    hosts: list[HostPort] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        host, sep, port = item.rpartition(":")
        if not sep:
            hosts.append(HostPort(host=item, port=default_port))
            continue
        try:
            hosts.append(HostPort(host=host, port=int(port)))
        except ValueError:
            hosts.append(HostPort(host=item, port=default_port))
    return tuple(hosts)


def redact_uri(uri: str) -> str:
    """
    Drop credentials from a connection URI.

    Works for multi-host URIs ("mongodb://u:p@a:1,b:2/db") where
    urllib's hostname parsing does not.
    """
    scheme, sep, rest = uri.partition("://")
    if not sep:
        return uri
    netloc, slash, path = rest.partition("/")
    netloc = netloc.rpartition("@")[2].split("?", 1)[0]
    return f"{scheme}://{netloc}{slash}{path.split('?', 1)[0]}"


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value or default
