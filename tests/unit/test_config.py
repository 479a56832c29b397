# pylint: disable=missing-module-docstring,missing-function-docstring

from config import (
    AppConfig,
    HostPort,
    RedisConfig,
    RedisTransportMode,
    parse_host_list,
    redact_uri,
)
from defaults import MONGO_URI_DEFAULT


def test_defaults_when_environment_is_empty():
    config = AppConfig.load_from_env({})

    assert config.env == "development"
    assert config.port == 5000
    assert config.mongo.uri == MONGO_URI_DEFAULT
    assert config.mongo.retry.max_retries == 10
    assert config.mongo.retry.base_delay_ms == 5000
    assert config.mongo.retry.cap_delay_ms == 30000
    assert config.redis is None
    assert config.shutdown_timeout_ms == 10000


def test_invalid_or_zero_integers_fall_back():
    config = AppConfig.load_from_env({
        "PORT": "abc",
        "MONGO_MAX_RETRIES": "0",
        "MONGO_RETRY_DELAY": "250",
    })

    assert config.port == 5000
    assert config.mongo.retry.max_retries == 10
    assert config.mongo.retry.base_delay_ms == 250


def test_node_env_is_accepted():
    config = AppConfig.load_from_env({"NODE_ENV": "production"})

    assert config.is_production


def test_redis_uri_enables_standard_transport():
    config = AppConfig.load_from_env({
        "REDIS_URI": "redis://cache:6379/0",
        "REDIS_MAX_RETRIES": "3",
    })

    assert config.redis is not None
    assert config.redis.transport_mode is RedisTransportMode.STANDARD
    assert config.redis.retry.max_retries == 3


def test_redis_transport_precedence():
    both = RedisConfig(
        uri="redis://x",
        cluster_nodes=(HostPort("a", 7000),),
        sentinel_hosts=(HostPort("s", 26379),),
    )
    assert both.transport_mode is RedisTransportMode.CLUSTER

    sentinel = RedisConfig(uri="redis://x", sentinel_hosts=(HostPort("s", 26379),))
    assert sentinel.transport_mode is RedisTransportMode.SENTINEL


def test_sentinel_hosts_get_default_port():
    config = AppConfig.load_from_env({
        "REDIS_SENTINEL_HOSTS": "s1, s2:26380,",
        "REDIS_SENTINEL_MASTER": "cache",
    })

    assert config.redis is not None
    assert config.redis.sentinel_hosts == (HostPort("s1", 26379), HostPort("s2", 26380))
    assert config.redis.sentinel_master == "cache"


def test_parse_host_list_keeps_bad_port_as_host():
    assert parse_host_list("n1:7000,n2:abc", 6379) == (
        HostPort("n1", 7000),
        HostPort("n2:abc", 6379),
    )


def test_redact_uri_drops_credentials_and_options():
    assert (
        redact_uri("mongodb://user:secret@a:27017,b:27017/app?replicaSet=rs0")
        == "mongodb://a:27017,b:27017/app"
    )
    assert redact_uri("redis://:pw@cache:6379/0") == "redis://cache:6379/0"
    assert redact_uri("not-a-uri") == "not-a-uri"
