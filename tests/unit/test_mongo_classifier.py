# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
from datetime import datetime, timedelta
from typing import Any, Mapping

import pytest
from pymongo.errors import AutoReconnect, OperationFailure

from adapters.mongodb.classifier import classify_mongo
from adapters.mongodb.server_status import parse_hello, parse_server_status
from supervisor.enums.topology import Confidence, Topology
from supervisor.errors import ClassificationError


NOW = datetime(2024, 1, 1, 12, 0, 0)

NOT_REPLICATED = OperationFailure("not running with --replSet", code=76)
UNAUTHORIZED = OperationFailure("not authorized on admin", code=13)


def fake_server(replies: Mapping[str, Any]):
    """run_command backed by a dict; exception values are raised."""
    calls: list[str] = []

    async def run_command(name: str) -> Mapping[str, Any]:
        calls.append(name)
        reply = replies.get(name, OperationFailure(f"no such command: '{name}'", code=59))
        if isinstance(reply, BaseException):
            raise reply
        return reply

    run_command.calls = calls  # type: ignore[attr-defined]
    return run_command


def classify(replies: Mapping[str, Any]):
    return asyncio.run(classify_mongo(fake_server(replies), probe_timeout_ms=1000))


def test_plain_mongod_is_standalone():
    report = classify({"serverStatus": {"process": "mongod", "uptime": 10}})

    assert report.topology is Topology.STANDALONE
    assert report.role == "primary"


def test_set_name_without_replication_is_standalone():
    report = classify({
        "serverStatus": {"process": "mongod", "repl": {"setName": "rs0", "hosts": ["a:27017"]}},
        "replSetGetStatus": NOT_REPLICATED,
    })

    assert report.topology is Topology.STANDALONE
    assert report.replica_set is None
    assert report.members == ()


def test_replica_set_members_and_lag():
    report = classify({
        "serverStatus": {"process": "mongod", "repl": {"setName": "rs0", "ismaster": True}},
        "replSetGetStatus": {
            "set": "rs0",
            "members": [
                {
                    "_id": 0, "name": "a:27017", "health": 1, "stateStr": "PRIMARY",
                    "uptime": 500, "optimeDate": NOW, "self": True,
                },
                {
                    "_id": 1, "name": "b:27017", "health": 1, "stateStr": "SECONDARY",
                    "uptime": 400, "optimeDate": NOW - timedelta(seconds=3),
                },
                {
                    "_id": 2, "name": "c:27017", "health": 0,
                    "stateStr": "(not reachable/healthy)", "uptime": 0,
                },
            ],
        },
    })

    assert report.topology is Topology.REPLICATED
    assert report.replica_set == "rs0"
    assert report.role == "primary"
    assert [m.role for m in report.members] == ["primary", "secondary", "(not reachable/healthy)"]
    assert [m.health for m in report.members] == ["up", "up", "down"]
    assert report.members[0].lag_s is None
    assert report.members[1].lag_s == 3.0
    assert report.members[2].lag_s is None
    assert report.confidence is Confidence.PROBED


def test_replica_set_status_unauthorized_is_inferred_from_hosts():
    report = classify({
        "serverStatus": {
            "process": "mongod",
            "repl": {
                "setName": "rs0",
                "hosts": ["a:27017", "b:27017"],
                "primary": "b:27017",
                "secondary": True,
            },
        },
        "replSetGetStatus": UNAUTHORIZED,
    })

    assert report.topology is Topology.REPLICATED
    assert report.confidence is Confidence.INFERRED
    assert report.role == "secondary"
    assert [(m.address, m.role) for m in report.members] == [
        ("a:27017", "secondary"),
        ("b:27017", "primary"),
    ]


def test_mongos_is_sharded_with_shard_members():
    report = classify({
        "serverStatus": {"process": "mongos"},
        "listShards": {
            "shards": [
                {"_id": "shard01", "host": "shard01/a:27018,b:27018", "state": 1},
                {"_id": "shard02", "host": "shard02/c:27018", "state": 0},
            ],
        },
    })

    assert report.topology is Topology.SHARDED
    assert report.role == "mongos"
    assert [m.name for m in report.members] == ["shard01", "shard02"]
    assert [m.health for m in report.members] == ["up", "down"]


def test_hello_fallback_detects_router():
    run = fake_server({
        "serverStatus": UNAUTHORIZED,
        "hello": {"msg": "isdbgrid", "isWritablePrimary": True},
        "listShards": UNAUTHORIZED,
    })

    report = asyncio.run(classify_mongo(run, probe_timeout_ms=1000))

    assert report.topology is Topology.SHARDED
    assert report.members == ()
    assert report.confidence is Confidence.INFERRED
    assert run.calls[:2] == ["serverStatus", "hello"]  # type: ignore[attr-defined]


def test_connectivity_failure_raises():
    with pytest.raises(ClassificationError):
        classify({"serverStatus": AutoReconnect("connection closed")})


def test_other_command_failures_raise():
    with pytest.raises(ClassificationError):
        classify({"serverStatus": OperationFailure("interrupted", code=11601)})


def test_no_self_description_command_falls_back_to_standalone():
    run = fake_server({})
    report = asyncio.run(classify_mongo(run, probe_timeout_ms=1000))

    assert report.topology is Topology.STANDALONE
    assert report.confidence is Confidence.FALLBACK
    assert report.members == ()
    assert run.calls == ["serverStatus", "hello", "isMaster"]  # type: ignore[attr-defined]


def test_parsers_tolerate_missing_fields():
    shape = parse_server_status({"repl": "garbage"})
    assert shape.repl_set_name is None
    assert shape.role is None

    hello = parse_hello({"setName": "rs0", "hosts": "not-a-list", "ismaster": True})
    assert hello.repl_set_name == "rs0"
    assert hello.hosts == ()
    assert hello.role == "primary"
