"""
Static system description for /api/architecture, annotated with the
live topology of each backend.
"""

from __future__ import annotations

from typing import Any, Sequence

from config import AppConfig
from supervisor.runtime import BackendSnapshot


_ENDPOINTS = [
    {"path": "/api/", "method": "GET", "description": "Basic status"},
    {"path": "/api/health", "method": "GET", "description": "Health check"},
    {"path": "/api/status", "method": "GET", "description": "Detailed status"},
    {"path": "/api/architecture", "method": "GET", "description": "Architecture info"},
]


def _backend_status(snapshot: BackendSnapshot | None, *, optional: bool) -> str:
    if snapshot is None or not snapshot.configured:
        return "optional" if optional else "not configured"
    return "running" if snapshot.status.connected else "unreachable"


def _live(snapshot: BackendSnapshot | None) -> dict[str, Any]:
    if snapshot is None:
        return {}
    status = snapshot.status
    return {
        "topology": status.topology.value,
        "role": status.role,
        "replicaSet": status.replica_set,
        "members": [m.to_dict() for m in status.members],
    }


def describe(config: AppConfig, snapshots: Sequence[BackendSnapshot] = ()) -> dict[str, Any]:
    by_name = {snap.name: snap for snap in snapshots}
    mongo = by_name.get("mongodb")
    redis = by_name.get("redis")
    deployment = config.deployment

    redis_transport = config.redis.transport_mode.value if config.redis else None

    return {
        "name": config.app_name,
        "version": config.app_version,
        "type": "microservices",
        "components": [
            {
                "id": "frontend",
                "name": "React Frontend",
                "type": "web",
                "technology": "React + Vite + TailwindCSS",
                "port": 3000,
                "description": "Real-time monitoring dashboard",
                "status": "running",
                "connections": ["backend"],
            },
            {
                "id": "backend",
                "name": "Status API",
                "type": "api",
                "technology": "Python + FastAPI",
                "port": config.port,
                "description": "REST API with backend supervision and topology detection",
                "status": "running",
                "connections": ["mongodb", "redis"],
                "endpoints": _ENDPOINTS,
            },
            {
                "id": "mongodb",
                "name": "MongoDB",
                "type": "database",
                "technology": "MongoDB",
                "port": 27017,
                "description": "NoSQL document database",
                "status": _backend_status(mongo, optional=False),
                "connections": [],
                **_live(mongo),
            },
            {
                "id": "redis",
                "name": "Redis",
                "type": "cache",
                "technology": "Redis",
                "port": 6379,
                "description": "In-memory cache and message broker",
                "status": _backend_status(redis, optional=True),
                "transport": redis_transport,
                "connections": [],
                **_live(redis),
            },
        ],
        "dataFlow": [
            {
                "from": "frontend",
                "to": "backend",
                "protocol": "HTTP/REST",
                "description": "API requests for status and health",
            },
            {
                "from": "backend",
                "to": "mongodb",
                "protocol": "MongoDB Wire Protocol",
                "description": "Database queries and operations",
            },
            {
                "from": "backend",
                "to": "redis",
                "protocol": "RESP",
                "description": "Cache operations and pub/sub",
            },
        ],
        "deployment": {
            "platform": deployment.platform,
            "environment": config.env,
            "containerization": "Docker",
            "orchestration": deployment.orchestration,
        },
        "scaling": {
            "frontend": {
                "type": "horizontal",
                "instances": deployment.frontend_replicas,
                "loadBalancer": deployment.load_balancer,
            },
            "backend": {
                "type": "horizontal",
                "instances": deployment.backend_replicas,
                "loadBalancer": deployment.load_balancer,
            },
        },
    }
