from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError


class _UnreachableRedis:
    async def ping(self):
        raise RedisConnectionError("connection refused")


def test_health_in_memory(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["checks"] == {"redis": "not_configured", "database": "in_memory"}
    assert body["cache"] == {"enabled": True, "backend": "InMemoryCacheStore"}


def test_unreachable_redis_is_degraded_but_ready(app: FastAPI, client: TestClient) -> None:
    app.state.redis = _UnreachableRedis()

    body = client.get("/health").json()
    assert body["status"] == "degraded"
    assert body["checks"]["redis"] == "degraded"
    assert client.get("/ready").status_code == 200


def test_ready_without_database(client: TestClient) -> None:
    assert client.get("/ready").status_code == 200


def test_health_needs_no_identity(client: TestClient) -> None:
    assert client.get("/health").status_code == 200
