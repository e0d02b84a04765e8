"""Liveness and readiness checks.

/health answers as long as the process can; its body reports each
backing service.  It stays 200 when degraded so the orchestrator does
not restart a container over a partial outage.

/ready is what the load balancer polls.  The database is the only
critical dependency: Redis has in-memory fallbacks, so an instance
without it can still take traffic.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status
from redis.exceptions import RedisError

from online_courses.core.errors import PersistenceError
from online_courses.db import redis as redis_db
from online_courses.db.engine import engine
from online_courses.db.gateway import catalog_repo

router = APIRouter(tags=["health"])


async def _check_redis() -> str:
    if redis_db.redis_pool is None:
        return "not_configured"
    try:
        await redis_db.redis_pool.ping()  # type: ignore[misc]
    except RedisError:
        return "degraded"
    return "ok"


async def _check_database() -> str:
    try:
        has_courses = await catalog_repo.courses_exist()
    except PersistenceError:
        return "degraded"
    if engine is None:
        return "in_memory"
    return "ok" if has_courses else "empty"


@router.get("/health")
async def health() -> dict:
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
    }
    overall = "ok" if "degraded" not in checks.values() else "degraded"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _check_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
