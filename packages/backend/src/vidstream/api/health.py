"""Health check endpoint.

Reports whether the server is up and whether its dependencies
(database, Redis) are reachable. Redis being down only degrades
rate limiting, so it doesn't flip the status to unhealthy.
"""

import structlog
from fastapi import APIRouter
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from vidstream import __version__
from vidstream.cache.redis import get_redis
from vidstream.db.engine import engine

logger = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("health.database_unreachable", error=str(e))
        checks["database"] = "error"

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except RuntimeError:
        checks["redis"] = "disabled"
    except RedisError as e:
        logger.warning("health.redis_unreachable", error=str(e))
        checks["redis"] = "error"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, **checks}
