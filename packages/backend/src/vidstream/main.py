"""FastAPI application factory.

create_app() returns a configured FastAPI instance. Lifespan manages
startup/shutdown (logging, Redis, database engine). Middleware, CORS,
exception handlers and routers are all registered here; each concern
lives in its own module.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from vidstream import __version__
from vidstream.api import api_router
from vidstream.cache.redis import close_redis, init_redis
from vidstream.config import settings
from vidstream.errors import register_exception_handlers
from vidstream.logging_config import configure_logging
from vidstream.middleware.rate_limit import RateLimitMiddleware
from vidstream.middleware.request_id import RequestIdMiddleware
from vidstream.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    configure_logging(settings.log_level, json_logs=settings.log_json)
    logger.info(
        "vidstream.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    try:
        await init_redis()
        logger.info("vidstream.redis_connected")
    except (RedisError, OSError) as e:
        # Redis is optional; only rate limiting depends on it
        logger.warning("vidstream.redis_unavailable", error=str(e))

    yield

    logger.info("vidstream.shutdown")
    await close_redis()

    from vidstream.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="vidstream",
        description="Video sharing backend — accounts, channels, and videos",
        version=__version__,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: vidstream.main:app)
app = create_app()
