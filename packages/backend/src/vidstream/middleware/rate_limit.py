"""Rate limiting middleware — Redis fixed-window counters.

Each IP gets a counter key like "vidstream:rl:{ip}:{bucket}:{minute}".
Session endpoints (login, register, refresh-token) get a stricter limit
to slow down password guessing and refresh-token replay.

Skips rate limiting entirely if Redis is unavailable (e.g., in tests).
"""

import time

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from vidstream.cache.redis import get_redis

logger = structlog.get_logger()

AUTH_PATHS = (
    "/api/v1/users/login",
    "/api/v1/users/register",
    "/api/v1/users/refresh-token",
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(self, app, default_rpm: int = 100, auth_rpm: int = 10):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.auth_rpm = auth_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        is_auth = request.url.path.startswith(AUTH_PATHS)
        rpm = self.auth_rpm if is_auth else self.default_rpm

        window = int(time.time() // 60)
        bucket = "auth" if is_auth else "api"
        key = f"vidstream:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)
        except RedisError as e:
            # Redis hiccup: let the request through
            logger.warning("rate_limit.redis_error", error=str(e))
            return await call_next(request)

        if count > rpm:
            logger.info("rate_limit.exceeded", client_ip=client_ip, bucket=bucket)
            return JSONResponse(
                status_code=429,
                content={
                    "status_code": 429,
                    "code": "rate_limited",
                    "message": "Rate limit exceeded. Try again later.",
                    "success": False,
                    "errors": [],
                },
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
