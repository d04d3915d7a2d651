import json
from time import time
from typing import Dict, Iterable, Optional, Tuple
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
import logging

import redis

from config.settings import settings

logger = logging.getLogger(__name__)

# Never throttled: Stripe posts webhooks from a few shared IPs
EXEMPT_PATHS = ("/api/webhooks/stripe", "/api/admin/verify")


def _connect_redis(redis_url: Optional[str]) -> Optional["redis.Redis"]:
    if not redis_url:
        logger.info("ℹ️ REDIS_URL not set. Using in-memory rate limiting.")
        return None
    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"⚠️ Redis connection failed: {e}. Falling back to in-memory rate limiting.")
        return None
    logger.info("✅ Redis connected successfully for rate limiting")
    return client


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Per-IP rate limiter using the Token Bucket Algorithm.
    Buckets live in Redis when REDIS_URL is set, in process memory otherwise.
    A limit of 0 disables the middleware. Paths in EXEMPT_PATHS are never limited.
    """

    def __init__(
        self,
        app,
        requests_per_minute: Optional[int] = None,
        redis_client=None,
        exempt_paths: Iterable[str] = EXEMPT_PATHS,
    ):
        super().__init__(app)
        self.exempt_paths = frozenset(exempt_paths)
        if requests_per_minute is None:
            requests_per_minute = settings.rate_limit_per_minute
        self.capacity = requests_per_minute
        self.refill_time_window = 60.0
        # Fallback: in-memory storage (ip -> (tokens, last_refill_ts))
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._redis = redis_client if redis_client is not None else (
            _connect_redis(settings.redis_url) if self.capacity > 0 else None
        )

    def _get_client_ip(self, request: Request) -> str:
        xff = request.headers.get("x-forwarded-for")
        if xff:
            # Take first IP in the list
            return xff.split(",")[0].strip()
        client = request.client
        return client.host if client else "unknown"

    def _refill(self, tokens: float, last_refill: float, now: float) -> float:
        elapsed = max(0.0, now - last_refill)
        refill = (elapsed / self.refill_time_window) * self.capacity
        return min(self.capacity, tokens + refill)

    def _check_rate_limit_redis(self, ip: str) -> Optional[bool]:
        """
        Returns True if allowed, False if limited, None if Redis failed and
        the in-memory bucket should decide instead.
        """
        key = f"rate_limit:{ip}"
        now = time()
        try:
            bucket_data = self._redis.get(key)
            if bucket_data:
                data = json.loads(bucket_data)
                tokens = float(data.get("tokens", 0))
                last_refill = float(data.get("last_refill", now))
            else:
                tokens, last_refill = float(self.capacity), now

            tokens = self._refill(tokens, last_refill, now)
            if tokens < 1.0:
                return False

            bucket = json.dumps({"tokens": tokens - 1.0, "last_refill": now})
            self._redis.setex(key, int(self.refill_time_window) + 10, bucket)
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    def _check_rate_limit_memory(self, ip: str) -> bool:
        now = time()
        tokens, last_refill = self._buckets.get(ip, (self.capacity, now))
        tokens = self._refill(tokens, last_refill, now)
        if tokens < 1.0:
            return False
        self._buckets[ip] = (tokens - 1.0, now)
        return True

    async def dispatch(self, request: Request, call_next) -> Response:
        if self.capacity <= 0 or request.url.path in self.exempt_paths:
            return await call_next(request)

        ip = self._get_client_ip(request)
        allowed = self._check_rate_limit_redis(ip) if self._redis is not None else None
        if allowed is None:
            allowed = self._check_rate_limit_memory(ip)

        if not allowed:
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded. Try again shortly."},
            )

        return await call_next(request)
