import logging
import time
from collections import defaultdict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from . import config

logger = logging.getLogger(__name__)

AUTH_PATH_PREFIX = "/api/auth"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP sliding window limits: a general one and a stricter one for auth routes.

    State is in-process only, so limits are per server replica.
    """

    def __init__(self, app, limit: int = None, auth_limit: int = None, window_seconds: int = None):
        super().__init__(app)
        self.limit = limit
        self.auth_limit = auth_limit
        self.window_seconds = window_seconds
        # IP -> [timestamp1, timestamp2, ...]
        self.requests = defaultdict(list)
        self.auth_requests = defaultdict(list)
        self._last_prune = 0.0

    def _hit(self, store, key: str, limit: int, window: int, now: float) -> bool:
        store[key] = [t for t in store[key] if now - t < window]
        if len(store[key]) >= limit:
            return False
        store[key].append(now)
        return True

    def _prune(self, window: int, now: float):
        # Drop IPs whose newest hit has left the window
        for store in (self.requests, self.auth_requests):
            stale = [key for key, hits in store.items() if not hits or now - hits[-1] >= window]
            for key in stale:
                del store[key]
        self._last_prune = now

    async def dispatch(self, request: Request, call_next):
        if not config.RATE_LIMIT_ENABLED:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window = self.window_seconds or config.RATE_LIMIT_WINDOW_SECONDS
        if now - self._last_prune >= window:
            self._prune(window, now)

        if not self._hit(self.requests, client_ip, self.limit or config.RATE_LIMIT_MAX, window, now):
            logger.warning("Rate limit exceeded for %s", client_ip)
            return JSONResponse(
                status_code=429,
                content={
                    "message": "Too many requests from this IP, please try again later.",
                    "error": "RATE_LIMIT_EXCEEDED",
                },
            )

        if request.url.path.startswith(AUTH_PATH_PREFIX):
            auth_limit = self.auth_limit or config.AUTH_RATE_LIMIT_MAX
            if not self._hit(self.auth_requests, client_ip, auth_limit, window, now):
                logger.warning("Auth rate limit exceeded for %s", client_ip)
                return JSONResponse(
                    status_code=429,
                    content={
                        "message": "Too many authentication attempts, please try again later.",
                        "error": "AUTH_RATE_LIMIT_EXCEEDED",
                    },
                )

        return await call_next(request)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Logs one line per request; installed in development only."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response
