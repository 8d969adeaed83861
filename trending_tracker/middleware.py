"""HTTP middleware: per-client rate limiting, request logging and compression."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from .config import ServerSettings

LOGGER = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = "15 minutes"

CallNext = Callable[[Request], Awaitable[Response]]


class ClientRateLimiter:
    """Fixed-window request budget keyed by client address."""

    def __init__(self, limit: int, window: str = RATE_LIMIT_WINDOW) -> None:
        self._item = parse(f"{limit} per {window}")
        self._strategy = FixedWindowRateLimiter(MemoryStorage())

    def hit(self, client: str) -> bool:
        return self._strategy.hit(self._item, "api", client)

    def retry_after(self, client: str) -> int:
        reset_at, _ = self._strategy.get_window_stats(self._item, "api", client)
        return max(int(reset_at - time.time()), 0)


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "anonymous"


def install_middleware(app: FastAPI, settings: ServerSettings) -> None:
    """Wire rate limiting for the API prefix, request logging and gzip.

    Starlette runs the last registered middleware first, so compression wraps
    the logged response and logging sees rejected requests too.
    """

    limiter = ClientRateLimiter(settings.api_rate_limit)
    prefix = settings.api_prefix.rstrip("/") + "/"

    @app.middleware("http")
    async def limit_api_requests(request: Request, call_next: CallNext) -> Response:
        if not request.url.path.startswith(prefix):
            return await call_next(request)
        client = _client_key(request)
        if limiter.hit(client):
            return await call_next(request)
        LOGGER.warning("Rate limit exceeded for %s on %s", client, request.url.path)
        return JSONResponse(
            status_code=429,
            content={
                "error": {
                    "code": "RATE_LIMIT_EXCEEDED",
                    "message": "Too many requests, please try again later",
                }
            },
            headers={"Retry-After": str(limiter.retry_after(client))},
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next: CallNext) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        LOGGER.info(
            "%s %s %s %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    app.add_middleware(GZipMiddleware, minimum_size=1000)


__all__ = ["ClientRateLimiter", "install_middleware"]
