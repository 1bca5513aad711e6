"""
HTTP middleware for the shop API
"""
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
import logging
import time

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs method, path, status and elapsed time of every request
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.debug(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
        response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.1f}"

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers for production
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "same-origin"
        # Los saldos de fiado nunca deben quedar en caches intermedios
        if request.url.path.startswith("/credit"):
            response.headers["Cache-Control"] = "no-store"

        return response
