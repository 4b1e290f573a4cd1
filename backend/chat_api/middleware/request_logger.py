"""
Request logging middleware.
Logs method, path, status and duration of every request.
"""
import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("chat_api.requests")


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """
    One line per request; level follows the status class
    (5xx error, 4xx warning, everything else info).
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception("%s %s 500 %.0fms", request.method, request.url.path, duration_ms)
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        client = request.client.host if request.client else "-"
        message = "%s %s %d %.0fms - %s"
        args = (request.method, request.url.path, response.status_code, duration_ms, client)

        if response.status_code >= 500:
            logger.error(message, *args)
        elif response.status_code >= 400:
            logger.warning(message, *args)
        else:
            logger.info(message, *args)

        return response
