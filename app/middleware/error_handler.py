"""Global error handlers for the application."""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.utils.errors import ServiceUnavailable

logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


async def store_unavailable_handler(request: Request, exc):
    # fail closed: nothing was issued, the client may retry with the same token
    logger.error("Session store unavailable during %s %s: %s", request.method, request.url.path, exc)
    unavailable = ServiceUnavailable()
    return JSONResponse(
        status_code=unavailable.status_code,
        content={"detail": unavailable.detail},
        headers={"Retry-After": "1"},
    )
