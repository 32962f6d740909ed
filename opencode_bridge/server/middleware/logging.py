"""Request logging middleware."""
import logging
import re
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger("opencode_bridge.server")

_SESSION_PATH = re.compile(r"^/sessions/([^/]+)")


def conversation_for(request: Request) -> str:
    """Conversation a request targets: the header if sent, else the URL."""
    header = request.headers.get("X-Conversation-ID")
    if header:
        return header
    match = _SESSION_PATH.match(request.url.path)
    return match.group(1) if match else "-"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each session request and how long the bridge took to answer it."""

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        started = time.perf_counter()
        conversation = conversation_for(request)
        logger.debug("-> %s %s conversation=%s", request.method, request.url.path, conversation)

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level, "%s %s conversation=%s status=%d in %.1fms",
            request.method, request.url.path, conversation, response.status_code, elapsed_ms,
        )
        response.headers["X-Response-Time-Ms"] = f"{elapsed_ms:.1f}"
        return response
