"""Request correlation and access logging."""

import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from subscription_sync.logging_config import bind_context, clear_context, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One start and one completion line per request, tied together by request_id.

    An inbound X-Request-ID (e.g. from the load balancer) is reused and echoed
    back; otherwise a fresh one is generated.
    """

    def __init__(self, app: ASGIApp, include_request_details: bool = True):
        """
        Args:
            app: ASGI application
            include_request_details: Also log client host and user agent
        """
        super().__init__(app)
        self.include_request_details = include_request_details

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        bind_context(request_id=request_id, method=request.method, path=request.url.path)

        details = {}
        if self.include_request_details:
            details["client_host"] = request.client.host if request.client else None
            details["user_agent"] = request.headers.get("user-agent")
        logger.info("request_started", **details)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration_ms=_elapsed_ms(started),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise
        else:
            logger.info("request_completed", status_code=response.status_code, duration_ms=_elapsed_ms(started))
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_context()


class ContextMiddleware(BaseHTTPMiddleware):
    """Tags log lines with the route family of /api/<family>/... requests.

    Request bodies and the Authorization header are never logged.
    """

    FAMILIES = {
        "stripe": "webhook",
        "subscription": "subscription",
        "jobs": "jobs",
    }

    @classmethod
    def family_of(cls, path: str) -> Optional[str]:
        segments = path.strip("/").split("/")
        if len(segments) < 2 or segments[0] != "api":
            return None
        return cls.FAMILIES.get(segments[1])

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        family = self.family_of(request.url.path)
        if family:
            bind_context(route_family=family)
        return await call_next(request)
