"""
Request Correlation Middleware.

Adds a correlation ID to every request and exposes it, together with the
client address and user agent, to logging and audit code running inside
the request.
"""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


# Context variables (per request, safe across threads and tasks)
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
client_ip_var: ContextVar[str | None] = ContextVar("client_ip", default=None)
user_agent_var: ContextVar[str | None] = ContextVar("user_agent", default=None)


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def client_ip_from(request: Request) -> str | None:
    """
    Resolve the client address, honoring the first X-Forwarded-For hop
    when the API runs behind a proxy.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation IDs to all requests.

    - If X-Request-ID header is present, uses that value
    - Otherwise generates a new UUID
    - Sets the ID, client IP and user agent in context
    - Returns the ID in response headers
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())

        tokens = (
            request_id_var.set(request_id),
            client_ip_var.set(client_ip_from(request)),
            user_agent_var.set(request.headers.get("User-Agent")),
        )

        try:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[self.HEADER_NAME] = request_id
            return response
        finally:
            for var, token in zip((request_id_var, client_ip_var, user_agent_var), tokens):
                var.reset(token)


class CorrelationIdFilter:
    """
    Logging filter that adds request_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True
