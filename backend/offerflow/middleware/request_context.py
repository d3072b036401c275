from __future__ import annotations

import re
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-Id"

# Inbound ids are echoed into logs and responses; anything else is replaced.
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def _request_id(raw: str | None) -> str:
    rid = str(raw or "").strip()
    return rid if _SAFE_REQUEST_ID.match(rid) else str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Gives every request an id: the caller's X-Request-Id when it looks sane,
    otherwise a fresh UUIDv4. The id is kept on request.state (problem-details
    bodies), bound into the structlog context (every log line of the request)
    and echoed on the response.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = _request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
