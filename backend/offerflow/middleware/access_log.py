from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..observability.logging import get_logger


def _route_template(request: Request) -> str:
    # "/api/offers/{offer_id}" groups better in log queries than the raw path.
    route = request.scope.get("route")
    return str(getattr(route, "path", None) or request.url.path)


def _actor_id(request: Request) -> str | None:
    actor = getattr(request.state, "user", None)
    sub = getattr(actor, "sub", None) if actor else None
    return str(sub) if sub else None


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One structured log line per request; 4xx log as warnings, 5xx as errors."""

    def __init__(self, app, *, exclude_paths: set[str] | None = None):
        super().__init__(app)
        self._exclude = frozenset(exclude_paths or ())
        self._log = get_logger("access")

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self._exclude:
            return await call_next(request)

        started = time.perf_counter()
        fields = {"http_method": request.method.upper(), "path": request.url.path}
        if request.client:
            fields["client_ip"] = request.client.host

        try:
            response = await call_next(request)
        except Exception:
            self._log.exception(
                "request_error",
                route=_route_template(request),
                actor_id=_actor_id(request),
                duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
                **fields,
            )
            raise

        status = int(response.status_code)
        emit = self._log.error if status >= 500 else self._log.warning if status >= 400 else self._log.info
        emit(
            "request",
            route=_route_template(request),
            status_code=status,
            actor_id=_actor_id(request),
            duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
            **fields,
        )
        return response
