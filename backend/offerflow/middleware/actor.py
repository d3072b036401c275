from __future__ import annotations

from dataclasses import dataclass

import structlog
from fastapi import HTTPException, Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..observability.logging import get_logger
from ..problem_details import problem_response

ACTOR_HEADER = "X-Actor-Id"

_MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True, slots=True)
class Actor:
    """Identity of the caller as asserted by the authenticating gateway."""

    sub: str


def resolve_actor(request: Request) -> Actor | None:
    raw = request.headers.get(ACTOR_HEADER.lower())
    sub = str(raw or "").strip()
    return Actor(sub=sub) if sub else None


async def require_actor(request: Request) -> None:
    # Let CORS preflight through.
    if request.method.upper() == "OPTIONS":
        return

    path = request.url.path
    if not path.startswith("/api/"):
        return

    actor = resolve_actor(request)
    request.state.user = actor
    if actor is None and request.method.upper() in _MUTATING_METHODS:
        raise HTTPException(status_code=401, detail=f"Missing {ACTOR_HEADER} header")


class ActorMiddleware(BaseHTTPMiddleware):
    """
    Attaches the caller identity (request.state.user) for every API request.

    Authentication happens upstream; this only refuses mutating calls that
    arrive without an identity. Read-only calls may be anonymous.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            await require_actor(request)
        except HTTPException as exc:
            get_logger("actor_middleware").info(
                "actor_missing",
                status_code=int(exc.status_code),
                path=request.url.path,
            )
            return problem_response(
                request=request,
                status_code=int(exc.status_code),
                title="Unauthorized",
                detail=str(exc.detail),
            )
        actor = getattr(request.state, "user", None)
        if actor is None:
            return await call_next(request)
        with structlog.contextvars.bound_contextvars(actor_id=actor.sub):
            return await call_next(request)
