from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from . import __version__
from .db.dynamodb.errors import DdbError
from .middleware.access_log import AccessLogMiddleware
from .middleware.actor import ACTOR_HEADER, ActorMiddleware
from .middleware.request_context import RequestContextMiddleware
from .modules.workflow.errors import WorkflowError
from .observability.logging import configure_logging, get_logger
from .problem_details import problem_response, problem_type
from .routers.advisors import router as advisors_router
from .routers.coinvestment import router as coinvestment_router
from .routers.health import router as health_router
from .routers.offers import router as offers_router
from .settings import settings


def create_app() -> FastAPI:
    # Logging must be configured before the app starts handling requests.
    configure_logging(level=settings.log_level, fmt=settings.log_format)
    log = get_logger("startup")

    app = FastAPI(
        title="Offerflow Investment Workflow API",
        version=__version__,
        default_response_class=ORJSONResponse,
        redirect_slashes=False,
    )

    log.info("app_starting", settings=settings.to_log_safe_dict())

    # Middlewares (order matters; last added is outermost)
    # Actor runs inside CORS so 401s still get CORS headers.
    app.add_middleware(ActorMiddleware)
    app.add_middleware(AccessLogMiddleware, exclude_paths={"/"})
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", ACTOR_HEADER],
        expose_headers=["X-Request-Id"],
        max_age=3000,
    )
    # Outermost: request context (request-id) wraps everything.
    app.add_middleware(RequestContextMiddleware)

    # Error handlers
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(WorkflowError, _workflow_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DdbError, _ddb_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_exception_handler)

    # Routes
    app.include_router(health_router)
    app.include_router(offers_router, prefix="/api")
    app.include_router(coinvestment_router, prefix="/api")
    app.include_router(advisors_router, prefix="/api")

    return app


def _workflow_error_handler(request: Request, exc: WorkflowError) -> Response:
    get_logger("workflow").info(
        "workflow_rejected",
        code=exc.code,
        status_code=exc.status_code,
        record_id=exc.record_id,
        path=request.url.path,
        reason=exc.message,
    )
    extensions: dict[str, object] = {"code": exc.code}
    if exc.record_id:
        extensions["recordId"] = exc.record_id
    if exc.details:
        extensions["details"] = exc.details
    return problem_response(
        request=request,
        status_code=exc.status_code,
        title=exc.title,
        detail=exc.message,
        type=problem_type(exc.code),
        extensions=extensions,
    )


def _ddb_error_handler(request: Request, exc: DdbError) -> Response:
    # Only 5xx storage failures are logged as errors.
    status_code = int(exc.status_code)
    if status_code >= 500:
        get_logger("ddb").error(
            "ddb_request_failed",
            operation=exc.operation,
            table=exc.table_name,
            aws_request_id=exc.aws_request_id,
            error=exc.message,
        )

    extensions = {
        "operation": exc.operation,
        "table": exc.table_name,
        "awsRequestId": exc.aws_request_id,
        "retryable": bool(exc.retryable),
    }
    # In production, problem_response already suppresses 5xx detail.
    return problem_response(
        request=request,
        status_code=status_code,
        title=exc.title,
        detail=exc.message,
        extensions={k: v for k, v in extensions.items() if v is not None},
    )


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    status_code = int(getattr(exc, "status_code", 500) or 500)
    detail = getattr(exc, "detail", None)

    title: str | None = None
    extensions: dict | None = None
    safe_detail: str | None = None

    if isinstance(detail, dict):
        extensions = detail
        msg = detail.get("message")
        if isinstance(msg, str) and msg.strip():
            safe_detail = msg.strip()
    elif detail is not None:
        safe_detail = str(detail)

    if status_code == 404:
        title = "Not Found"
        safe_detail = safe_detail or "Route not found"

    return problem_response(
        request=request,
        status_code=status_code,
        title=title,
        detail=safe_detail,
        extensions=extensions,
    )


def _validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    errors: list[dict[str, object]] = []
    for e in exc.errors():
        loc = e.get("loc") or ()
        loc_path = ".".join([str(x) for x in loc if x != "body"])
        errors.append(
            {
                "location": list(loc) if isinstance(loc, (list, tuple)) else [],
                "path": loc_path,
                "message": e.get("msg", "Invalid value"),
                "type": e.get("type"),
            }
        )
    return problem_response(
        request=request,
        status_code=422,
        title="Validation Failed",
        detail="Request validation failed",
        errors=errors,
    )


def _unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    # Operators need the traceback; the response stays generic in production.
    actor = getattr(getattr(request, "state", None), "user", None)
    get_logger("unhandled").exception(
        "unhandled_exception",
        http_method=str(request.method or "").upper() or None,
        path=request.url.path,
        actor_id=str(getattr(actor, "sub", "") or "") or None,
    )
    return problem_response(
        request=request,
        status_code=500,
        title="Internal Server Error",
        detail=str(exc) if exc else None,
    )


app = create_app()
