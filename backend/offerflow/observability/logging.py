from __future__ import annotations

import logging
import sys

import structlog

_CONFIGURED = False

# Chatty client libraries; their retries are already summarized by our own events.
_QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "httpx", "httpcore")


def configure_logging(*, level: str | int = "INFO", fmt: str = "json") -> None:
    """
    Route stdlib logging and structlog through one handler on stdout.

    `fmt="json"` emits one JSON object per line (deployed environments);
    `fmt="console"` renders colourless key=value lines for local runs.
    Request-scoped values bound with `structlog.contextvars` (request_id,
    actor_id) are merged into every event.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if str(fmt or "").strip().lower() == "console"
        else structlog.processors.JSONRenderer()
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=shared))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # Make uvicorn loggers flow through root so formatting is consistent.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        log = logging.getLogger(name)
        log.handlers = []
        log.propagate = True
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str | None = None):
    return structlog.get_logger(name)
