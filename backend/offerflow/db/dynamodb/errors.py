from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class DdbError(Exception):
    """Base error for the record store.

    Raised by `ddb_call` after mapping botocore failures. Workflow code turns a
    `DdbConflict` from a version-conditioned write into InvalidTransition;
    anything that reaches the API is rendered as problem-details using
    `status_code` and `title`.
    """

    message: str
    operation: str | None = None
    table_name: str | None = None
    key: dict[str, Any] | None = None
    aws_request_id: str | None = None
    retryable: bool = False
    cause: Exception | None = None

    status_code = 500
    title = "Storage Error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class DdbConflict(DdbError):
    """A condition on the write (create-if-absent, expected version) did not hold."""

    status_code = 409
    title = "Conflict"


@dataclass(slots=True)
class DdbValidation(DdbError):
    status_code = 400
    title = "Bad Request"


@dataclass(slots=True)
class DdbThrottled(DdbError):
    status_code = 503
    title = "Service Unavailable"


@dataclass(slots=True)
class DdbUnavailable(DdbError):
    status_code = 503
    title = "Service Unavailable"


@dataclass(slots=True)
class DdbInternal(DdbError):
    pass
