from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from ...observability.logging import get_logger
from .errors import (
    DdbConflict,
    DdbError,
    DdbInternal,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)

T = TypeVar("T")

log = get_logger("ddb")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 6
    base_delay_s: float = 0.05
    max_delay_s: float = 1.5

    def delay_for(self, attempt: int) -> float:
        # Full jitter exponential backoff.
        exp = min(self.max_delay_s, self.base_delay_s * (2 ** max(0, attempt - 1)))
        return random.random() * exp


_THROTTLE_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
    "ServiceUnavailable",
    # Returned directly by TransactWriteItems under contention.
    "TransactionConflictException",
}

_VALIDATION_CODES = {"ValidationException", "ParamValidationError"}
_ACCESS_CODES = {"AccessDeniedException", "UnrecognizedClientException"}


def _error_code(e: ClientError) -> str:
    return str(((e.response or {}).get("Error") or {}).get("Code") or "")


def _aws_request_id(e: ClientError) -> str | None:
    return ((e.response or {}).get("ResponseMetadata") or {}).get("RequestId")


def _cancellation_codes(e: ClientError) -> list[str]:
    reasons = (e.response or {}).get("CancellationReasons") or []
    return [str((r or {}).get("Code") or "") for r in reasons if isinstance(r, dict)]


def map_client_error(
    *,
    operation: str,
    table_name: str | None,
    key: dict[str, Any] | None,
    exc: Exception,
) -> DdbError:
    """Translate botocore failures into the typed `Ddb*` error family."""
    if isinstance(exc, DdbError):
        return exc

    ctx: dict[str, Any] = {"operation": operation, "table_name": table_name, "key": key, "cause": exc}

    if isinstance(exc, ClientError):
        code = _error_code(exc)
        ctx["aws_request_id"] = _aws_request_id(exc)

        if code == "ConditionalCheckFailedException":
            return DdbConflict(message="DynamoDB conditional check failed", **ctx)

        if code == "TransactionCanceledException":
            reasons = _cancellation_codes(exc)
            if "TransactionConflict" in reasons or "TransactionConflictException" in reasons:
                return DdbThrottled(message="DynamoDB transaction conflict", retryable=True, **ctx)
            if "ConditionalCheckFailed" in reasons:
                return DdbConflict(message="DynamoDB transaction condition failed", **ctx)

        if code in _VALIDATION_CODES:
            return DdbValidation(message="DynamoDB request validation failed", **ctx)

        if code in _ACCESS_CODES:
            return DdbUnavailable(message="DynamoDB access denied", **ctx)

        if code in _THROTTLE_CODES:
            return DdbThrottled(message="DynamoDB request throttled or unavailable", retryable=True, **ctx)

        return DdbInternal(message=f"DynamoDB request failed ({code or 'ClientError'})", **ctx)

    if isinstance(exc, BotoCoreError):
        return DdbUnavailable(message="DynamoDB client error", retryable=True, **ctx)

    return DdbInternal(message="Unexpected DynamoDB error", **ctx)


def ddb_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
    retry_policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    policy = retry_policy or RetryPolicy()
    attempts = max(1, int(policy.max_attempts))

    attempt = 1
    while True:
        try:
            return fn()
        except Exception as e:  # noqa: BLE001
            mapped = map_client_error(operation=operation, table_name=table_name, key=key, exc=e)

            # Never retry validation/conflict errors.
            if not mapped.retryable or attempt >= attempts:
                if mapped is e:
                    raise
                raise mapped from e

            log.warning(
                "ddb_retry",
                operation=operation,
                table=table_name,
                attempt=attempt,
                error=mapped.message,
            )
            sleep(policy.delay_for(attempt))
            attempt += 1
