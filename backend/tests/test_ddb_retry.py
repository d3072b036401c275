from __future__ import annotations

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from offerflow.db.dynamodb.errors import DdbConflict, DdbInternal, DdbThrottled, DdbUnavailable, DdbValidation
from offerflow.db.dynamodb.retry import RetryPolicy, ddb_call, map_client_error


def _client_error(code: str, operation: str = "PutItem", **extra) -> ClientError:
    response = {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"RequestId": "req-1"}, **extra}
    return ClientError(response, operation)


def _map(exc: Exception):
    return map_client_error(operation="PutItem", table_name="T", key={"pk": "OFFER#1"}, exc=exc)


def test_conditional_failures_are_conflicts():
    mapped = _map(_client_error("ConditionalCheckFailedException"))
    assert isinstance(mapped, DdbConflict)
    assert mapped.retryable is False
    assert mapped.aws_request_id == "req-1"


def test_cancelled_transactions_split_by_reason():
    conflict = _client_error(
        "TransactionCanceledException",
        "TransactWriteItems",
        CancellationReasons=[{"Code": "None"}, {"Code": "ConditionalCheckFailed"}],
    )
    contention = _client_error(
        "TransactionCanceledException",
        "TransactWriteItems",
        CancellationReasons=[{"Code": "TransactionConflict"}],
    )
    assert isinstance(_map(conflict), DdbConflict)
    assert isinstance(_map(contention), DdbThrottled)
    assert _map(contention).retryable is True


def test_other_codes():
    assert isinstance(_map(_client_error("ValidationException")), DdbValidation)
    assert isinstance(_map(_client_error("AccessDeniedException")), DdbUnavailable)
    assert isinstance(_map(_client_error("SomethingNew")), DdbInternal)
    assert _map(EndpointConnectionError(endpoint_url="http://localhost:8000")).retryable is True


def test_throttling_is_retried_with_backoff():
    calls = {"n": 0}
    sleeps: list[float] = []

    def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise _client_error("ProvisionedThroughputExceededException")
        return "ok"

    assert ddb_call("PutItem", flaky, sleep=sleeps.append) == "ok"
    assert calls["n"] == 3
    assert len(sleeps) == 2


def test_retries_stop_at_max_attempts():
    sleeps: list[float] = []

    def always_throttled():
        raise _client_error("ThrottlingException")

    with pytest.raises(DdbThrottled):
        ddb_call("Query", always_throttled, retry_policy=RetryPolicy(max_attempts=3), sleep=sleeps.append)
    assert len(sleeps) == 2


def test_conflicts_are_never_retried():
    sleeps: list[float] = []

    def conflicting():
        raise _client_error("ConditionalCheckFailedException")

    with pytest.raises(DdbConflict) as exc:
        ddb_call("PutItem", conflicting, sleep=sleeps.append)
    assert sleeps == []
    assert isinstance(exc.value.__cause__, ClientError)
