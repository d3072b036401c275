from __future__ import annotations

from functools import lru_cache
from typing import Any

import boto3
from botocore.config import Config

from ...settings import settings


@lru_cache(maxsize=1)
def botocore_config() -> Config:
    # botocore's adaptive retries absorb throttling; `ddb_call` adds a narrow
    # app-layer retry on top for transaction contention.
    return Config(
        retries={"max_attempts": max(1, int(settings.ddb_max_attempts)), "mode": "adaptive"},
        connect_timeout=float(settings.ddb_connect_timeout_seconds),
        read_timeout=float(settings.ddb_read_timeout_seconds),
    )


def _connection_kwargs() -> dict[str, Any]:
    kwargs: dict[str, Any] = {"region_name": settings.aws_region, "config": botocore_config()}
    endpoint = str(settings.ddb_endpoint_url or "").strip()
    if endpoint:
        # DynamoDB Local / LocalStack during development.
        kwargs["endpoint_url"] = endpoint
    return kwargs


@lru_cache(maxsize=1)
def dynamodb_resource():
    return boto3.resource("dynamodb", **_connection_kwargs())


@lru_cache(maxsize=1)
def dynamodb_client():
    # Transactions go through the low-level client; everything else uses the resource.
    return boto3.client("dynamodb", **_connection_kwargs())


def table_resource(table_name: str):
    return dynamodb_resource().Table(table_name)
