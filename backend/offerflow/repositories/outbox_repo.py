from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from ..settings import settings
from .records import CREATE_CONDITION, normalize_for_api, now_iso, require_id, version_condition

PENDING_GSI_PK = "OUTBOX#PENDING"


def outbox_key(event_id: str) -> dict[str, str]:
    return {"pk": f"OUTBOX#{require_id(event_id, 'event_id')}", "sk": "PROFILE"}


def _write(item: dict[str, Any], *, expected_version: int) -> dict[str, Any]:
    out = {**item, "version": int(expected_version) + 1, "updatedAt": now_iso()}
    get_main_table().put_item(item=out, **version_condition(expected_version))
    return out


def enqueue_event(*, event_type: str, payload: dict[str, Any], dedupe_key: str | None = None) -> dict[str, Any]:
    """
    Enqueue an outbox event for async side effects (webhook notifications).

    Best-effort dedupe:
    - when dedupe_key is provided, we use it as event_id so retries collapse.
    """
    et = require_id(event_type, "event_type")
    eid = str(dedupe_key or "").strip() or ("evt_" + uuid.uuid4().hex[:18])

    now = now_iso()
    item: dict[str, Any] = {
        **outbox_key(eid),
        "entityType": "OutboxEvent",
        "eventId": eid,
        "eventType": et,
        "status": "pending",
        "attempts": 0,
        "maxAttempts": int(settings.outbox_max_attempts),
        "nextAttemptAt": now,
        "createdAt": now,
        "updatedAt": now,
        "version": 1,
        "payload": payload if isinstance(payload, dict) else {},
        # GSI1: pending queue
        "gsi1pk": PENDING_GSI_PK,
        "gsi1sk": f"{now}#{eid}",
    }
    try:
        get_main_table().put_item(item=item, condition_expression=CREATE_CONDITION)
    except DdbConflict:
        # Dedupe hit; return existing
        existing = get_main_table().get_item(key=outbox_key(eid)) or {}
        return normalize_for_api(existing) or {}
    return normalize_for_api(item) or {}


def list_pending(*, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    pg = get_main_table().query_page(
        index_name="GSI1",
        key_condition_expression=Key("gsi1pk").eq(PENDING_GSI_PK),
        scan_index_forward=True,
        limit=max(1, min(200, int(limit or 50))),
        next_token=next_token,
    )
    return {"items": pg.items or [], "nextToken": pg.next_token}


def claim_event(*, event_id: str) -> dict[str, Any] | None:
    """
    Atomically move an event from pending -> processing.

    Returns None when the event is gone, not pending, or another worker
    claimed it first.
    """
    raw = get_main_table().get_item(key=outbox_key(event_id))
    if not raw or raw.get("status") != "pending":
        return None
    claimed = {k: v for k, v in raw.items() if k not in ("gsi1pk", "gsi1sk")}
    claimed.update({"status": "processing", "lockedAt": now_iso()})
    try:
        return _write(claimed, expected_version=int(raw.get("version") or 0))
    except DdbConflict:
        return None


def mark_done(*, event: dict[str, Any], result: dict[str, Any] | None = None) -> dict[str, Any]:
    done = {k: v for k, v in event.items() if k not in ("gsi1pk", "gsi1sk")}
    done.update({"status": "done", "result": result if isinstance(result, dict) else {}})
    return _write(done, expected_version=int(event.get("version") or 0))


def mark_retry(*, event: dict[str, Any], error: str) -> dict[str, Any]:
    """
    Mark a processing event back to pending with exponential backoff, or
    failed once it has used all its attempts.
    """
    attempts = int(event.get("attempts") or 0) + 1
    max_attempts = int(event.get("maxAttempts") or settings.outbox_max_attempts)
    out = {k: v for k, v in event.items() if k not in ("gsi1pk", "gsi1sk")}
    out.update({"attempts": attempts, "lastError": str(error or "")[:800]})

    if attempts >= max_attempts:
        out["status"] = "failed"
        return _write(out, expected_version=int(event.get("version") or 0))

    # Exponential backoff capped at 5 minutes
    delay_s = min(300, int(2 ** min(10, attempts)))
    next_at = datetime.fromtimestamp(time.time() + delay_s, tz=timezone.utc).isoformat().replace("+00:00", "Z")
    out.update(
        {
            "status": "pending",
            "nextAttemptAt": next_at,
            "gsi1pk": PENDING_GSI_PK,
            "gsi1sk": f"{next_at}#{out.get('eventId')}",
        }
    )
    return _write(out, expected_version=int(event.get("version") or 0))
