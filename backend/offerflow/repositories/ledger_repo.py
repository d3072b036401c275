from __future__ import annotations

import uuid
from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.table import get_main_table
from .records import drop_none, normalize_for_api, now_iso


LEDGER_SK_PREFIX = "LEDGER#"


def ledger_entry_item(
    *,
    record_pk: str,
    record_id: str,
    activity_type: str,
    actor_id: str | None,
    description: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build (but do not write) a ledger entry living in the record's partition.

    Entries are written in the same transaction as the transition they
    describe, so the ledger never records a transition that did not happen.
    """
    created_at = now_iso()
    entry_id = "led_" + uuid.uuid4().hex[:16]
    return drop_none(
        {
            "pk": record_pk,
            "sk": f"{LEDGER_SK_PREFIX}{created_at}#{entry_id}",
            "entityType": "LedgerEntry",
            "entryId": entry_id,
            "recordId": record_id,
            "activityType": str(activity_type or "").strip() or "unknown",
            "actorId": str(actor_id).strip() if actor_id else None,
            "description": description,
            "details": details or None,
            "createdAt": created_at,
        }
    )


def list_entries(*, record_pk: str) -> list[dict[str, Any]]:
    """Ledger of one record, oldest first."""
    items = get_main_table().query_all(
        key_condition_expression=Key("pk").eq(record_pk) & Key("sk").begins_with(LEDGER_SK_PREFIX),
        scan_index_forward=True,
    )
    return [x for x in (normalize_for_api(it) for it in items) if x]


def entry_keys(*, record_pk: str) -> list[dict[str, str]]:
    items = get_main_table().query_all(
        key_condition_expression=Key("pk").eq(record_pk) & Key("sk").begins_with(LEDGER_SK_PREFIX),
        scan_index_forward=True,
    )
    return [{"pk": str(it["pk"]), "sk": str(it["sk"])} for it in items]
