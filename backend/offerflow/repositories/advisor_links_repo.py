from __future__ import annotations

from typing import Any, Literal

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.table import get_main_table
from .records import normalize_for_api, now_iso, require_id

PartyKind = Literal["investor", "startup"]

PARTY_KINDS: frozenset[str] = frozenset({"investor", "startup"})


def _kind(kind: str) -> str:
    k = str(kind or "").strip().lower()
    if k not in PARTY_KINDS:
        raise ValueError(f"Unknown party kind: {kind!r}")
    return k


def link_key(kind: str, party_id: str) -> dict[str, str]:
    return {"pk": f"ADVISOR_LINK#{_kind(kind)}#{require_id(party_id, 'party_id')}", "sk": "PROFILE"}


def advisor_clients_gsi_pk(advisor_id: str) -> str:
    return f"ADVISOR_CLIENTS#{require_id(advisor_id, 'advisor_id')}"


def get_link(*, kind: str, party_id: str) -> dict[str, Any] | None:
    return normalize_for_api(get_main_table().get_item(key=link_key(kind, party_id)))


def put_link(*, kind: str, party_id: str, advisor_id: str) -> dict[str, Any]:
    aid = require_id(advisor_id, "advisor_id")
    pid = require_id(party_id, "party_id")
    k = _kind(kind)
    now = now_iso()
    item: dict[str, Any] = {
        **link_key(k, pid),
        "entityType": "AdvisorLink",
        "partyKind": k,
        "partyId": pid,
        "advisorId": aid,
        "linkedAt": now,
        # GSI1: parties an advisor is assigned to.
        "gsi1pk": advisor_clients_gsi_pk(aid),
        "gsi1sk": f"{k}#{pid}",
    }
    get_main_table().put_item(item=item)
    return normalize_for_api(item) or {}


def delete_link(*, kind: str, party_id: str) -> None:
    get_main_table().delete_item(key=link_key(kind, party_id))


def list_clients(*, advisor_id: str, kind: str | None = None) -> list[dict[str, Any]]:
    cond = Key("gsi1pk").eq(advisor_clients_gsi_pk(advisor_id))
    if kind:
        cond = cond & Key("gsi1sk").begins_with(f"{_kind(kind)}#")
    items = get_main_table().query_all(index_name="GSI1", key_condition_expression=cond, scan_index_forward=True)
    out = [normalize_for_api(it) for it in items]
    return [x for x in out if x]
