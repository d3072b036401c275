from __future__ import annotations

from typing import Any, Iterable

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.table import get_main_table
from .offers_repo import advisor_queue_gsi_pk, startup_queue_gsi_pk
from .records import (
    CREATE_CONDITION,
    normalize_for_api,
    now_iso,
    require_id,
    version_condition,
)


def co_offer_pk(co_offer_id: str) -> str:
    return f"COINVEST_OFFER#{require_id(co_offer_id, 'co_offer_id')}"


def co_offer_key(co_offer_id: str) -> dict[str, str]:
    return {"pk": co_offer_pk(co_offer_id), "sk": "PROFILE"}


def investor_gsi_pk(investor_id: str) -> str:
    return f"INVESTOR_COINVEST_OFFERS#{require_id(investor_id, 'investor_id')}"


def lead_queue_gsi_pk(lead_investor_id: str) -> str:
    return f"LEAD_QUEUE#{require_id(lead_investor_id, 'lead_investor_id')}"


def _queue_pk(co_offer: dict[str, Any]) -> str | None:
    status = co_offer.get("status")
    if status == "pending_investor_advisor_approval" and co_offer.get("investorAdvisorId"):
        return advisor_queue_gsi_pk(co_offer["investorAdvisorId"])
    if status == "pending_lead_investor_approval":
        return lead_queue_gsi_pk(co_offer["leadInvestorId"])
    if status == "pending_startup_approval":
        return startup_queue_gsi_pk(co_offer["startupId"])
    return None


def _storage_item(co_offer: dict[str, Any]) -> dict[str, Any]:
    cid = str(co_offer["coInvestmentOfferId"])
    created_at = str(co_offer.get("createdAt") or now_iso())
    sort_key = f"{created_at}#{cid}"
    item: dict[str, Any] = {
        **co_offer_key(cid),
        "entityType": "CoInvestmentOffer",
        **co_offer,
        "gsi1pk": investor_gsi_pk(co_offer["investorId"]),
        "gsi1sk": sort_key,
    }
    queue = _queue_pk(co_offer)
    if queue:
        item["gsi3pk"] = queue
        item["gsi3sk"] = f"COINVEST_OFFER#{sort_key}"
    return item


def get_co_offer(co_offer_id: str) -> dict[str, Any] | None:
    return normalize_for_api(get_main_table().get_item(key=co_offer_key(co_offer_id)))


def list_for_investor(*, investor_id: str, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    pg = get_main_table().query_page(
        index_name="GSI1",
        key_condition_expression=Key("gsi1pk").eq(investor_gsi_pk(investor_id)),
        scan_index_forward=False,
        limit=max(1, min(200, int(limit or 50))),
        next_token=next_token,
    )
    out = [normalize_for_api(it) for it in pg.items or []]
    return {"data": [x for x in out if x], "nextToken": pg.next_token}


def list_in_queue(*, queue_pk: str) -> list[dict[str, Any]]:
    items = get_main_table().query_all(
        index_name="GSI3",
        key_condition_expression=Key("gsi3pk").eq(queue_pk) & Key("gsi3sk").begins_with("COINVEST_OFFER#"),
    )
    out = [normalize_for_api(it) for it in items]
    return [x for x in out if x]


def insert_co_offer(
    *,
    co_offer: dict[str, Any],
    ledger_entries: Iterable[dict[str, Any]] = (),
    extra_puts: Iterable[dict[str, Any]] = (),
) -> dict[str, Any]:
    t = get_main_table()
    item = _storage_item({**co_offer, "version": 1})
    t.transact_write(
        puts=[
            t.tx_put(item=item, condition_expression=CREATE_CONDITION),
            *[t.tx_put(item=e) for e in ledger_entries],
            *extra_puts,
        ]
    )
    return normalize_for_api(item) or {}


def save_co_offer(
    *,
    co_offer: dict[str, Any],
    expected_version: int,
    ledger_entries: Iterable[dict[str, Any]] = (),
    extra_puts: Iterable[dict[str, Any]] = (),
) -> dict[str, Any]:
    t = get_main_table()
    item = _storage_item({**co_offer, "version": int(expected_version) + 1, "updatedAt": now_iso()})
    t.transact_write(
        puts=[
            t.tx_put(item=item, **version_condition(expected_version)),
            *[t.tx_put(item=e) for e in ledger_entries],
            *extra_puts,
        ]
    )
    return normalize_for_api(item) or {}
