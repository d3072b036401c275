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


def opportunity_pk(opportunity_id: str) -> str:
    return f"COINVEST_OPP#{require_id(opportunity_id, 'opportunity_id')}"


def opportunity_key(opportunity_id: str) -> dict[str, str]:
    return {"pk": opportunity_pk(opportunity_id), "sk": "PROFILE"}


def lead_opportunities_gsi_pk(lead_investor_id: str) -> str:
    return f"LEAD_OPPS#{require_id(lead_investor_id, 'lead_investor_id')}"


def status_gsi_pk(status: str) -> str:
    return f"COINVEST_OPPS#{require_id(status, 'status')}"


def _queue_pk(opp: dict[str, Any]) -> str | None:
    if opp.get("status") != "draft":
        return None
    if opp.get("leadAdvisorApproval") == "pending" and opp.get("leadAdvisorId"):
        return advisor_queue_gsi_pk(opp["leadAdvisorId"])
    if opp.get("startupAdvisorApproval") == "pending" and opp.get("startupAdvisorId"):
        return advisor_queue_gsi_pk(opp["startupAdvisorId"])
    if opp.get("startupAdvisorApproval") in ("approved", "not_required") and opp.get("startupApproval") == "pending":
        return startup_queue_gsi_pk(opp["startupId"])
    return None


def _storage_item(opp: dict[str, Any]) -> dict[str, Any]:
    oid = str(opp["opportunityId"])
    created_at = str(opp.get("createdAt") or now_iso())
    sort_key = f"{created_at}#{oid}"
    item: dict[str, Any] = {
        **opportunity_key(oid),
        "entityType": "CoInvestmentOpportunity",
        **opp,
        "gsi1pk": lead_opportunities_gsi_pk(opp["leadInvestorId"]),
        "gsi1sk": sort_key,
        # GSI2: set membership by status ("which opportunities are active").
        "gsi2pk": status_gsi_pk(opp.get("status") or "draft"),
        "gsi2sk": sort_key,
    }
    queue = _queue_pk(opp)
    if queue:
        item["gsi3pk"] = queue
        item["gsi3sk"] = f"OPPORTUNITY#{sort_key}"
    return item


def get_opportunity(opportunity_id: str) -> dict[str, Any] | None:
    return normalize_for_api(get_main_table().get_item(key=opportunity_key(opportunity_id)))


def list_by_status(*, status: str, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    pg = get_main_table().query_page(
        index_name="GSI2",
        key_condition_expression=Key("gsi2pk").eq(status_gsi_pk(status)),
        scan_index_forward=False,
        limit=max(1, min(200, int(limit or 50))),
        next_token=next_token,
    )
    out = [normalize_for_api(it) for it in pg.items or []]
    return {"data": [x for x in out if x], "nextToken": pg.next_token}


def list_for_lead(*, lead_investor_id: str, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    pg = get_main_table().query_page(
        index_name="GSI1",
        key_condition_expression=Key("gsi1pk").eq(lead_opportunities_gsi_pk(lead_investor_id)),
        scan_index_forward=False,
        limit=max(1, min(200, int(limit or 50))),
        next_token=next_token,
    )
    out = [normalize_for_api(it) for it in pg.items or []]
    return {"data": [x for x in out if x], "nextToken": pg.next_token}


def list_in_queue(*, queue_pk: str) -> list[dict[str, Any]]:
    items = get_main_table().query_all(
        index_name="GSI3",
        key_condition_expression=Key("gsi3pk").eq(queue_pk) & Key("gsi3sk").begins_with("OPPORTUNITY#"),
    )
    out = [normalize_for_api(it) for it in items]
    return [x for x in out if x]


def insert_opportunity(*, opportunity: dict[str, Any], ledger_entries: Iterable[dict[str, Any]] = ()) -> dict[str, Any]:
    t = get_main_table()
    item = _storage_item({**opportunity, "version": 1})
    t.transact_write(
        puts=[
            t.tx_put(item=item, condition_expression=CREATE_CONDITION),
            *[t.tx_put(item=e) for e in ledger_entries],
        ]
    )
    return normalize_for_api(item) or {}


def guard_put(*, opportunity: dict[str, Any], expected_version: int) -> dict[str, Any]:
    """
    Transaction item re-writing the opportunity at `expected_version` + 1.

    Every co-investment offer write carries this with the offer's holding
    updated, so writes against one opportunity serialize on its version.
    """
    item = _storage_item({**opportunity, "version": int(expected_version) + 1, "updatedAt": now_iso()})
    return get_main_table().tx_put(item=item, **version_condition(expected_version))


def save_opportunity(
    *,
    opportunity: dict[str, Any],
    expected_version: int,
    ledger_entries: Iterable[dict[str, Any]] = (),
) -> dict[str, Any]:
    t = get_main_table()
    item = _storage_item({**opportunity, "version": int(expected_version) + 1, "updatedAt": now_iso()})
    t.transact_write(
        puts=[
            t.tx_put(item=item, **version_condition(expected_version)),
            *[t.tx_put(item=e) for e in ledger_entries],
        ]
    )
    return normalize_for_api(item) or {}
