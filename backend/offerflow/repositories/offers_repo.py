from __future__ import annotations

from typing import Any, Iterable

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.table import get_main_table
from ..domain.investments.stages import compute_offer_stage
from ..domain.investments.statuses import is_offer_terminal
from .records import (
    CREATE_CONDITION,
    normalize_for_api,
    now_iso,
    require_id,
    version_condition,
)


def offer_pk(offer_id: str) -> str:
    return f"OFFER#{require_id(offer_id, 'offer_id')}"


def offer_key(offer_id: str) -> dict[str, str]:
    return {"pk": offer_pk(offer_id), "sk": "PROFILE"}


def pair_lock_key(investor_id: str, startup_id: str) -> dict[str, str]:
    """One row per (investor, startup) while that pair has a live offer."""
    inv = require_id(investor_id, "investor_id")
    su = require_id(startup_id, "startup_id")
    return {"pk": f"OFFER_PAIR#{inv}#{su}", "sk": "ACTIVE"}


def investor_offers_gsi_pk(investor_id: str) -> str:
    return f"INVESTOR_OFFERS#{require_id(investor_id, 'investor_id')}"


def startup_offers_gsi_pk(startup_id: str) -> str:
    return f"STARTUP_OFFERS#{require_id(startup_id, 'startup_id')}"


def advisor_queue_gsi_pk(advisor_id: str) -> str:
    return f"ADVISOR_QUEUE#{require_id(advisor_id, 'advisor_id')}"


def startup_queue_gsi_pk(startup_id: str) -> str:
    return f"STARTUP_QUEUE#{require_id(startup_id, 'startup_id')}"


def _queue_pk(offer: dict[str, Any]) -> str | None:
    """Work queue of whoever decides the offer next (None once it is decided)."""
    if offer.get("investorAdvisorApproval") == "pending" and offer.get("investorAdvisorId"):
        return advisor_queue_gsi_pk(offer["investorAdvisorId"])
    if offer.get("startupAdvisorApproval") == "pending" and offer.get("startupAdvisorId"):
        return advisor_queue_gsi_pk(offer["startupAdvisorId"])
    if not is_offer_terminal(offer.get("status")) and compute_offer_stage(offer) == 3:
        return startup_queue_gsi_pk(offer["startupId"])
    return None


def _storage_item(offer: dict[str, Any]) -> dict[str, Any]:
    oid = str(offer["offerId"])
    created_at = str(offer.get("createdAt") or now_iso())
    sort_key = f"{created_at}#{oid}"
    item: dict[str, Any] = {
        **offer_key(oid),
        "entityType": "Offer",
        **offer,
        # GSI1: investor's offers, GSI2: startup's offers (both newest first).
        "gsi1pk": investor_offers_gsi_pk(offer["investorId"]),
        "gsi1sk": sort_key,
        "gsi2pk": startup_offers_gsi_pk(offer["startupId"]),
        "gsi2sk": sort_key,
    }
    # GSI3: advisor or startup work queue; only populated while a decision is due.
    queue = _queue_pk(offer)
    if queue:
        item["gsi3pk"] = queue
        item["gsi3sk"] = f"OFFER#{sort_key}"
    return item


def get_offer(offer_id: str) -> dict[str, Any] | None:
    return normalize_for_api(get_main_table().get_item(key=offer_key(offer_id)))


def _page(index_name: str, pk_attr: str, pk_value: str, *, limit: int, next_token: str | None) -> dict[str, Any]:
    pg = get_main_table().query_page(
        index_name=index_name,
        key_condition_expression=Key(pk_attr).eq(pk_value),
        scan_index_forward=False,
        limit=max(1, min(200, int(limit or 50))),
        next_token=next_token,
    )
    out = [normalize_for_api(it) for it in pg.items or []]
    return {"data": [x for x in out if x], "nextToken": pg.next_token}


def list_offers_for_investor(*, investor_id: str, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    return _page("GSI1", "gsi1pk", investor_offers_gsi_pk(investor_id), limit=limit, next_token=next_token)


def list_offers_for_startup(*, startup_id: str, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    return _page("GSI2", "gsi2pk", startup_offers_gsi_pk(startup_id), limit=limit, next_token=next_token)


def list_offers_for_pair(*, investor_id: str, startup_id: str) -> list[dict[str, Any]]:
    su = require_id(startup_id, "startup_id")
    items = get_main_table().query_all(
        index_name="GSI1",
        key_condition_expression=Key("gsi1pk").eq(investor_offers_gsi_pk(investor_id)),
    )
    out = [normalize_for_api(it) for it in items if str(it.get("startupId") or "") == su]
    return [x for x in out if x]


def _queued_offers(queue_pk: str) -> list[dict[str, Any]]:
    items = get_main_table().query_all(
        index_name="GSI3",
        key_condition_expression=Key("gsi3pk").eq(queue_pk) & Key("gsi3sk").begins_with("OFFER#"),
    )
    out = [normalize_for_api(it) for it in items]
    return [x for x in out if x]


def list_offers_awaiting_advisor(*, advisor_id: str) -> list[dict[str, Any]]:
    return _queued_offers(advisor_queue_gsi_pk(advisor_id))


def list_offers_awaiting_startup(*, startup_id: str) -> list[dict[str, Any]]:
    return _queued_offers(startup_queue_gsi_pk(startup_id))


def insert_offer(*, offer: dict[str, Any], ledger_entries: Iterable[dict[str, Any]] = ()) -> dict[str, Any]:
    """
    Write a new offer together with its pair lock.

    Raises DdbConflict when the pair already holds a lock, i.e. another live
    offer for the same (investor, startup) exists or is being created.
    """
    t = get_main_table()
    item = _storage_item({**offer, "version": 1})
    lock = {
        **pair_lock_key(offer["investorId"], offer["startupId"]),
        "entityType": "OfferPairLock",
        "offerId": offer["offerId"],
        "createdAt": item.get("createdAt"),
    }
    t.transact_write(
        puts=[
            t.tx_put(item=item, condition_expression=CREATE_CONDITION),
            t.tx_put(item=lock, condition_expression=CREATE_CONDITION),
            *[t.tx_put(item=e) for e in ledger_entries],
        ]
    )
    return normalize_for_api(item) or {}


def save_offer(
    *,
    offer: dict[str, Any],
    expected_version: int,
    release_pair_lock: bool = False,
    ledger_entries: Iterable[dict[str, Any]] = (),
) -> dict[str, Any]:
    """
    Conditionally replace an offer read at `expected_version`.

    Raises DdbConflict when the record changed underneath the caller.
    """
    t = get_main_table()
    item = _storage_item({**offer, "version": int(expected_version) + 1, "updatedAt": now_iso()})
    deletes = []
    if release_pair_lock:
        deletes.append(t.tx_delete(key=pair_lock_key(offer["investorId"], offer["startupId"])))
    t.transact_write(
        puts=[
            t.tx_put(item=item, **version_condition(expected_version)),
            *[t.tx_put(item=e) for e in ledger_entries],
        ],
        deletes=deletes,
    )
    return normalize_for_api(item) or {}


def delete_offer(
    *,
    offer: dict[str, Any],
    expected_version: int,
    release_pair_lock: bool,
    extra_keys: Iterable[dict[str, str]] = (),
) -> None:
    """Remove an offer (and e.g. its ledger rows) if it is still at `expected_version`."""
    t = get_main_table()
    deletes = [t.tx_delete(key=offer_key(offer["offerId"]), **version_condition(expected_version))]
    if release_pair_lock:
        deletes.append(t.tx_delete(key=pair_lock_key(offer["investorId"], offer["startupId"])))
    deletes.extend(t.tx_delete(key=k) for k in extra_keys)
    t.transact_write(deletes=deletes)
