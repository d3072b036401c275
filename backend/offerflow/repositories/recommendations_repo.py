from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.errors import DdbConflict
from ..db.dynamodb.table import get_main_table
from .records import (
    CREATE_CONDITION,
    new_id,
    normalize_for_api,
    now_iso,
    require_id,
    version_condition,
)


def recommendation_key(recommendation_id: str) -> dict[str, str]:
    return {"pk": f"RECOMMENDATION#{require_id(recommendation_id, 'recommendation_id')}", "sk": "PROFILE"}


def dedupe_key(opportunity_id: str, investor_id: str) -> dict[str, str]:
    return {"pk": f"RECOMMENDATION_PAIR#{opportunity_id}#{investor_id}", "sk": "PROFILE"}


def investor_recommendations_gsi_pk(investor_id: str) -> str:
    return f"INVESTOR_RECS#{require_id(investor_id, 'investor_id')}"


def get_recommendation(recommendation_id: str) -> dict[str, Any] | None:
    return normalize_for_api(get_main_table().get_item(key=recommendation_key(recommendation_id)))


def create_recommendation(*, opportunity_id: str, advisor_id: str, investor_id: str) -> dict[str, Any]:
    """
    Record that an advisor recommended an opportunity to an investor.

    Recommending the same opportunity to the same investor twice returns the
    existing recommendation.
    """
    oid = require_id(opportunity_id, "opportunity_id")
    inv = require_id(investor_id, "investor_id")
    t = get_main_table()

    existing = t.get_item(key=dedupe_key(oid, inv))
    if existing and existing.get("recommendationId"):
        return get_recommendation(str(existing["recommendationId"])) or {}

    rid = new_id("rec")
    now = now_iso()
    item: dict[str, Any] = {
        **recommendation_key(rid),
        "entityType": "CoInvestmentRecommendation",
        "recommendationId": rid,
        "opportunityId": oid,
        "advisorId": require_id(advisor_id, "advisor_id"),
        "investorId": inv,
        "status": "recommended",
        "version": 1,
        "createdAt": now,
        "updatedAt": now,
        "gsi1pk": investor_recommendations_gsi_pk(inv),
        "gsi1sk": f"{now}#{rid}",
    }
    pair = {**dedupe_key(oid, inv), "entityType": "CoInvestmentRecommendationPair", "recommendationId": rid}
    try:
        t.transact_write(
            puts=[
                t.tx_put(item=item, condition_expression=CREATE_CONDITION),
                t.tx_put(item=pair, condition_expression=CREATE_CONDITION),
            ]
        )
    except DdbConflict:
        # Lost a race with an identical recommendation; return the winner.
        winner = t.get_item(key=dedupe_key(oid, inv)) or {}
        return get_recommendation(str(winner.get("recommendationId") or "")) or {}
    return normalize_for_api(item) or {}


def list_for_investor(*, investor_id: str, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    pg = get_main_table().query_page(
        index_name="GSI1",
        key_condition_expression=Key("gsi1pk").eq(investor_recommendations_gsi_pk(investor_id)),
        scan_index_forward=False,
        limit=max(1, min(200, int(limit or 50))),
        next_token=next_token,
    )
    out = [normalize_for_api(it) for it in pg.items or []]
    return {"data": [x for x in out if x], "nextToken": pg.next_token}


def set_status(*, recommendation: dict[str, Any], status: str) -> dict[str, Any]:
    rid = require_id(recommendation.get("recommendationId"), "recommendation_id")
    expected = int(recommendation.get("version") or 0)
    now = now_iso()
    item: dict[str, Any] = {
        **recommendation_key(rid),
        "entityType": "CoInvestmentRecommendation",
        **recommendation,
        "status": status,
        "version": expected + 1,
        "updatedAt": now,
        "gsi1pk": investor_recommendations_gsi_pk(recommendation["investorId"]),
        "gsi1sk": f"{recommendation.get('createdAt') or now}#{rid}",
    }
    get_main_table().put_item(item=item, **version_condition(expected))
    return normalize_for_api(item) or {}
