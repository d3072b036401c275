from __future__ import annotations

from typing import Any, Iterable

from ...db.dynamodb.errors import DdbConflict
from ...domain.investments.statuses import RECOMMENDATION_STATUSES
from ...observability.logging import get_logger
from ...repositories import coinvestment_opportunities_repo, recommendations_repo
from ..identity.advisors import advises
from ..workflow.errors import (
    ActorNotAuthorized,
    InvalidTerms,
    InvalidTransition,
    OpportunityNotActive,
    RecordNotFound,
)
from ..workflow.opportunity_machine import is_listed

log = get_logger("recommendations")

# Where an investor may move a recommendation next.
_NEXT_STATUSES: dict[str, frozenset[str]] = {
    "recommended": frozenset({"viewed", "interested", "declined"}),
    "viewed": frozenset({"interested", "declined"}),
    "interested": frozenset({"declined"}),
    "declined": frozenset(),
}


def recommend_opportunity(
    *,
    opportunity_id: str,
    advisor_id: str | None,
    investor_ids: Iterable[str],
) -> list[dict[str, Any]]:
    """
    Recommend an active opportunity to investors the caller advises.

    All investors are checked before anything is written, so a request naming
    one investor the caller does not advise records nothing.
    """
    opp = coinvestment_opportunities_repo.get_opportunity(opportunity_id)
    if not opp:
        raise RecordNotFound(message="Co-investment opportunity not found", record_id=opportunity_id)
    if not is_listed(opp):
        raise OpportunityNotActive(message="Only active opportunities can be recommended", record_id=opportunity_id)
    if not advisor_id:
        raise ActorNotAuthorized(message="Only an investor's advisor may recommend opportunities")

    targets: list[str] = []
    for raw in investor_ids or []:
        inv = str(raw or "").strip()
        if inv and inv not in targets:
            targets.append(inv)
    if not targets:
        raise InvalidTerms(message="investorIds must name at least one investor", record_id=opportunity_id)

    for inv in targets:
        if inv == str(opp.get("leadInvestorId") or ""):
            raise InvalidTerms(
                message="The lead investor cannot be recommended their own opportunity",
                record_id=opportunity_id,
            )
        if not advises(advisor_id=advisor_id, kind="investor", party_id=inv):
            raise ActorNotAuthorized(
                message=f"You are not the advisor of investor {inv}",
                record_id=opportunity_id,
            )

    out = [
        recommendations_repo.create_recommendation(opportunity_id=opportunity_id, advisor_id=advisor_id, investor_id=inv)
        for inv in targets
    ]
    log.info("opportunity_recommended", opportunity_id=opportunity_id, advisor_id=advisor_id, investors=len(out))
    return out


def list_recommendations(*, investor_id: str, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    return recommendations_repo.list_for_investor(investor_id=investor_id, limit=limit, next_token=next_token)


def update_recommendation_status(*, recommendation_id: str, status: str, actor_id: str | None) -> dict[str, Any]:
    rec = recommendations_repo.get_recommendation(recommendation_id)
    if not rec:
        raise RecordNotFound(message="Recommendation not found", record_id=recommendation_id)

    s = str(status or "").strip().lower()
    if s not in RECOMMENDATION_STATUSES:
        raise InvalidTerms(message=f"Unknown recommendation status: {status!r}", record_id=recommendation_id)

    current = str(rec.get("status") or "recommended")
    if s not in _NEXT_STATUSES.get(current, frozenset()):
        raise InvalidTransition(
            message=f"Recommendation cannot move from {current} to {s}",
            record_id=recommendation_id,
        )
    if not actor_id or str(actor_id) != str(rec.get("investorId") or ""):
        raise ActorNotAuthorized(
            message="Only the recommended investor may update this recommendation",
            record_id=recommendation_id,
        )

    try:
        saved = recommendations_repo.set_status(recommendation=rec, status=s)
    except DdbConflict as e:
        raise InvalidTransition(
            message="Recommendation was changed by another request; reload and try again",
            record_id=recommendation_id,
        ) from e
    log.info("recommendation_updated", recommendation_id=recommendation_id, status=s)
    return saved
