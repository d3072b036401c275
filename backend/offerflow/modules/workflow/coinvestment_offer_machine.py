"""
Co-investment offer state machine.

    pending_investor_advisor_approval   (skipped when the co-investor has no advisor)
    pending_lead_investor_approval
    pending_startup_approval
    accepted

Capacity is reserved optimistically: every step that moves an offer into or
through the reserving statuses is re-checked against the opportunity's
current siblings. Callers pass the holdings recorded on the opportunity, which
they re-write in the same transaction.
"""

from __future__ import annotations

from typing import Any, Iterable

from ...domain.investments import allocation
from ..identity.advisors import AdvisorAssignment, HasAdvisor, NoAdvisor
from .errors import AllocationExceeded, InvalidTerms, OpportunityNotActive, SelfOfferForbidden
from .opportunity_machine import is_listed
from .transitions import (
    Transition,
    currency_code,
    equity_percentage,
    positive_amount,
    party_id,
    require,
    require_actor,
    require_decision,
)


def _check_capacity(
    opportunity: dict[str, Any],
    siblings: Iterable[dict[str, Any]],
    amount: Any,
    *,
    exclude_offer_id: str | None,
    include_advisor_pending: bool,
) -> None:
    siblings = list(siblings)
    if allocation.exceeds_capacity(
        opportunity,
        siblings,
        amount,
        exclude_offer_id=exclude_offer_id,
        include_advisor_pending=include_advisor_pending,
    ):
        remaining = allocation.remaining_capacity(opportunity, siblings, exclude_offer_id=exclude_offer_id)
        raise AllocationExceeded(
            message="Offer amount exceeds the opportunity's remaining co-investment capacity",
            record_id=opportunity.get("opportunityId"),
            details={
                "requestedAmount": str(amount),
                "remainingCapacity": str(remaining),
                "maximumCoInvestment": str(opportunity.get("maximumCoInvestment")),
            },
        )


def new_co_offer(
    *,
    co_offer_id: str,
    investor_id: str,
    opportunity: dict[str, Any],
    siblings: Iterable[dict[str, Any]],
    offer_amount: Any,
    equity: Any,
    currency: Any,
    investor_advisor: AdvisorAssignment,
    created_at: str,
) -> Transition:
    oid = opportunity.get("opportunityId")
    investor_id = party_id(investor_id, "investorId")
    if not is_listed(opportunity):
        raise OpportunityNotActive(message="Opportunity is not open for co-investment", record_id=oid)
    if str(investor_id) == str(opportunity.get("leadInvestorId") or ""):
        raise SelfOfferForbidden(message="The lead investor cannot co-invest in their own opportunity", record_id=oid)

    amount = positive_amount(offer_amount, "offerAmount")
    minimum = allocation.to_decimal(opportunity.get("minimumCoInvestment"))
    if amount < minimum:
        raise InvalidTerms(
            message=f"offerAmount is below the opportunity's minimum co-investment of {minimum}",
            record_id=oid,
        )
    _check_capacity(opportunity, siblings, amount, exclude_offer_id=None, include_advisor_pending=True)

    record: dict[str, Any] = {
        "coInvestmentOfferId": co_offer_id,
        "opportunityId": oid,
        "investorId": investor_id,
        # Denormalized for work queues; authorization always re-reads the opportunity.
        "leadInvestorId": opportunity.get("leadInvestorId"),
        "startupId": opportunity.get("startupId"),
        "offerAmount": amount,
        "equityPercentage": equity_percentage(equity),
        "currency": currency_code(currency, str(opportunity.get("currency") or "")),
        "createdAt": created_at,
        "updatedAt": created_at,
    }
    if isinstance(investor_advisor, HasAdvisor):
        record["investorAdvisorApproval"] = "pending"
        record["investorAdvisorId"] = investor_advisor.advisor_id
        record["status"] = "pending_investor_advisor_approval"
        note = "awaiting investor advisor"
    elif isinstance(investor_advisor, NoAdvisor):
        record["investorAdvisorApproval"] = "not_required"
        record["status"] = "pending_lead_investor_approval"
        note = "investor has no advisor, forwarded to lead investor"
    else:
        raise TypeError(f"Unexpected advisor assignment: {investor_advisor!r}")

    return Transition(
        record=record,
        activity_type="co_investment_offer_created",
        description=f"Co-investment offer submitted ({note})",
    )


def resolve_investor_advisor(
    co_offer: dict[str, Any],
    *,
    decision: str,
    actor_id: str | None,
    opportunity: dict[str, Any],
    siblings: Iterable[dict[str, Any]],
) -> Transition:
    d = require_decision(decision)
    cid = co_offer.get("coInvestmentOfferId")
    require(
        co_offer.get("status") == "pending_investor_advisor_approval"
        and co_offer.get("investorAdvisorApproval") == "pending",
        "Co-investment offer is not awaiting the investor's advisor",
        record_id=cid,
    )
    require_actor(actor_id, co_offer.get("investorAdvisorId"), role="investor's advisor", record_id=cid)

    out = dict(co_offer)
    if d == "reject":
        out["investorAdvisorApproval"] = "rejected"
        out["status"] = "investor_advisor_rejected"
        return Transition(
            record=out,
            activity_type="investor_advisor_rejected",
            description="Investor advisor rejected the co-investment offer",
            terminal=True,
        )

    require(is_listed(opportunity), "Opportunity is no longer open for co-investment", record_id=cid)
    _check_capacity(opportunity, siblings, co_offer.get("offerAmount"), exclude_offer_id=cid, include_advisor_pending=False)
    out["investorAdvisorApproval"] = "approved"
    out["status"] = "pending_lead_investor_approval"
    return Transition(
        record=out,
        activity_type="investor_advisor_approved",
        description="Investor advisor approved the co-investment offer; forwarded to lead investor",
    )


def resolve_lead_investor(
    co_offer: dict[str, Any],
    *,
    decision: str,
    actor_id: str | None,
    opportunity: dict[str, Any],
    siblings: Iterable[dict[str, Any]],
) -> Transition:
    d = require_decision(decision)
    cid = co_offer.get("coInvestmentOfferId")
    require(
        co_offer.get("status") == "pending_lead_investor_approval",
        "Co-investment offer is not awaiting the lead investor",
        record_id=cid,
    )
    require_actor(actor_id, opportunity.get("leadInvestorId"), role="lead investor", record_id=cid)

    out = dict(co_offer)
    if d == "reject":
        out["status"] = "lead_investor_rejected"
        return Transition(
            record=out,
            activity_type="lead_investor_rejected",
            description="Lead investor rejected the co-investment offer",
            terminal=True,
        )

    require(is_listed(opportunity), "Opportunity is no longer open for co-investment", record_id=cid)
    _check_capacity(opportunity, siblings, co_offer.get("offerAmount"), exclude_offer_id=cid, include_advisor_pending=False)
    out["status"] = "pending_startup_approval"
    return Transition(
        record=out,
        activity_type="lead_investor_approved",
        description="Lead investor approved the co-investment offer; forwarded to startup",
    )


def resolve_startup(
    co_offer: dict[str, Any],
    *,
    decision: str,
    actor_id: str | None,
    opportunity: dict[str, Any],
    siblings: Iterable[dict[str, Any]],
    decided_at: str,
) -> Transition:
    d = require_decision(decision)
    cid = co_offer.get("coInvestmentOfferId")
    require(
        co_offer.get("status") == "pending_startup_approval",
        "Co-investment offer is not awaiting the startup",
        record_id=cid,
    )
    require_actor(actor_id, opportunity.get("startupId"), role="startup", record_id=cid)

    out = dict(co_offer)
    if d == "reject":
        out["status"] = "rejected"
        return Transition(
            record=out,
            activity_type="co_investment_offer_rejected",
            description="Startup rejected the co-investment offer",
            terminal=True,
        )

    siblings = list(siblings)
    require(is_listed(opportunity), "Opportunity is no longer open for co-investment", record_id=cid)
    _check_capacity(opportunity, siblings, co_offer.get("offerAmount"), exclude_offer_id=cid, include_advisor_pending=False)

    equity = allocation.cap_co_investor_equity(opportunity, siblings, co_offer)
    out["status"] = "accepted"
    out["acceptedAt"] = decided_at
    out["equityPercentage"] = equity.equity_percentage
    details: dict[str, Any] = {}
    if equity.capped:
        out["requestedEquityPercentage"] = equity.requested_equity_percentage
        out["needsManualReview"] = True
        details = {
            "requestedEquityPercentage": equity.requested_equity_percentage,
            "grantedEquityPercentage": equity.equity_percentage,
        }

    others = [s for s in siblings if s.get("coInvestmentOfferId") != cid]
    out["allocationSnapshot"] = allocation.snapshot(opportunity, [*others, out]).to_record()
    return Transition(
        record=out,
        activity_type="co_investment_offer_accepted",
        description="Startup accepted the co-investment offer"
        + ("; equity capped and flagged for manual review" if equity.capped else ""),
        terminal=True,
        details=details,
    )