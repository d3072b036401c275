"""
Direct offer state machine.

    stage 1  investor advisor   (skipped when the investor has no advisor)
    stage 2  startup advisor    (skipped when the startup has no advisor)
    stage 3  startup decision
    stage 4  accepted, contact details revealed

Functions here are pure: they take the offer as last persisted plus the
advisor assignments looked up for this call, and return a `Transition`.
Stage is derived from the approval fields (see `compute_offer_stage`).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from ...domain.investments.stages import compute_offer_stage
from ...domain.investments.statuses import is_offer_terminal
from ..identity.advisors import AdvisorAssignment, HasAdvisor, NoAdvisor
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


def new_offer(
    *,
    offer_id: str,
    investor_id: str,
    startup_id: str,
    offer_amount: Any,
    equity: Any,
    currency: Any,
    default_currency: str,
    created_at: str,
) -> dict[str, Any]:
    return {
        "offerId": offer_id,
        "investorId": party_id(investor_id, "investorId"),
        "startupId": party_id(startup_id, "startupId"),
        "offerAmount": positive_amount(offer_amount, "offerAmount"),
        "equityPercentage": equity_percentage(equity),
        "currency": currency_code(currency, default_currency),
        "status": "pending",
        "investorAdvisorApproval": "pending",
        "contactDetailsRevealed": False,
        "createdAt": created_at,
        "updatedAt": created_at,
    }


def _apply_stage_two_rule(offer: dict[str, Any], startup_advisor: AdvisorAssignment) -> str:
    if isinstance(startup_advisor, HasAdvisor):
        offer["startupAdvisorApproval"] = "pending"
        offer["startupAdvisorId"] = startup_advisor.advisor_id
        return "awaiting startup advisor"
    if isinstance(startup_advisor, NoAdvisor):
        offer["startupAdvisorApproval"] = "not_required"
        offer.pop("startupAdvisorId", None)
        return "startup has no advisor, forwarded to startup"
    raise TypeError(f"Unexpected advisor assignment: {startup_advisor!r}")


def advance_after_creation(
    offer: dict[str, Any],
    *,
    investor_advisor: AdvisorAssignment,
    startup_advisor: AdvisorAssignment,
) -> Transition:
    out = dict(offer)
    if isinstance(investor_advisor, HasAdvisor):
        out["investorAdvisorApproval"] = "pending"
        out["investorAdvisorId"] = investor_advisor.advisor_id
        note = "awaiting investor advisor"
    elif isinstance(investor_advisor, NoAdvisor):
        out["investorAdvisorApproval"] = "not_required"
        note = "investor has no advisor; " + _apply_stage_two_rule(out, startup_advisor)
    else:
        raise TypeError(f"Unexpected advisor assignment: {investor_advisor!r}")
    return Transition(record=out, activity_type="offer_created", description=f"Offer submitted ({note})")


def resolve_investor_advisor(
    offer: dict[str, Any],
    *,
    decision: str,
    actor_id: str | None,
    startup_advisor: AdvisorAssignment,
) -> Transition:
    d = require_decision(decision)
    oid = offer.get("offerId")
    require(
        not is_offer_terminal(offer.get("status")) and offer.get("investorAdvisorApproval") == "pending",
        "Offer is not awaiting the investor advisor",
        record_id=oid,
    )
    require_actor(actor_id, offer.get("investorAdvisorId"), role="investor's advisor", record_id=oid)

    out = dict(offer)
    if d == "reject":
        out["investorAdvisorApproval"] = "rejected"
        out["status"] = "investor_advisor_rejected"
        return Transition(
            record=out,
            activity_type="investor_advisor_rejected",
            description="Investor advisor rejected the offer",
            terminal=True,
        )

    out["investorAdvisorApproval"] = "approved"
    out["status"] = "investor_advisor_approved"
    note = _apply_stage_two_rule(out, startup_advisor)
    return Transition(
        record=out,
        activity_type="investor_advisor_approved",
        description=f"Investor advisor approved the offer ({note})",
    )


def resolve_startup_advisor(offer: dict[str, Any], *, decision: str, actor_id: str | None) -> Transition:
    d = require_decision(decision)
    oid = offer.get("offerId")
    require(
        not is_offer_terminal(offer.get("status")) and offer.get("startupAdvisorApproval") == "pending",
        "Offer is not awaiting the startup advisor",
        record_id=oid,
    )
    require_actor(actor_id, offer.get("startupAdvisorId"), role="startup's advisor", record_id=oid)

    out = dict(offer)
    if d == "reject":
        out["startupAdvisorApproval"] = "rejected"
        out["status"] = "startup_advisor_rejected"
        return Transition(
            record=out,
            activity_type="startup_advisor_rejected",
            description="Startup advisor rejected the offer",
            terminal=True,
        )

    out["startupAdvisorApproval"] = "approved"
    out["status"] = "startup_advisor_approved"
    return Transition(
        record=out,
        activity_type="startup_advisor_approved",
        description="Startup advisor approved the offer; forwarded to startup",
    )


def resolve_startup(offer: dict[str, Any], *, decision: str, actor_id: str | None, decided_at: str) -> Transition:
    d = require_decision(decision)
    oid = offer.get("offerId")
    require(
        not is_offer_terminal(offer.get("status")) and compute_offer_stage(offer) == 3,
        "Offer is not awaiting the startup's decision",
        record_id=oid,
    )
    require_actor(actor_id, offer.get("startupId"), role="startup", record_id=oid)

    out = dict(offer)
    if d == "reject":
        out["status"] = "rejected"
        return Transition(
            record=out,
            activity_type="offer_rejected",
            description="Investment offer rejected by startup",
            terminal=True,
        )

    out["status"] = "accepted"
    out["contactDetailsRevealed"] = True
    out["contactDetailsRevealedAt"] = decided_at
    out["acceptedAt"] = decided_at
    return Transition(
        record=out,
        activity_type="offer_accepted",
        description="Investment offer accepted by startup; contact details revealed",
        terminal=True,
    )


def edit_terms(
    offer: dict[str, Any],
    *,
    actor_id: str | None,
    offer_amount: Any,
    equity: Any,
) -> Transition:
    oid = offer.get("offerId")
    require(
        offer.get("status") == "pending"
        and compute_offer_stage(offer) == 1
        and offer.get("investorAdvisorApproval") == "pending",
        "Offer terms can only change before any advisor has approved it",
        record_id=oid,
    )
    require_actor(actor_id, offer.get("investorId"), role="investor who made the offer", record_id=oid)

    new_amount: Decimal = positive_amount(offer_amount, "offerAmount")
    new_equity: Decimal = equity_percentage(equity)
    out = dict(offer)
    out["offerAmount"] = new_amount
    out["equityPercentage"] = new_equity
    return Transition(
        record=out,
        activity_type="offer_updated",
        description="Offer terms updated",
        details={
            "previousOfferAmount": offer.get("offerAmount"),
            "previousEquityPercentage": offer.get("equityPercentage"),
        },
    )


def ensure_cancellable(offer: dict[str, Any], *, actor_id: str | None) -> None:
    oid = offer.get("offerId")
    require(
        not is_offer_terminal(offer.get("status")) and compute_offer_stage(offer) == 1,
        "Only offers still waiting on the investor's advisor can be cancelled",
        record_id=oid,
    )
    require_actor(actor_id, offer.get("investorId"), role="investor who made the offer", record_id=oid)
