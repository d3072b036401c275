"""
Co-investment opportunity state machine.

Same three-step shape as a direct offer, but the result is visibility rather
than a money transfer:

    lead advisor -> startup advisor -> startup -> status=active

Advisor steps are skipped (`not_required`) exactly when the party has no
advisor. Any rejection makes the listing `rejected`.
"""

from __future__ import annotations

from typing import Any

from ..identity.advisors import AdvisorAssignment, HasAdvisor, NoAdvisor
from .errors import InvalidTerms
from .transitions import (
    Transition,
    equity_percentage,
    non_negative_amount,
    positive_amount,
    party_id,
    require,
    require_actor,
    require_decision,
)


def new_opportunity(
    *,
    opportunity_id: str,
    lead_investor_id: str,
    startup_id: str,
    total_investment_amount: Any,
    total_equity_percentage: Any,
    minimum_co_investment: Any,
    maximum_co_investment: Any,
    currency: str,
    description: str | None,
    created_at: str,
) -> dict[str, Any]:
    total = positive_amount(total_investment_amount, "totalInvestmentAmount")
    minimum = non_negative_amount(minimum_co_investment, "minimumCoInvestment")
    maximum = non_negative_amount(maximum_co_investment, "maximumCoInvestment")
    if minimum > maximum:
        raise InvalidTerms(message="minimumCoInvestment must not exceed maximumCoInvestment")
    if maximum > total:
        raise InvalidTerms(message="maximumCoInvestment must not exceed totalInvestmentAmount")

    out: dict[str, Any] = {
        "opportunityId": opportunity_id,
        "leadInvestorId": party_id(lead_investor_id, "leadInvestorId"),
        "startupId": party_id(startup_id, "startupId"),
        "totalInvestmentAmount": total,
        "totalEquityPercentage": equity_percentage(total_equity_percentage, "totalEquityPercentage"),
        "minimumCoInvestment": minimum,
        "maximumCoInvestment": maximum,
        "currency": currency,
        "status": "draft",
        "leadAdvisorApproval": "pending",
        "startupApproval": "pending",
        "createdAt": created_at,
        "updatedAt": created_at,
    }
    if description:
        out["description"] = str(description).strip()
    return out


def _apply_startup_advisor_rule(opp: dict[str, Any], startup_advisor: AdvisorAssignment) -> str:
    if isinstance(startup_advisor, HasAdvisor):
        opp["startupAdvisorApproval"] = "pending"
        opp["startupAdvisorId"] = startup_advisor.advisor_id
        return "awaiting startup advisor"
    if isinstance(startup_advisor, NoAdvisor):
        opp["startupAdvisorApproval"] = "not_required"
        opp.pop("startupAdvisorId", None)
        return "startup has no advisor, forwarded to startup"
    raise TypeError(f"Unexpected advisor assignment: {startup_advisor!r}")


def advance_after_creation(
    opportunity: dict[str, Any],
    *,
    lead_advisor: AdvisorAssignment,
    startup_advisor: AdvisorAssignment,
) -> Transition:
    out = dict(opportunity)
    if isinstance(lead_advisor, HasAdvisor):
        out["leadAdvisorApproval"] = "pending"
        out["leadAdvisorId"] = lead_advisor.advisor_id
        note = "awaiting lead investor's advisor"
    elif isinstance(lead_advisor, NoAdvisor):
        out["leadAdvisorApproval"] = "not_required"
        note = "lead has no advisor; " + _apply_startup_advisor_rule(out, startup_advisor)
    else:
        raise TypeError(f"Unexpected advisor assignment: {lead_advisor!r}")
    return Transition(
        record=out,
        activity_type="opportunity_created",
        description=f"Co-investment opportunity listed ({note})",
    )


def _reject(opp: dict[str, Any], field_name: str, activity: str, who: str) -> Transition:
    out = dict(opp)
    out[field_name] = "rejected"
    out["status"] = "rejected"
    return Transition(
        record=out,
        activity_type=activity,
        description=f"{who} rejected the co-investment opportunity",
        terminal=True,
    )


def _require_draft(opp: dict[str, Any], field_name: str, message: str) -> None:
    require(
        opp.get("status") == "draft" and opp.get(field_name) == "pending",
        message,
        record_id=opp.get("opportunityId"),
    )


def resolve_lead_advisor(
    opportunity: dict[str, Any],
    *,
    decision: str,
    actor_id: str | None,
    startup_advisor: AdvisorAssignment,
) -> Transition:
    d = require_decision(decision)
    _require_draft(opportunity, "leadAdvisorApproval", "Opportunity is not awaiting the lead investor's advisor")
    require_actor(
        actor_id,
        opportunity.get("leadAdvisorId"),
        role="lead investor's advisor",
        record_id=opportunity.get("opportunityId"),
    )
    if d == "reject":
        return _reject(opportunity, "leadAdvisorApproval", "lead_advisor_rejected", "Lead investor's advisor")

    out = dict(opportunity)
    out["leadAdvisorApproval"] = "approved"
    note = _apply_startup_advisor_rule(out, startup_advisor)
    return Transition(
        record=out,
        activity_type="lead_advisor_approved",
        description=f"Lead investor's advisor approved the opportunity ({note})",
    )


def resolve_startup_advisor(opportunity: dict[str, Any], *, decision: str, actor_id: str | None) -> Transition:
    d = require_decision(decision)
    _require_draft(opportunity, "startupAdvisorApproval", "Opportunity is not awaiting the startup's advisor")
    require_actor(
        actor_id,
        opportunity.get("startupAdvisorId"),
        role="startup's advisor",
        record_id=opportunity.get("opportunityId"),
    )
    if d == "reject":
        return _reject(opportunity, "startupAdvisorApproval", "startup_advisor_rejected", "Startup's advisor")

    out = dict(opportunity)
    out["startupAdvisorApproval"] = "approved"
    return Transition(
        record=out,
        activity_type="startup_advisor_approved",
        description="Startup's advisor approved the opportunity; forwarded to startup",
    )


def resolve_startup(
    opportunity: dict[str, Any],
    *,
    decision: str,
    actor_id: str | None,
    decided_at: str,
) -> Transition:
    d = require_decision(decision)
    require(
        opportunity.get("status") == "draft"
        and opportunity.get("leadAdvisorApproval") in ("approved", "not_required")
        and opportunity.get("startupAdvisorApproval") in ("approved", "not_required")
        and opportunity.get("startupApproval") == "pending",
        "Opportunity is not awaiting the startup's decision",
        record_id=opportunity.get("opportunityId"),
    )
    require_actor(actor_id, opportunity.get("startupId"), role="startup", record_id=opportunity.get("opportunityId"))
    if d == "reject":
        return _reject(opportunity, "startupApproval", "opportunity_rejected", "Startup")

    out = dict(opportunity)
    out["startupApproval"] = "approved"
    out["status"] = "active"
    out["activatedAt"] = decided_at
    return Transition(
        record=out,
        activity_type="opportunity_activated",
        description="Startup approved the opportunity; open to co-investors",
    )


def close(opportunity: dict[str, Any], *, actor_id: str | None, reason: str, closed_at: str) -> Transition:
    """Mark an active opportunity completed (lead closing it, or capacity fully taken)."""
    oid = opportunity.get("opportunityId")
    require(
        opportunity.get("status") == "active",
        "Only active opportunities can be completed",
        record_id=oid,
    )
    if reason == "closed_by_lead":
        require_actor(actor_id, opportunity.get("leadInvestorId"), role="lead investor", record_id=oid)

    out = dict(opportunity)
    out["status"] = "completed"
    out["completedAt"] = closed_at
    out["completionReason"] = reason
    return Transition(
        record=out,
        activity_type="opportunity_completed",
        description="Co-investment opportunity completed"
        + (" by the lead investor" if reason == "closed_by_lead" else " (co-investment fully allocated)"),
        terminal=True,
    )


def is_listed(opportunity: dict[str, Any] | None) -> bool:
    """Visible to other investors (and open for co-investment offers)."""
    o = opportunity or {}
    return o.get("status") == "active" and o.get("startupApproval") == "approved"
