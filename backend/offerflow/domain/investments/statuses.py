from __future__ import annotations

from typing import Literal

ApprovalStatus = Literal["not_required", "pending", "approved", "rejected"]
Decision = Literal["approve", "reject"]

OfferStatus = Literal[
    "pending",
    "investor_advisor_approved",
    "investor_advisor_rejected",
    "startup_advisor_approved",
    "startup_advisor_rejected",
    "accepted",
    "rejected",
]

OpportunityStatus = Literal["draft", "active", "completed", "rejected"]
StartupApprovalStatus = Literal["pending", "approved", "rejected"]

CoInvestmentOfferStatus = Literal[
    "pending_investor_advisor_approval",
    "pending_lead_investor_approval",
    "pending_startup_approval",
    "accepted",
    "rejected",
    "investor_advisor_rejected",
    "lead_investor_rejected",
]

RecommendationStatus = Literal["recommended", "viewed", "interested", "declined"]

DECISIONS: frozenset[str] = frozenset({"approve", "reject"})

# Direct offers
OFFER_REJECTED_STATUSES: frozenset[str] = frozenset(
    {"rejected", "investor_advisor_rejected", "startup_advisor_rejected"}
)
OFFER_TERMINAL_STATUSES: frozenset[str] = OFFER_REJECTED_STATUSES | {"accepted"}

# Co-investment offers in these states hold part of the opportunity's co-investment capacity.
CO_OFFER_RESERVING_STATUSES: frozenset[str] = frozenset(
    {"accepted", "pending_lead_investor_approval", "pending_startup_approval"}
)

# Every co-investment offer that has not been rejected. The opportunity record keeps one holding per offer
# in this set; new offers are checked against all of them.
CO_OFFER_HOLDING_STATUSES: frozenset[str] = CO_OFFER_RESERVING_STATUSES | {"pending_investor_advisor_approval"}

RECOMMENDATION_STATUSES: frozenset[str] = frozenset({"recommended", "viewed", "interested", "declined"})


def is_offer_terminal(status: str | None) -> bool:
    return str(status or "") in OFFER_TERMINAL_STATUSES