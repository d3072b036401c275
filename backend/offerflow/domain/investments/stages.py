from __future__ import annotations

from typing import Any

Stage = int


def compute_offer_stage(offer: dict[str, Any]) -> Stage:
    """
    Canonical stage of a direct offer, derived from its approval fields.

    Stage is never stored; every reader derives it here so the number and the
    approval fields cannot disagree.

    1: waiting on (or stopped by) the investor's advisor
    2: waiting on (or stopped by) the startup's advisor
    3: waiting on (or stopped by) the startup
    4: accepted
    """
    o = offer or {}
    if str(o.get("status") or "") == "accepted":
        return 4

    investor_adv = str(o.get("investorAdvisorApproval") or "")
    if investor_adv not in ("approved", "not_required"):
        return 1

    startup_adv = str(o.get("startupAdvisorApproval") or "")
    if startup_adv not in ("approved", "not_required"):
        return 2

    return 3


def compute_opportunity_stage(opportunity: dict[str, Any]) -> Stage:
    """
    Display stage of a co-investment opportunity.

    `not_required` approvals count as passed, so listings whose parties have no
    advisors skip straight to the startup review.
    """
    o = opportunity or {}
    lead = str(o.get("leadAdvisorApproval") or "").lower()
    if lead in ("pending", "rejected", ""):
        return 1

    startup_adv = str(o.get("startupAdvisorApproval") or "").lower()
    if startup_adv in ("pending", "rejected", ""):
        return 2

    startup_appr = str(o.get("startupApproval") or "").lower()
    if startup_appr == "approved" or str(o.get("status") or "") == "completed":
        return 4
    return 3


_OFFER_STAGE_LABELS = {
    1: "Investor advisor approval",
    2: "Startup advisor approval",
    3: "Startup review",
    4: "Accepted by startup",
}

_OPPORTUNITY_STAGE_LABELS = {
    1: "Lead investor advisor approval",
    2: "Startup advisor approval",
    3: "Startup review",
    4: "Accepted by startup",
}


def offer_stage_label(stage: Stage) -> str:
    return _OFFER_STAGE_LABELS.get(int(stage), "Unknown")


def opportunity_stage_label(stage: Stage) -> str:
    return _OPPORTUNITY_STAGE_LABELS.get(int(stage), "Unknown")
