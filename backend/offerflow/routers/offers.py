from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, Field

from ..modules.workflow import workflow_service
from .deps import DecisionRequest, TermsRequest, actor_id, page_limit

router = APIRouter(tags=["offers"])


class CreateOfferRequest(BaseModel):
    startupId: str = Field(..., min_length=1)
    offerAmount: Decimal
    equityPercentage: Decimal
    currency: str | None = None


@router.post("/offers", status_code=201)
def create_offer(request: Request, body: CreateOfferRequest):
    # The investor is always the caller.
    return workflow_service.create_offer(
        investor_id=actor_id(request) or "",
        startup_id=body.startupId.strip(),
        offer_amount=body.offerAmount,
        equity_percentage=body.equityPercentage,
        currency=body.currency,
    )


@router.get("/offers/{offerId}")
def get_offer(offerId: str):
    return workflow_service.get_offer(offerId)


@router.put("/offers/{offerId}")
def edit_offer(offerId: str, request: Request, body: TermsRequest):
    return workflow_service.edit_offer(
        offer_id=offerId,
        actor_id=actor_id(request),
        offer_amount=body.offerAmount,
        equity_percentage=body.equityPercentage,
    )


@router.delete("/offers/{offerId}", status_code=204)
def cancel_offer(offerId: str, request: Request):
    workflow_service.cancel_offer(offer_id=offerId, actor_id=actor_id(request))
    return Response(status_code=204)


@router.get("/offers/{offerId}/ledger")
def offer_ledger(offerId: str):
    return {"data": workflow_service.get_offer_ledger(offerId)}


@router.post("/offers/{offerId}/investor-advisor-decision")
def investor_advisor_decision(offerId: str, request: Request, body: DecisionRequest):
    return workflow_service.resolve_offer_investor_advisor(
        offer_id=offerId,
        decision=body.decision,
        actor_id=actor_id(request),
    )


@router.post("/offers/{offerId}/startup-advisor-decision")
def startup_advisor_decision(offerId: str, request: Request, body: DecisionRequest):
    return workflow_service.resolve_offer_startup_advisor(
        offer_id=offerId,
        decision=body.decision,
        actor_id=actor_id(request),
    )


@router.post("/offers/{offerId}/startup-decision")
def startup_decision(offerId: str, request: Request, body: DecisionRequest):
    return workflow_service.resolve_offer_startup(
        offer_id=offerId,
        decision=body.decision,
        actor_id=actor_id(request),
    )


@router.get("/investors/{investorId}/offers")
def list_investor_offers(investorId: str, limit: int = 50, nextToken: str | None = None):
    return workflow_service.list_offers_for_investor(
        investor_id=investorId,
        limit=page_limit(limit),
        next_token=nextToken,
    )


@router.get("/startups/{startupId}/offers")
def list_startup_offers(startupId: str, limit: int = 50, nextToken: str | None = None):
    return workflow_service.list_offers_for_startup(
        startup_id=startupId,
        limit=page_limit(limit),
        next_token=nextToken,
    )


@router.get("/startups/{startupId}/queue")
def startup_queue(startupId: str):
    return workflow_service.get_startup_queue(startup_id=startupId)
