from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ..modules.opportunities import recommendation_service
from ..modules.workflow import workflow_service
from .deps import DecisionRequest, actor_id, page_limit

router = APIRouter(tags=["co-investment"])


class CreateOpportunityRequest(BaseModel):
    startupId: str = Field(..., min_length=1)
    totalInvestmentAmount: Decimal
    totalEquityPercentage: Decimal
    minimumCoInvestment: Decimal
    maximumCoInvestment: Decimal
    currency: str | None = None
    description: str | None = Field(default=None, max_length=5000)


class CreateCoInvestmentOfferRequest(BaseModel):
    offerAmount: Decimal
    equityPercentage: Decimal
    currency: str | None = None


class RecommendRequest(BaseModel):
    investorIds: list[str] = Field(..., min_length=1)


class RecommendationStatusRequest(BaseModel):
    status: str = Field(..., min_length=1)


# --- opportunities ---


@router.post("/co-investment/opportunities", status_code=201)
def create_opportunity(request: Request, body: CreateOpportunityRequest):
    return workflow_service.create_opportunity(
        lead_investor_id=actor_id(request) or "",
        startup_id=body.startupId.strip(),
        total_investment_amount=body.totalInvestmentAmount,
        total_equity_percentage=body.totalEquityPercentage,
        minimum_co_investment=body.minimumCoInvestment,
        maximum_co_investment=body.maximumCoInvestment,
        currency=body.currency,
        description=body.description,
    )


# Declared before /{opportunityId} so "active" is not captured as an id.
@router.get("/co-investment/opportunities/active")
def list_active_opportunities(limit: int = 50, nextToken: str | None = None):
    return workflow_service.list_active_opportunities(limit=page_limit(limit), next_token=nextToken)


@router.get("/co-investment/opportunities/{opportunityId}")
def get_opportunity(opportunityId: str, request: Request):
    return workflow_service.get_opportunity(opportunity_id=opportunityId, actor_id=actor_id(request))


@router.get("/co-investment/opportunities/{opportunityId}/ledger")
def opportunity_ledger(opportunityId: str, request: Request):
    return {"data": workflow_service.get_opportunity_ledger(opportunityId, actor_id=actor_id(request))}


@router.post("/co-investment/opportunities/{opportunityId}/lead-advisor-decision")
def lead_advisor_decision(opportunityId: str, request: Request, body: DecisionRequest):
    return workflow_service.resolve_opportunity_lead_advisor(
        opportunity_id=opportunityId,
        decision=body.decision,
        actor_id=actor_id(request),
    )


@router.post("/co-investment/opportunities/{opportunityId}/startup-advisor-decision")
def opportunity_startup_advisor_decision(opportunityId: str, request: Request, body: DecisionRequest):
    return workflow_service.resolve_opportunity_startup_advisor(
        opportunity_id=opportunityId,
        decision=body.decision,
        actor_id=actor_id(request),
    )


@router.post("/co-investment/opportunities/{opportunityId}/startup-decision")
def opportunity_startup_decision(opportunityId: str, request: Request, body: DecisionRequest):
    return workflow_service.resolve_opportunity_startup(
        opportunity_id=opportunityId,
        decision=body.decision,
        actor_id=actor_id(request),
    )


@router.post("/co-investment/opportunities/{opportunityId}/close")
def close_opportunity(opportunityId: str, request: Request):
    return workflow_service.close_opportunity(opportunity_id=opportunityId, actor_id=actor_id(request))


@router.get("/investors/{investorId}/co-investment/opportunities")
def list_lead_opportunities(investorId: str, limit: int = 50, nextToken: str | None = None):
    return workflow_service.list_opportunities_for_lead(
        lead_investor_id=investorId,
        limit=page_limit(limit),
        next_token=nextToken,
    )


# --- co-investment offers ---


@router.post("/co-investment/opportunities/{opportunityId}/offers", status_code=201)
def create_co_investment_offer(opportunityId: str, request: Request, body: CreateCoInvestmentOfferRequest):
    return workflow_service.create_co_investment_offer(
        opportunity_id=opportunityId,
        investor_id=actor_id(request) or "",
        offer_amount=body.offerAmount,
        equity_percentage=body.equityPercentage,
        currency=body.currency,
    )


@router.get("/co-investment/offers/{coInvestmentOfferId}")
def get_co_investment_offer(coInvestmentOfferId: str):
    return workflow_service.get_co_investment_offer(coInvestmentOfferId)


@router.get("/co-investment/offers/{coInvestmentOfferId}/ledger")
def co_investment_offer_ledger(coInvestmentOfferId: str):
    return {"data": workflow_service.get_co_investment_offer_ledger(coInvestmentOfferId)}


@router.post("/co-investment/offers/{coInvestmentOfferId}/investor-advisor-decision")
def co_offer_investor_advisor_decision(coInvestmentOfferId: str, request: Request, body: DecisionRequest):
    return workflow_service.resolve_co_offer_investor_advisor(
        co_offer_id=coInvestmentOfferId,
        decision=body.decision,
        actor_id=actor_id(request),
    )


@router.post("/co-investment/offers/{coInvestmentOfferId}/lead-investor-decision")
def co_offer_lead_investor_decision(coInvestmentOfferId: str, request: Request, body: DecisionRequest):
    return workflow_service.resolve_co_offer_lead_investor(
        co_offer_id=coInvestmentOfferId,
        decision=body.decision,
        actor_id=actor_id(request),
    )


@router.post("/co-investment/offers/{coInvestmentOfferId}/startup-decision")
def co_offer_startup_decision(coInvestmentOfferId: str, request: Request, body: DecisionRequest):
    return workflow_service.resolve_co_offer_startup(
        co_offer_id=coInvestmentOfferId,
        decision=body.decision,
        actor_id=actor_id(request),
    )


@router.get("/investors/{investorId}/co-investment/offers")
def list_investor_co_investment_offers(investorId: str, limit: int = 50, nextToken: str | None = None):
    return workflow_service.list_co_investment_offers_for_investor(
        investor_id=investorId,
        limit=page_limit(limit),
        next_token=nextToken,
    )


@router.get("/investors/{investorId}/co-investment/pending-approvals")
def list_pending_lead_approvals(investorId: str):
    return {"data": workflow_service.list_pending_lead_approvals(lead_investor_id=investorId)}


# --- recommendations ---


@router.post("/co-investment/opportunities/{opportunityId}/recommendations", status_code=201)
def recommend_opportunity(opportunityId: str, request: Request, body: RecommendRequest):
    return {
        "data": recommendation_service.recommend_opportunity(
            opportunity_id=opportunityId,
            advisor_id=actor_id(request),
            investor_ids=body.investorIds,
        )
    }


@router.get("/investors/{investorId}/recommendations")
def list_recommendations(investorId: str, limit: int = 50, nextToken: str | None = None):
    return recommendation_service.list_recommendations(
        investor_id=investorId,
        limit=page_limit(limit),
        next_token=nextToken,
    )


@router.put("/recommendations/{recommendationId}")
def update_recommendation(recommendationId: str, request: Request, body: RecommendationStatusRequest):
    return recommendation_service.update_recommendation_status(
        recommendation_id=recommendationId,
        status=body.status,
        actor_id=actor_id(request),
    )
