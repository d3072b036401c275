from __future__ import annotations

from decimal import Decimal

from fastapi import Request
from pydantic import BaseModel, Field


def actor_id(request: Request) -> str | None:
    actor = getattr(request.state, "user", None)
    sub = str(getattr(actor, "sub", "") or "").strip() if actor else ""
    return sub or None


class DecisionRequest(BaseModel):
    decision: str = Field(..., min_length=1, description="approve | reject")


class TermsRequest(BaseModel):
    offerAmount: Decimal
    equityPercentage: Decimal


def page_limit(limit: int) -> int:
    return max(1, min(200, int(limit or 50)))
