from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel, Field

from ..modules.identity import advisors
from ..modules.workflow import workflow_service
from ..repositories.advisor_links_repo import PARTY_KINDS, list_clients

router = APIRouter(tags=["advisors"])


class AssignAdvisorRequest(BaseModel):
    advisorId: str = Field(..., min_length=1)


def _kind(kind: str) -> str:
    k = str(kind or "").strip().lower()
    if k not in PARTY_KINDS:
        raise HTTPException(status_code=404, detail="Unknown party kind")
    return k


@router.get("/advisors/links/{kind}/{partyId}")
def get_advisor_link(kind: str, partyId: str):
    link = advisors.get_assignment(kind=_kind(kind), party_id=partyId)
    if not link:
        raise HTTPException(status_code=404, detail="No advisor assigned")
    return link


@router.put("/advisors/links/{kind}/{partyId}")
def assign_advisor(kind: str, partyId: str, body: AssignAdvisorRequest):
    try:
        return advisors.assign_advisor(kind=_kind(kind), party_id=partyId, advisor_id=body.advisorId.strip())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.delete("/advisors/links/{kind}/{partyId}", status_code=204)
def unassign_advisor(kind: str, partyId: str):
    advisors.unassign_advisor(kind=_kind(kind), party_id=partyId)
    return Response(status_code=204)


@router.get("/advisors/{advisorId}/clients")
def advisor_clients(advisorId: str, kind: str | None = None):
    return {"data": list_clients(advisor_id=advisorId, kind=_kind(kind) if kind else None)}


@router.get("/advisors/{advisorId}/queue")
def advisor_queue(advisorId: str):
    return workflow_service.get_advisor_queue(advisor_id=advisorId)
