from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class WorkflowError(Exception):
    """Base error for rejected workflow operations.

    The record the operation targeted is always left in its prior state. The
    API layer renders these as problem-details responses using `status_code`
    and `code`; the core never retries them.
    """

    message: str
    record_id: str | None = None
    details: dict[str, Any] | None = None

    code = "workflow_error"
    status_code = 400
    title = "Workflow Error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class InvalidTransition(WorkflowError):
    code = "invalid_transition"
    status_code = 409
    title = "Invalid Transition"


@dataclass(slots=True)
class DuplicateActiveOffer(WorkflowError):
    code = "duplicate_active_offer"
    status_code = 409
    title = "Duplicate Active Offer"


@dataclass(slots=True)
class OpportunityNotActive(WorkflowError):
    code = "opportunity_not_active"
    status_code = 409
    title = "Opportunity Not Active"


@dataclass(slots=True)
class AllocationExceeded(WorkflowError):
    code = "allocation_exceeded"
    status_code = 409
    title = "Allocation Exceeded"


@dataclass(slots=True)
class SelfOfferForbidden(WorkflowError):
    code = "self_offer_forbidden"
    status_code = 403
    title = "Self Offer Forbidden"


@dataclass(slots=True)
class ActorNotAuthorized(WorkflowError):
    code = "actor_not_authorized"
    status_code = 403
    title = "Forbidden"


@dataclass(slots=True)
class InvalidTerms(WorkflowError):
    code = "invalid_terms"
    status_code = 400
    title = "Invalid Terms"


@dataclass(slots=True)
class RecordNotFound(WorkflowError):
    code = "record_not_found"
    status_code = 404
    title = "Not Found"
