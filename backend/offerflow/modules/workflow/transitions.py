from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from ...domain.investments.allocation import to_decimal
from ...domain.investments.statuses import DECISIONS
from .errors import ActorNotAuthorized, InvalidTerms, InvalidTransition

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_HUNDRED = Decimal("100")


@dataclass(slots=True)
class Transition:
    """Result of applying one workflow step to a record (nothing persisted yet)."""

    record: dict[str, Any]
    activity_type: str
    description: str
    terminal: bool = False
    details: dict[str, Any] = field(default_factory=dict)


def require_decision(decision: str) -> str:
    d = str(decision or "").strip().lower()
    if d not in DECISIONS:
        raise InvalidTerms(message=f"decision must be 'approve' or 'reject', got {decision!r}")
    return d


def require_actor(actor_id: str | None, allowed: str | None, *, role: str, record_id: str | None) -> None:
    if not actor_id or not allowed or str(actor_id) != str(allowed):
        raise ActorNotAuthorized(message=f"Only the {role} may perform this action", record_id=record_id)


def require(condition: bool, message: str, *, record_id: str | None) -> None:
    if not condition:
        raise InvalidTransition(message=message, record_id=record_id)


def positive_amount(value: Any, name: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise InvalidTerms(message=f"{name} must be a number") from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidTerms(message=f"{name} must be greater than 0")
    return amount


def non_negative_amount(value: Any, name: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise InvalidTerms(message=f"{name} must be a number") from e
    if not amount.is_finite() or amount < 0:
        raise InvalidTerms(message=f"{name} must not be negative")
    return amount


def equity_percentage(value: Any, name: str = "equityPercentage") -> Decimal:
    equity = positive_amount(value, name)
    if equity > _HUNDRED:
        raise InvalidTerms(message=f"{name} must be at most 100")
    return equity


def currency_code(value: Any, default: str) -> str:
    code = str(value or default or "").strip().upper()
    if not _CURRENCY_RE.match(code):
        raise InvalidTerms(message=f"currency must be a 3-letter code, got {value!r}")
    return code


def party_id(value: Any, name: str) -> str:
    v = str(value or "").strip()
    if not v:
        raise InvalidTerms(message=f"{name} is required")
    return v
