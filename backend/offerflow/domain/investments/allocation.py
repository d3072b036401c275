"""
Co-investment allocation arithmetic.

Pure functions over opportunity / co-investment offer records. Nothing here
reads or writes the record store; callers pass a fresh snapshot of the
opportunity and its sibling offers, normally `holdings(opportunity)`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from .statuses import CO_OFFER_HOLDING_STATUSES, CO_OFFER_RESERVING_STATUSES

ZERO = Decimal("0")
EQUITY_QUANTUM = Decimal("0.0001")

# Opportunity attribute mapping coInvestmentOfferId -> that offer's current holding.
HOLDINGS_ATTR = "coInvestmentHoldings"


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats keep their printed value rather than binary noise.
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not a decimal amount: {value!r}") from e


def quantize_equity(value: Decimal) -> Decimal:
    return value.quantize(EQUITY_QUANTUM, rounding=ROUND_HALF_UP)


def lead_invested(opportunity: dict[str, Any]) -> Decimal:
    """Amount the lead keeps for themselves: total ask minus the co-investable maximum."""
    total = to_decimal(opportunity.get("totalInvestmentAmount"))
    maximum = to_decimal(opportunity.get("maximumCoInvestment"))
    return max(total - maximum, ZERO)


def lead_equity(opportunity: dict[str, Any]) -> Decimal:
    """Lead's equity, proportional to the share of the ask the lead commits (0 when the ask is 0)."""
    total = to_decimal(opportunity.get("totalInvestmentAmount"))
    if total == ZERO:
        return ZERO
    equity = to_decimal(opportunity.get("totalEquityPercentage"))
    return equity * (lead_invested(opportunity) / total)


def _sum_amounts(offers: Iterable[dict[str, Any]], statuses: frozenset[str], exclude_offer_id: str | None) -> Decimal:
    total = ZERO
    for o in offers:
        if exclude_offer_id and str(o.get("coInvestmentOfferId") or "") == exclude_offer_id:
            continue
        if str(o.get("status") or "") in statuses:
            total += to_decimal(o.get("offerAmount"))
    return total


def reserved_amount(offers: Iterable[dict[str, Any]], *, exclude_offer_id: str | None = None) -> Decimal:
    """Capacity held by accepted offers and offers awaiting the lead or the startup."""
    return _sum_amounts(offers, CO_OFFER_RESERVING_STATUSES, exclude_offer_id)


def committed_amount(offers: Iterable[dict[str, Any]], *, exclude_offer_id: str | None = None) -> Decimal:
    """Every live or accepted offer, including those still with the investor's advisor."""
    return _sum_amounts(offers, CO_OFFER_HOLDING_STATUSES, exclude_offer_id)


def accepted_amount(offers: Iterable[dict[str, Any]], *, exclude_offer_id: str | None = None) -> Decimal:
    return _sum_amounts(offers, frozenset({"accepted"}), exclude_offer_id)


def holdings(opportunity: dict[str, Any]) -> list[dict[str, Any]]:
    """
    The opportunity's co-investment offers as recorded on the opportunity itself.

    Every co-investment offer write re-writes this map in the same
    version-checked transaction, so a single consistent read of the
    opportunity is enough to check capacity. Listing the offers from an index
    could miss one that just committed.
    """
    raw = opportunity.get(HOLDINGS_ATTR) or {}
    return [{**entry, "coInvestmentOfferId": cid} for cid, entry in sorted(raw.items())]


def record_holding(opportunity: dict[str, Any], co_offer: dict[str, Any]) -> dict[str, Any]:
    """Copy of `opportunity` with `co_offer`'s holding updated; rejected offers are dropped."""
    raw = dict(opportunity.get(HOLDINGS_ATTR) or {})
    cid = str(co_offer["coInvestmentOfferId"])
    status = str(co_offer.get("status") or "")
    if status in CO_OFFER_HOLDING_STATUSES:
        raw[cid] = {
            "investorId": co_offer.get("investorId"),
            "status": status,
            "offerAmount": to_decimal(co_offer.get("offerAmount")),
            "equityPercentage": to_decimal(co_offer.get("equityPercentage")),
        }
    else:
        raw.pop(cid, None)
    return {**opportunity, HOLDINGS_ATTR: raw}


def remaining_capacity(
    opportunity: dict[str, Any],
    offers: Iterable[dict[str, Any]],
    *,
    exclude_offer_id: str | None = None,
) -> Decimal:
    maximum = to_decimal(opportunity.get("maximumCoInvestment"))
    return maximum - reserved_amount(offers, exclude_offer_id=exclude_offer_id)


def exceeds_capacity(
    opportunity: dict[str, Any],
    offers: Iterable[dict[str, Any]],
    amount: Any,
    *,
    exclude_offer_id: str | None = None,
    include_advisor_pending: bool = False,
) -> bool:
    """
    True when adding `amount` to the other offers' holdings would pass the cap.

    Creation counts offers still waiting on an investor advisor as well
    (`include_advisor_pending`); later transitions only count the reserving set.
    """
    maximum = to_decimal(opportunity.get("maximumCoInvestment"))
    held = (
        committed_amount(offers, exclude_offer_id=exclude_offer_id)
        if include_advisor_pending
        else reserved_amount(offers, exclude_offer_id=exclude_offer_id)
    )
    return held + to_decimal(amount) > maximum


@dataclass(frozen=True, slots=True)
class EquityAllocation:
    equity_percentage: Decimal
    requested_equity_percentage: Decimal
    capped: bool


def cap_co_investor_equity(
    opportunity: dict[str, Any],
    accepted_offers: Iterable[dict[str, Any]],
    offer: dict[str, Any],
) -> EquityAllocation:
    """
    Equity granted to `offer` on acceptance.

    The offer keeps its stated equity unless accepted co-investor equity plus
    the lead's derived equity would pass the opportunity's total; then it gets
    what is left (never below zero) and is marked capped.
    """
    requested = to_decimal(offer.get("equityPercentage"))
    total_equity = to_decimal(opportunity.get("totalEquityPercentage"))
    own_id = str(offer.get("coInvestmentOfferId") or "")

    already = ZERO
    for o in accepted_offers:
        if str(o.get("coInvestmentOfferId") or "") == own_id:
            continue
        if str(o.get("status") or "") == "accepted":
            already += to_decimal(o.get("equityPercentage"))

    available = quantize_equity(max(total_equity - lead_equity(opportunity) - already, ZERO))
    if requested <= available:
        return EquityAllocation(equity_percentage=requested, requested_equity_percentage=requested, capped=False)
    return EquityAllocation(equity_percentage=available, requested_equity_percentage=requested, capped=True)


@dataclass(frozen=True, slots=True)
class AllocationSnapshot:
    lead_invested: Decimal
    lead_equity: Decimal
    reserved_amount: Decimal
    accepted_amount: Decimal
    remaining_capacity: Decimal

    def to_record(self) -> dict[str, Decimal]:
        # camelCase to match the record attributes callers already consume.
        raw = asdict(self)
        return {
            "leadInvested": raw["lead_invested"],
            "leadEquity": raw["lead_equity"],
            "reservedAmount": raw["reserved_amount"],
            "acceptedAmount": raw["accepted_amount"],
            "remainingCapacity": raw["remaining_capacity"],
        }


def snapshot(opportunity: dict[str, Any], offers: Iterable[dict[str, Any]]) -> AllocationSnapshot:
    offers = list(offers)
    return AllocationSnapshot(
        lead_invested=lead_invested(opportunity),
        lead_equity=quantize_equity(lead_equity(opportunity)),
        reserved_amount=reserved_amount(offers),
        accepted_amount=accepted_amount(offers),
        remaining_capacity=remaining_capacity(opportunity, offers),
    )