"""
Single entrypoint for every workflow operation.

Each operation follows the same shape:
- re-read the record(s) from the store (consistent read)
- look up advisor assignments for the parties involved
- apply a pure transition from one of the state machines
- write the record, its ledger entry (and pair lock / guard rows) in one
  version-conditioned transaction
- enqueue a notification for terminal transitions (best-effort)

A lost optimistic-concurrency race surfaces as InvalidTransition; callers
re-read and decide again.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from ...db.dynamodb.errors import DdbConflict
from ...domain.investments import allocation
from ...domain.investments.statuses import is_offer_terminal
from ...domain.investments.stages import (
    compute_offer_stage,
    compute_opportunity_stage,
    offer_stage_label,
    opportunity_stage_label,
)
from ...observability.logging import get_logger
from ...repositories import (
    coinvestment_offers_repo,
    coinvestment_opportunities_repo,
    ledger_repo,
    offers_repo,
    outbox_repo,
)
from ...repositories.records import new_id, now_iso
from ...settings import settings
from ..identity import advisors
from . import coinvestment_offer_machine, duplicate_guard, offer_machine, opportunity_machine
from .errors import DuplicateActiveOffer, InvalidTransition, RecordNotFound
from .transitions import Transition, currency_code

log = get_logger("workflow")


# --- shared plumbing ---


@contextmanager
def _stale_write_is_invalid(record_id: str, what: str) -> Iterator[None]:
    try:
        yield
    except DdbConflict as e:
        raise InvalidTransition(
            message=f"{what} was changed by another request; reload and try again",
            record_id=record_id,
        ) from e


def _ledger_entry(*, record_pk: str, record_id: str, transition: Transition, actor_id: str | None) -> dict[str, Any]:
    return ledger_repo.ledger_entry_item(
        record_pk=record_pk,
        record_id=record_id,
        activity_type=transition.activity_type,
        actor_id=actor_id,
        description=transition.description,
        details=transition.details or None,
    )


def _notify(*, event_type: str, record_id: str, payload: dict[str, Any]) -> None:
    """Enqueue a notification; never fails the transition that triggered it."""
    if not settings.notifications_enabled:
        return
    try:
        outbox_repo.enqueue_event(
            event_type=event_type,
            payload=payload,
            dedupe_key=f"{event_type}:{record_id}",
        )
    except Exception as e:
        log.warning("notification_enqueue_failed", event_type=event_type, record_id=record_id, error=str(e))


def with_offer_stage(offer: dict[str, Any]) -> dict[str, Any]:
    stage = compute_offer_stage(offer)
    return {**offer, "stage": stage, "stageLabel": offer_stage_label(stage)}


def with_opportunity_stage(opportunity: dict[str, Any]) -> dict[str, Any]:
    stage = compute_opportunity_stage(opportunity)
    # Holdings name individual co-investors; callers get the allocation summary instead.
    out = {k: v for k, v in opportunity.items() if k != allocation.HOLDINGS_ATTR}
    return {**out, "stage": stage, "stageLabel": opportunity_stage_label(stage)}


# --- direct offers ---


def _require_offer(offer_id: str) -> dict[str, Any]:
    offer = offers_repo.get_offer(offer_id)
    if not offer:
        raise RecordNotFound(message="Offer not found", record_id=offer_id)
    return offer


def _commit_offer(offer: dict[str, Any], transition: Transition, *, actor_id: str | None) -> dict[str, Any]:
    oid = str(offer["offerId"])
    entry = _ledger_entry(
        record_pk=offers_repo.offer_pk(oid),
        record_id=oid,
        transition=transition,
        actor_id=actor_id,
    )
    with _stale_write_is_invalid(oid, "Offer"):
        saved = offers_repo.save_offer(
            offer=transition.record,
            expected_version=int(offer.get("version") or 0),
            # Any terminal offer frees the pair for a new one.
            release_pair_lock=transition.terminal,
            ledger_entries=[entry],
        )

    out = with_offer_stage(saved)
    log.info(
        "offer_transition",
        offer_id=oid,
        activity_type=transition.activity_type,
        status=out.get("status"),
        stage=out["stage"],
        actor_id=actor_id,
    )
    if transition.terminal:
        _notify(
            event_type=f"offer.{out.get('status')}",
            record_id=oid,
            payload={
                "offerId": oid,
                "investorId": out.get("investorId"),
                "startupId": out.get("startupId"),
                "status": out.get("status"),
                "offerAmount": str(out.get("offerAmount")),
                "currency": out.get("currency"),
            },
        )
    return out


def create_offer(
    *,
    investor_id: str,
    startup_id: str,
    offer_amount: Any,
    equity_percentage: Any,
    currency: str | None = None,
) -> dict[str, Any]:
    oid = new_id("off")
    now = now_iso()
    # Validate terms before touching the store.
    draft = offer_machine.new_offer(
        offer_id=oid,
        investor_id=investor_id,
        startup_id=startup_id,
        offer_amount=offer_amount,
        equity=equity_percentage,
        currency=currency,
        default_currency=settings.default_currency,
        created_at=now,
    )
    investor_id, startup_id = draft["investorId"], draft["startupId"]

    duplicate_guard.ensure_no_active_offer(investor_id=investor_id, startup_id=startup_id)

    transition = offer_machine.advance_after_creation(
        draft,
        investor_advisor=advisors.lookup_investor_advisor(investor_id),
        startup_advisor=advisors.lookup_startup_advisor(startup_id),
    )
    entry = _ledger_entry(
        record_pk=offers_repo.offer_pk(oid),
        record_id=oid,
        transition=transition,
        actor_id=investor_id,
    )
    try:
        saved = offers_repo.insert_offer(offer=transition.record, ledger_entries=[entry])
    except DdbConflict as e:
        # The pair lock is held: a concurrent create for the same pair won.
        raise DuplicateActiveOffer(
            message="An active offer already exists for this startup",
            details={"investorId": investor_id, "startupId": startup_id},
        ) from e

    out = with_offer_stage(saved)
    log.info(
        "offer_created",
        offer_id=oid,
        investor_id=investor_id,
        startup_id=startup_id,
        stage=out["stage"],
        investor_advisor_approval=out.get("investorAdvisorApproval"),
        startup_advisor_approval=out.get("startupAdvisorApproval"),
    )
    return out


def resolve_offer_investor_advisor(*, offer_id: str, decision: str, actor_id: str | None) -> dict[str, Any]:
    offer = _require_offer(offer_id)
    transition = offer_machine.resolve_investor_advisor(
        offer,
        decision=decision,
        actor_id=actor_id,
        startup_advisor=advisors.lookup_startup_advisor(str(offer.get("startupId") or "")),
    )
    return _commit_offer(offer, transition, actor_id=actor_id)


def resolve_offer_startup_advisor(*, offer_id: str, decision: str, actor_id: str | None) -> dict[str, Any]:
    offer = _require_offer(offer_id)
    transition = offer_machine.resolve_startup_advisor(offer, decision=decision, actor_id=actor_id)
    return _commit_offer(offer, transition, actor_id=actor_id)


def resolve_offer_startup(*, offer_id: str, decision: str, actor_id: str | None) -> dict[str, Any]:
    offer = _require_offer(offer_id)
    transition = offer_machine.resolve_startup(offer, decision=decision, actor_id=actor_id, decided_at=now_iso())
    return _commit_offer(offer, transition, actor_id=actor_id)


def edit_offer(
    *,
    offer_id: str,
    actor_id: str | None,
    offer_amount: Any,
    equity_percentage: Any,
) -> dict[str, Any]:
    offer = _require_offer(offer_id)
    transition = offer_machine.edit_terms(
        offer,
        actor_id=actor_id,
        offer_amount=offer_amount,
        equity=equity_percentage,
    )
    return _commit_offer(offer, transition, actor_id=actor_id)


def cancel_offer(*, offer_id: str, actor_id: str | None) -> None:
    offer = _require_offer(offer_id)
    offer_machine.ensure_cancellable(offer, actor_id=actor_id)
    ledger_keys = ledger_repo.entry_keys(record_pk=offers_repo.offer_pk(offer_id))
    with _stale_write_is_invalid(offer_id, "Offer"):
        offers_repo.delete_offer(
            offer=offer,
            expected_version=int(offer.get("version") or 0),
            release_pair_lock=True,
            extra_keys=ledger_keys,
        )
    log.info("offer_cancelled", offer_id=offer_id, actor_id=actor_id)


def get_offer(offer_id: str) -> dict[str, Any]:
    return with_offer_stage(_require_offer(offer_id))


def get_offer_ledger(offer_id: str) -> list[dict[str, Any]]:
    _require_offer(offer_id)
    return ledger_repo.list_entries(record_pk=offers_repo.offer_pk(offer_id))


def list_offers_for_investor(*, investor_id: str, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    pg = offers_repo.list_offers_for_investor(investor_id=investor_id, limit=limit, next_token=next_token)
    return {"data": [with_offer_stage(o) for o in pg["data"]], "nextToken": pg["nextToken"]}


def list_offers_for_startup(*, startup_id: str, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    pg = offers_repo.list_offers_for_startup(startup_id=startup_id, limit=limit, next_token=next_token)
    return {"data": [with_offer_stage(o) for o in pg["data"]], "nextToken": pg["nextToken"]}


# --- co-investment opportunities ---


_OPPORTUNITY_EVENTS = {
    "active": "opportunity.activated",
    "rejected": "opportunity.rejected",
    "completed": "opportunity.completed",
}


def _require_opportunity(opportunity_id: str) -> dict[str, Any]:
    opp = coinvestment_opportunities_repo.get_opportunity(opportunity_id)
    if not opp:
        raise RecordNotFound(message="Co-investment opportunity not found", record_id=opportunity_id)
    return opp


def _notify_opportunity(opp: dict[str, Any]) -> None:
    event_type = _OPPORTUNITY_EVENTS.get(str(opp.get("status") or ""))
    if not event_type:
        return
    oid = str(opp["opportunityId"])
    _notify(
        event_type=event_type,
        record_id=oid,
        payload={
            "opportunityId": oid,
            "leadInvestorId": opp.get("leadInvestorId"),
            "startupId": opp.get("startupId"),
            "status": opp.get("status"),
        },
    )


def _commit_opportunity(opp: dict[str, Any], transition: Transition, *, actor_id: str | None) -> dict[str, Any]:
    oid = str(opp["opportunityId"])
    entry = _ledger_entry(
        record_pk=coinvestment_opportunities_repo.opportunity_pk(oid),
        record_id=oid,
        transition=transition,
        actor_id=actor_id,
    )
    with _stale_write_is_invalid(oid, "Opportunity"):
        saved = coinvestment_opportunities_repo.save_opportunity(
            opportunity=transition.record,
            expected_version=int(opp.get("version") or 0),
            ledger_entries=[entry],
        )

    out = with_opportunity_stage(saved)
    log.info(
        "opportunity_transition",
        opportunity_id=oid,
        activity_type=transition.activity_type,
        status=out.get("status"),
        stage=out["stage"],
        actor_id=actor_id,
    )
    if transition.terminal or out.get("status") == "active":
        _notify_opportunity(out)
    return out


def create_opportunity(
    *,
    lead_investor_id: str,
    startup_id: str,
    total_investment_amount: Any,
    total_equity_percentage: Any,
    minimum_co_investment: Any,
    maximum_co_investment: Any,
    currency: str | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    oid = new_id("opp")
    draft = opportunity_machine.new_opportunity(
        opportunity_id=oid,
        lead_investor_id=lead_investor_id,
        startup_id=startup_id,
        total_investment_amount=total_investment_amount,
        total_equity_percentage=total_equity_percentage,
        minimum_co_investment=minimum_co_investment,
        maximum_co_investment=maximum_co_investment,
        currency=currency_code(currency, settings.default_currency),
        description=description,
        created_at=now_iso(),
    )
    lead_investor_id, startup_id = draft["leadInvestorId"], draft["startupId"]
    transition = opportunity_machine.advance_after_creation(
        draft,
        lead_advisor=advisors.lookup_investor_advisor(lead_investor_id),
        startup_advisor=advisors.lookup_startup_advisor(startup_id),
    )
    entry = _ledger_entry(
        record_pk=coinvestment_opportunities_repo.opportunity_pk(oid),
        record_id=oid,
        transition=transition,
        actor_id=lead_investor_id,
    )
    saved = coinvestment_opportunities_repo.insert_opportunity(opportunity=transition.record, ledger_entries=[entry])
    out = with_opportunity_stage(saved)
    log.info(
        "opportunity_created",
        opportunity_id=oid,
        lead_investor_id=lead_investor_id,
        startup_id=startup_id,
        stage=out["stage"],
    )
    return out


def resolve_opportunity_lead_advisor(*, opportunity_id: str, decision: str, actor_id: str | None) -> dict[str, Any]:
    opp = _require_opportunity(opportunity_id)
    transition = opportunity_machine.resolve_lead_advisor(
        opp,
        decision=decision,
        actor_id=actor_id,
        startup_advisor=advisors.lookup_startup_advisor(str(opp.get("startupId") or "")),
    )
    return _commit_opportunity(opp, transition, actor_id=actor_id)


def resolve_opportunity_startup_advisor(*, opportunity_id: str, decision: str, actor_id: str | None) -> dict[str, Any]:
    opp = _require_opportunity(opportunity_id)
    transition = opportunity_machine.resolve_startup_advisor(opp, decision=decision, actor_id=actor_id)
    return _commit_opportunity(opp, transition, actor_id=actor_id)


def resolve_opportunity_startup(*, opportunity_id: str, decision: str, actor_id: str | None) -> dict[str, Any]:
    opp = _require_opportunity(opportunity_id)
    transition = opportunity_machine.resolve_startup(opp, decision=decision, actor_id=actor_id, decided_at=now_iso())
    return _commit_opportunity(opp, transition, actor_id=actor_id)


def close_opportunity(*, opportunity_id: str, actor_id: str | None) -> dict[str, Any]:
    opp = _require_opportunity(opportunity_id)
    transition = opportunity_machine.close(opp, actor_id=actor_id, reason="closed_by_lead", closed_at=now_iso())
    return _commit_opportunity(opp, transition, actor_id=actor_id)


def _can_see_unlisted(opp: dict[str, Any], siblings: list[dict[str, Any]], actor_id: str | None) -> bool:
    if not actor_id:
        return False
    parties = [
        opp.get("leadInvestorId"),
        opp.get("startupId"),
        opp.get("leadAdvisorId"),
        opp.get("startupAdvisorId"),
        *(s.get("investorId") for s in siblings),
    ]
    return str(actor_id) in {str(p) for p in parties if p}


def _visible_opportunity(opportunity_id: str, actor_id: str | None) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    """
    Read an opportunity on behalf of `actor_id`.

    Listings that are not active are only visible to the lead, the startup,
    their advisors and investors holding an offer on it; everyone else gets
    RecordNotFound.
    """
    opp, siblings = _opportunity_and_siblings(opportunity_id)
    if not opportunity_machine.is_listed(opp) and not _can_see_unlisted(opp, siblings, actor_id):
        raise RecordNotFound(message="Co-investment opportunity not found", record_id=opportunity_id)
    return opp, siblings


def get_opportunity(*, opportunity_id: str, actor_id: str | None = None) -> dict[str, Any]:
    """Opportunity plus its allocation summary."""
    opp, siblings = _visible_opportunity(opportunity_id, actor_id)
    out = with_opportunity_stage(opp)
    out["allocation"] = allocation.snapshot(opp, siblings).to_record()
    return out


def get_opportunity_ledger(opportunity_id: str, *, actor_id: str | None = None) -> list[dict[str, Any]]:
    _visible_opportunity(opportunity_id, actor_id)
    return ledger_repo.list_entries(record_pk=coinvestment_opportunities_repo.opportunity_pk(opportunity_id))


def list_active_opportunities(*, limit: int = 50, next_token: str | None = None) -> dict[str, Any]:
    pg = coinvestment_opportunities_repo.list_by_status(status="active", limit=limit, next_token=next_token)
    data = [with_opportunity_stage(o) for o in pg["data"] if opportunity_machine.is_listed(o)]
    return {"data": data, "nextToken": pg["nextToken"]}


def list_opportunities_for_lead(
    *,
    lead_investor_id: str,
    limit: int = 50,
    next_token: str | None = None,
) -> dict[str, Any]:
    pg = coinvestment_opportunities_repo.list_for_lead(lead_investor_id=lead_investor_id, limit=limit, next_token=next_token)
    return {"data": [with_opportunity_stage(o) for o in pg["data"]], "nextToken": pg["nextToken"]}


# --- co-investment offers ---


def _require_co_offer(co_offer_id: str) -> dict[str, Any]:
    co = coinvestment_offers_repo.get_co_offer(co_offer_id)
    if not co:
        raise RecordNotFound(message="Co-investment offer not found", record_id=co_offer_id)
    return co


def _opportunity_and_siblings(opportunity_id: str) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    opp = _require_opportunity(opportunity_id)
    return opp, allocation.holdings(opp)


def _fully_allocated(opp: dict[str, Any]) -> bool:
    maximum = allocation.to_decimal(opp.get("maximumCoInvestment"))
    return maximum > 0 and allocation.accepted_amount(allocation.holdings(opp)) >= maximum


def _commit_co_offer(
    co_offer: dict[str, Any],
    transition: Transition,
    *,
    actor_id: str | None,
    opportunity: dict[str, Any],
    insert: bool = False,
) -> dict[str, Any]:
    """
    Persist a co-investment offer transition (`insert` for a brand new offer).

    The opportunity is re-written in the same transaction at the version it
    was read at, with this offer's holding updated. Transitions against one
    opportunity therefore serialize, and capacity checked from its holdings
    is never stale. An acceptance that fills the opportunity completes it in
    that same transaction.
    """
    cid = str(co_offer["coInvestmentOfferId"])
    oid = str(opportunity["opportunityId"])
    ledger_entries = [
        _ledger_entry(
            record_pk=coinvestment_offers_repo.co_offer_pk(cid),
            record_id=cid,
            transition=transition,
            actor_id=actor_id,
        )
    ]

    opp_record = allocation.record_holding(opportunity, transition.record)
    completed: Transition | None = None
    if transition.record.get("status") == "accepted" and _fully_allocated(opp_record):
        completed = opportunity_machine.close(opp_record, actor_id=None, reason="fully_allocated", closed_at=now_iso())
        opp_record = completed.record
        ledger_entries.append(
            _ledger_entry(
                record_pk=coinvestment_opportunities_repo.opportunity_pk(oid),
                record_id=oid,
                transition=completed,
                actor_id=None,
            )
        )
    extra_puts = [
        coinvestment_opportunities_repo.guard_put(
            opportunity=opp_record,
            expected_version=int(opportunity.get("version") or 0),
        )
    ]

    with _stale_write_is_invalid(cid, "Co-investment offer or its opportunity"):
        if insert:
            saved = coinvestment_offers_repo.insert_co_offer(
                co_offer=transition.record,
                ledger_entries=ledger_entries,
                extra_puts=extra_puts,
            )
        else:
            saved = coinvestment_offers_repo.save_co_offer(
                co_offer=transition.record,
                expected_version=int(co_offer.get("version") or 0),
                ledger_entries=ledger_entries,
                extra_puts=extra_puts,
            )

    log.info(
        "co_investment_offer_transition",
        co_investment_offer_id=cid,
        opportunity_id=oid,
        activity_type=transition.activity_type,
        status=saved.get("status"),
        actor_id=actor_id,
        needs_manual_review=bool(saved.get("needsManualReview")),
    )
    if transition.terminal:
        _notify(
            event_type=f"co_investment_offer.{saved.get('status')}",
            record_id=cid,
            payload={
                "coInvestmentOfferId": cid,
                "opportunityId": oid,
                "investorId": saved.get("investorId"),
                "status": saved.get("status"),
                "offerAmount": str(saved.get("offerAmount")),
                "needsManualReview": bool(saved.get("needsManualReview")),
            },
        )
    if completed is not None:
        log.info("opportunity_fully_allocated", opportunity_id=oid)
        _notify_opportunity(completed.record)
    return saved


def create_co_investment_offer(
    *,
    opportunity_id: str,
    investor_id: str,
    offer_amount: Any,
    equity_percentage: Any,
    currency: str | None = None,
) -> dict[str, Any]:
    opp, siblings = _opportunity_and_siblings(opportunity_id)
    transition = coinvestment_offer_machine.new_co_offer(
        co_offer_id=new_id("cof"),
        investor_id=investor_id,
        opportunity=opp,
        siblings=siblings,
        offer_amount=offer_amount,
        equity=equity_percentage,
        currency=currency,
        investor_advisor=advisors.lookup_investor_advisor(investor_id),
        created_at=now_iso(),
    )
    return _commit_co_offer(transition.record, transition, actor_id=investor_id, opportunity=opp, insert=True)


def resolve_co_offer_investor_advisor(*, co_offer_id: str, decision: str, actor_id: str | None) -> dict[str, Any]:
    co = _require_co_offer(co_offer_id)
    opp, siblings = _opportunity_and_siblings(str(co.get("opportunityId") or ""))
    transition = coinvestment_offer_machine.resolve_investor_advisor(
        co,
        decision=decision,
        actor_id=actor_id,
        opportunity=opp,
        siblings=siblings,
    )
    return _commit_co_offer(co, transition, actor_id=actor_id, opportunity=opp)


def resolve_co_offer_lead_investor(*, co_offer_id: str, decision: str, actor_id: str | None) -> dict[str, Any]:
    co = _require_co_offer(co_offer_id)
    opp, siblings = _opportunity_and_siblings(str(co.get("opportunityId") or ""))
    transition = coinvestment_offer_machine.resolve_lead_investor(
        co,
        decision=decision,
        actor_id=actor_id,
        opportunity=opp,
        siblings=siblings,
    )
    return _commit_co_offer(co, transition, actor_id=actor_id, opportunity=opp)


def resolve_co_offer_startup(*, co_offer_id: str, decision: str, actor_id: str | None) -> dict[str, Any]:
    co = _require_co_offer(co_offer_id)
    opp, siblings = _opportunity_and_siblings(str(co.get("opportunityId") or ""))
    transition = coinvestment_offer_machine.resolve_startup(
        co,
        decision=decision,
        actor_id=actor_id,
        opportunity=opp,
        siblings=siblings,
        decided_at=now_iso(),
    )
    return _commit_co_offer(co, transition, actor_id=actor_id, opportunity=opp)


def get_co_investment_offer(co_offer_id: str) -> dict[str, Any]:
    return _require_co_offer(co_offer_id)


def get_co_investment_offer_ledger(co_offer_id: str) -> list[dict[str, Any]]:
    _require_co_offer(co_offer_id)
    return ledger_repo.list_entries(record_pk=coinvestment_offers_repo.co_offer_pk(co_offer_id))


def list_co_investment_offers_for_investor(
    *,
    investor_id: str,
    limit: int = 50,
    next_token: str | None = None,
) -> dict[str, Any]:
    return coinvestment_offers_repo.list_for_investor(investor_id=investor_id, limit=limit, next_token=next_token)


def list_pending_lead_approvals(*, lead_investor_id: str) -> list[dict[str, Any]]:
    items = coinvestment_offers_repo.list_in_queue(
        queue_pk=coinvestment_offers_repo.lead_queue_gsi_pk(lead_investor_id)
    )
    # Index reads can trail the record by a moment.
    return [c for c in items if c.get("status") == "pending_lead_investor_approval"]


# --- work queues ---


def get_advisor_queue(*, advisor_id: str) -> dict[str, Any]:
    """Everything currently waiting on this advisor's decision."""
    queue_pk = offers_repo.advisor_queue_gsi_pk(advisor_id)
    offers = [
        with_offer_stage(o)
        for o in offers_repo.list_offers_awaiting_advisor(advisor_id=advisor_id)
        if str(advisor_id) in (o.get("investorAdvisorId"), o.get("startupAdvisorId"))
    ]
    opportunities = [
        with_opportunity_stage(o)
        for o in coinvestment_opportunities_repo.list_in_queue(queue_pk=queue_pk)
        if o.get("status") == "draft"
    ]
    co_offers = [
        c
        for c in coinvestment_offers_repo.list_in_queue(queue_pk=queue_pk)
        if c.get("status") == "pending_investor_advisor_approval"
    ]
    return {"offers": offers, "opportunities": opportunities, "coInvestmentOffers": co_offers}


def get_startup_queue(*, startup_id: str) -> dict[str, Any]:
    """Offers, listings and co-investment offers waiting on the startup's own decision."""
    queue_pk = offers_repo.startup_queue_gsi_pk(startup_id)
    offers = [
        with_offer_stage(o)
        for o in offers_repo.list_offers_awaiting_startup(startup_id=startup_id)
        if not is_offer_terminal(o.get("status")) and compute_offer_stage(o) == 3
    ]
    opportunities = [
        with_opportunity_stage(o)
        for o in coinvestment_opportunities_repo.list_in_queue(queue_pk=queue_pk)
        if o.get("status") == "draft"
    ]
    co_offers = [
        c
        for c in coinvestment_offers_repo.list_in_queue(queue_pk=queue_pk)
        if c.get("status") == "pending_startup_approval"
    ]
    return {"offers": offers, "opportunities": opportunities, "coInvestmentOffers": co_offers}
