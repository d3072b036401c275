from __future__ import annotations

from decimal import Decimal

import pytest

from offerflow.modules.workflow import workflow_service as wf
from offerflow.modules.workflow.errors import ActorNotAuthorized, InvalidTerms, InvalidTransition, RecordNotFound


def _list(lead="lead_l", startup="su_s", **overrides):
    terms = {
        "total_investment_amount": "200000",
        "total_equity_percentage": "20",
        "minimum_co_investment": "10000",
        "maximum_co_investment": "80000",
    }
    terms.update(overrides)
    return wf.create_opportunity(lead_investor_id=lead, startup_id=startup, **terms)


def test_full_chain_activates_listing(fake_table, link_advisor):
    link_advisor("investor", "lead_l", "adv_l")
    link_advisor("startup", "su_s", "adv_s")

    opp = _list(description="Series A top-up")
    assert (opp["status"], opp["stage"]) == ("draft", 1)
    assert opp["startupApproval"] == "pending"
    assert opp["description"] == "Series A top-up"
    assert [o["opportunityId"] for o in wf.get_advisor_queue(advisor_id="adv_l")["opportunities"]] == [
        opp["opportunityId"]
    ]

    opp = wf.resolve_opportunity_lead_advisor(opportunity_id=opp["opportunityId"], decision="approve", actor_id="adv_l")
    assert (opp["leadAdvisorApproval"], opp["startupAdvisorApproval"], opp["stage"]) == ("approved", "pending", 2)

    opp = wf.resolve_opportunity_startup_advisor(
        opportunity_id=opp["opportunityId"], decision="approve", actor_id="adv_s"
    )
    assert opp["stage"] == 3
    assert [o["opportunityId"] for o in wf.get_startup_queue(startup_id="su_s")["opportunities"]] == [
        opp["opportunityId"]
    ]

    opp = wf.resolve_opportunity_startup(opportunity_id=opp["opportunityId"], decision="approve", actor_id="su_s")
    assert (opp["status"], opp["startupApproval"], opp["stage"]) == ("active", "approved", 4)
    assert opp["activatedAt"]
    assert wf.get_startup_queue(startup_id="su_s")["opportunities"] == []

    ledger = wf.get_opportunity_ledger(opp["opportunityId"])
    assert [e["activityType"] for e in ledger] == [
        "opportunity_created",
        "lead_advisor_approved",
        "startup_advisor_approved",
        "opportunity_activated",
    ]
    events = [r["eventType"] for r in fake_table.rows("OUTBOX#")]
    assert events == ["opportunity.activated"]


def test_parties_without_advisors_go_straight_to_startup(fake_table):
    opp = _list()
    assert opp["leadAdvisorApproval"] == "not_required"
    assert opp["startupAdvisorApproval"] == "not_required"
    assert opp["stage"] == 3


def test_lead_advisor_approval_skips_absent_startup_advisor(fake_table, link_advisor):
    link_advisor("investor", "lead_l", "adv_l")
    opp = _list()

    opp = wf.resolve_opportunity_lead_advisor(opportunity_id=opp["opportunityId"], decision="approve", actor_id="adv_l")

    assert opp["startupAdvisorApproval"] == "not_required"
    assert opp["stage"] == 3


@pytest.mark.parametrize("advisor_kind", ["investor", "startup"])
def test_any_rejection_makes_listing_rejected_and_final(fake_table, link_advisor, advisor_kind):
    party = "lead_l" if advisor_kind == "investor" else "su_s"
    link_advisor(advisor_kind, party, "adv_x")
    opp = _list()

    resolve = (
        wf.resolve_opportunity_lead_advisor if advisor_kind == "investor" else wf.resolve_opportunity_startup_advisor
    )
    rejected = resolve(opportunity_id=opp["opportunityId"], decision="reject", actor_id="adv_x")
    assert rejected["status"] == "rejected"

    with pytest.raises(InvalidTransition):
        resolve(opportunity_id=opp["opportunityId"], decision="approve", actor_id="adv_x")
    with pytest.raises(InvalidTransition):
        wf.resolve_opportunity_startup(opportunity_id=opp["opportunityId"], decision="approve", actor_id="su_s")
    assert [r["eventType"] for r in fake_table.rows("OUTBOX#")] == ["opportunity.rejected"]


def test_startup_rejection(fake_table):
    opp = _list()
    out = wf.resolve_opportunity_startup(opportunity_id=opp["opportunityId"], decision="reject", actor_id="su_s")
    assert (out["status"], out["startupApproval"]) == ("rejected", "rejected")


def test_only_the_startup_decides(fake_table):
    opp = _list()
    with pytest.raises(ActorNotAuthorized):
        wf.resolve_opportunity_startup(opportunity_id=opp["opportunityId"], decision="approve", actor_id="lead_l")


@pytest.mark.parametrize(
    "overrides",
    [
        {"minimum_co_investment": "90000"},
        {"maximum_co_investment": "250000"},
        {"total_investment_amount": "0"},
        {"total_equity_percentage": "120"},
        {"minimum_co_investment": "-1"},
    ],
)
def test_inconsistent_terms_are_refused(fake_table, overrides):
    with pytest.raises(InvalidTerms):
        _list(**overrides)
    assert fake_table.rows("COINVEST_OPP#") == []


def test_lead_closes_active_listing(fake_table):
    opp = _list()
    with pytest.raises(InvalidTransition):
        wf.close_opportunity(opportunity_id=opp["opportunityId"], actor_id="lead_l")

    wf.resolve_opportunity_startup(opportunity_id=opp["opportunityId"], decision="approve", actor_id="su_s")
    with pytest.raises(ActorNotAuthorized):
        wf.close_opportunity(opportunity_id=opp["opportunityId"], actor_id="su_s")

    closed = wf.close_opportunity(opportunity_id=opp["opportunityId"], actor_id="lead_l")
    assert (closed["status"], closed["completionReason"], closed["stage"]) == ("completed", "closed_by_lead", 4)
    assert wf.list_active_opportunities()["data"] == []


def test_active_listing_and_lead_listing(fake_table):
    draft = _list(startup="su_draft")
    live = _list()
    wf.resolve_opportunity_startup(opportunity_id=live["opportunityId"], decision="approve", actor_id="su_s")

    assert [o["opportunityId"] for o in wf.list_active_opportunities()["data"]] == [live["opportunityId"]]
    assert {o["opportunityId"] for o in wf.list_opportunities_for_lead(lead_investor_id="lead_l")["data"]} == {
        draft["opportunityId"],
        live["opportunityId"],
    }


def test_unlisted_opportunity_is_hidden_from_strangers(fake_table):
    opp = _list()

    with pytest.raises(RecordNotFound):
        wf.get_opportunity(opportunity_id=opp["opportunityId"], actor_id="inv_stranger")
    with pytest.raises(RecordNotFound):
        wf.get_opportunity(opportunity_id=opp["opportunityId"])

    assert wf.get_opportunity(opportunity_id=opp["opportunityId"], actor_id="su_s")["status"] == "draft"
    assert wf.get_opportunity(opportunity_id=opp["opportunityId"], actor_id="lead_l")["status"] == "draft"


def test_unlisted_opportunity_ledger_is_hidden_from_strangers(fake_table):
    opp = _list()
    oid = opp["opportunityId"]

    with pytest.raises(RecordNotFound):
        wf.get_opportunity_ledger(oid, actor_id="inv_stranger")
    with pytest.raises(RecordNotFound):
        wf.get_opportunity_ledger(oid)

    for party in ("lead_l", "su_s"):
        assert [e["activityType"] for e in wf.get_opportunity_ledger(oid, actor_id=party)] == ["opportunity_created"]


def test_active_opportunity_carries_allocation_summary(fake_table):
    opp = _list()
    wf.resolve_opportunity_startup(opportunity_id=opp["opportunityId"], decision="approve", actor_id="su_s")

    out = wf.get_opportunity(opportunity_id=opp["opportunityId"], actor_id="anyone")

    assert out["allocation"]["leadInvested"] == Decimal("120000")
    assert out["allocation"]["leadEquity"] == Decimal("12")
    assert out["allocation"]["remainingCapacity"] == Decimal("80000")
