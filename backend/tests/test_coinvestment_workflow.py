from __future__ import annotations

from decimal import Decimal

import pytest

from offerflow.modules.workflow import workflow_service as wf
from offerflow.modules.workflow.errors import (
    ActorNotAuthorized,
    AllocationExceeded,
    InvalidTerms,
    InvalidTransition,
    OpportunityNotActive,
    SelfOfferForbidden,
)


@pytest.fixture()
def active_opportunity(fake_table):
    """Lead L lists 200000 for 20% of startup S; up to 80000 is open to co-investors."""
    opp = wf.create_opportunity(
        lead_investor_id="lead_l",
        startup_id="su_s",
        total_investment_amount="200000",
        total_equity_percentage="20",
        minimum_co_investment="10000",
        maximum_co_investment="80000",
    )
    return wf.resolve_opportunity_startup(opportunity_id=opp["opportunityId"], decision="approve", actor_id="su_s")


def _offer(opp, investor, amount, equity):
    return wf.create_co_investment_offer(
        opportunity_id=opp["opportunityId"],
        investor_id=investor,
        offer_amount=amount,
        equity_percentage=equity,
    )


def _accept(co):
    cid = co["coInvestmentOfferId"]
    wf.resolve_co_offer_lead_investor(co_offer_id=cid, decision="approve", actor_id="lead_l")
    return wf.resolve_co_offer_startup(co_offer_id=cid, decision="approve", actor_id="su_s")


def test_scenario_second_investor_exceeds_remaining_capacity(active_opportunity):
    b = _offer(active_opportunity, "inv_b", "30000", "3")
    assert b["status"] == "pending_lead_investor_approval"
    assert b["investorAdvisorApproval"] == "not_required"

    accepted = _accept(b)
    assert accepted["status"] == "accepted"
    assert accepted["equityPercentage"] == Decimal("3")
    assert accepted["allocationSnapshot"]["acceptedAmount"] == Decimal("30000")
    assert accepted["allocationSnapshot"]["remainingCapacity"] == Decimal("50000")
    assert "needsManualReview" not in accepted

    with pytest.raises(AllocationExceeded) as exc:
        _offer(active_opportunity, "inv_c", "60000", "6")
    assert exc.value.details["remainingCapacity"] == "50000"

    assert _offer(active_opportunity, "inv_c", "50000", "5")["status"] == "pending_lead_investor_approval"


def test_lead_cannot_co_invest_in_own_listing(active_opportunity):
    with pytest.raises(SelfOfferForbidden):
        _offer(active_opportunity, "lead_l", "20000", "2")


def test_offers_need_an_active_listing(fake_table):
    draft = wf.create_opportunity(
        lead_investor_id="lead_l",
        startup_id="su_s",
        total_investment_amount="100000",
        total_equity_percentage="10",
        minimum_co_investment="0",
        maximum_co_investment="50000",
    )
    with pytest.raises(OpportunityNotActive):
        _offer(draft, "inv_b", "10000", "1")


def test_amount_below_minimum_is_invalid(active_opportunity):
    with pytest.raises(InvalidTerms):
        _offer(active_opportunity, "inv_b", "5000", "1")


def test_advisor_pending_offers_count_against_new_offers(active_opportunity, link_advisor):
    link_advisor("investor", "inv_b", "adv_b")
    b = _offer(active_opportunity, "inv_b", "50000", "5")
    assert b["status"] == "pending_investor_advisor_approval"

    with pytest.raises(AllocationExceeded):
        _offer(active_opportunity, "inv_c", "40000", "4")


def test_advisor_step_forwards_to_lead_and_needs_an_open_listing(active_opportunity, link_advisor):
    link_advisor("investor", "inv_b", "adv_b")
    link_advisor("investor", "inv_c", "adv_c")
    b = _offer(active_opportunity, "inv_b", "30000", "3")
    c = _offer(active_opportunity, "inv_c", "30000", "3")

    with pytest.raises(ActorNotAuthorized):
        wf.resolve_co_offer_investor_advisor(co_offer_id=b["coInvestmentOfferId"], decision="approve", actor_id="adv_c")

    out = wf.resolve_co_offer_investor_advisor(co_offer_id=b["coInvestmentOfferId"], decision="approve", actor_id="adv_b")
    assert (out["status"], out["investorAdvisorApproval"]) == ("pending_lead_investor_approval", "approved")

    wf.close_opportunity(opportunity_id=active_opportunity["opportunityId"], actor_id="lead_l")
    with pytest.raises(InvalidTransition):
        wf.resolve_co_offer_investor_advisor(co_offer_id=c["coInvestmentOfferId"], decision="approve", actor_id="adv_c")

    rejected = wf.resolve_co_offer_investor_advisor(
        co_offer_id=c["coInvestmentOfferId"], decision="reject", actor_id="adv_c"
    )
    assert rejected["status"] == "investor_advisor_rejected"


def test_only_lead_and_startup_decide_their_steps(active_opportunity):
    b = _offer(active_opportunity, "inv_b", "30000", "3")
    cid = b["coInvestmentOfferId"]

    with pytest.raises(ActorNotAuthorized):
        wf.resolve_co_offer_lead_investor(co_offer_id=cid, decision="approve", actor_id="su_s")
    with pytest.raises(InvalidTransition):
        wf.resolve_co_offer_startup(co_offer_id=cid, decision="approve", actor_id="su_s")

    wf.resolve_co_offer_lead_investor(co_offer_id=cid, decision="approve", actor_id="lead_l")
    with pytest.raises(ActorNotAuthorized):
        wf.resolve_co_offer_startup(co_offer_id=cid, decision="approve", actor_id="lead_l")


def test_equity_is_capped_and_flagged_for_review(active_opportunity):
    _accept(_offer(active_opportunity, "inv_b", "30000", "3"))

    d = _accept(_offer(active_opportunity, "inv_d", "40000", "6"))

    # 20% total - 12% lead - 3% already granted leaves 5%.
    assert d["equityPercentage"] == Decimal("5.0000")
    assert d["requestedEquityPercentage"] == Decimal("6")
    assert d["needsManualReview"] is True
    ledger = wf.get_co_investment_offer_ledger(d["coInvestmentOfferId"])
    assert ledger[-1]["activityType"] == "co_investment_offer_accepted"
    assert ledger[-1]["details"]["grantedEquityPercentage"] == Decimal("5.0000")


def test_full_allocation_completes_the_opportunity(active_opportunity, fake_table):
    _accept(_offer(active_opportunity, "inv_b", "30000", "3"))
    last = _accept(_offer(active_opportunity, "inv_c", "50000", "5"))

    assert last["status"] == "accepted"
    opp = wf.get_opportunity(opportunity_id=active_opportunity["opportunityId"], actor_id="lead_l")
    assert (opp["status"], opp["completionReason"]) == ("completed", "fully_allocated")
    assert opp["allocation"]["remainingCapacity"] == Decimal("0")

    ledger = wf.get_opportunity_ledger(active_opportunity["opportunityId"], actor_id="lead_l")
    assert ledger[-1]["activityType"] == "opportunity_completed"
    assert "opportunity.completed" in [r["eventType"] for r in fake_table.rows("OUTBOX#")]

    with pytest.raises(OpportunityNotActive):
        _offer(active_opportunity, "inv_e", "10000", "1")


def test_closed_listing_blocks_further_approvals(active_opportunity):
    b = _offer(active_opportunity, "inv_b", "30000", "3")
    wf.close_opportunity(opportunity_id=active_opportunity["opportunityId"], actor_id="lead_l")

    with pytest.raises(InvalidTransition):
        wf.resolve_co_offer_lead_investor(co_offer_id=b["coInvestmentOfferId"], decision="approve", actor_id="lead_l")

    out = wf.resolve_co_offer_lead_investor(co_offer_id=b["coInvestmentOfferId"], decision="reject", actor_id="lead_l")
    assert out["status"] == "lead_investor_rejected"


def test_reservations_from_a_stale_snapshot_cannot_both_commit(active_opportunity, monkeypatch):
    import offerflow.repositories.coinvestment_opportunities_repo as opp_repo

    stale = opp_repo.get_opportunity(active_opportunity["opportunityId"])
    _offer(active_opportunity, "inv_b", "50000", "5")

    # A second request that read the opportunity before B's reservation landed.
    monkeypatch.setattr(opp_repo, "get_opportunity", lambda _oid: stale)
    with pytest.raises(InvalidTransition):
        _offer(active_opportunity, "inv_c", "50000", "5")


def test_capacity_does_not_depend_on_the_offer_indexes(active_opportunity, fake_table):
    fake_table.lag_indexes()
    _offer(active_opportunity, "inv_b", "50000", "5")

    with pytest.raises(AllocationExceeded) as exc:
        _offer(active_opportunity, "inv_c", "50000", "5")
    assert exc.value.details["remainingCapacity"] == "30000"

    opp = wf.get_opportunity(opportunity_id=active_opportunity["opportunityId"], actor_id="lead_l")
    assert opp["allocation"]["reservedAmount"] == Decimal("50000")
    assert "coInvestmentHoldings" not in opp


def test_rejected_offer_releases_its_reservation(active_opportunity):
    b = _offer(active_opportunity, "inv_b", "50000", "5")
    wf.resolve_co_offer_lead_investor(co_offer_id=b["coInvestmentOfferId"], decision="reject", actor_id="lead_l")

    c = _offer(active_opportunity, "inv_c", "60000", "6")
    assert c["status"] == "pending_lead_investor_approval"
    opp = wf.get_opportunity(opportunity_id=active_opportunity["opportunityId"], actor_id="lead_l")
    assert opp["allocation"]["reservedAmount"] == Decimal("60000")


def _accepted(opp, link_advisor):
    return _accept(_offer(opp, "inv_b", "30000", "3"))


def _startup_rejected(opp, link_advisor):
    co = _offer(opp, "inv_b", "30000", "3")
    wf.resolve_co_offer_lead_investor(co_offer_id=co["coInvestmentOfferId"], decision="approve", actor_id="lead_l")
    return wf.resolve_co_offer_startup(co_offer_id=co["coInvestmentOfferId"], decision="reject", actor_id="su_s")


def _lead_rejected(opp, link_advisor):
    co = _offer(opp, "inv_b", "30000", "3")
    return wf.resolve_co_offer_lead_investor(co_offer_id=co["coInvestmentOfferId"], decision="reject", actor_id="lead_l")


def _advisor_rejected(opp, link_advisor):
    link_advisor("investor", "inv_b", "adv_b")
    co = _offer(opp, "inv_b", "30000", "3")
    return wf.resolve_co_offer_investor_advisor(
        co_offer_id=co["coInvestmentOfferId"], decision="reject", actor_id="adv_b"
    )


@pytest.mark.parametrize(
    ("reach", "status"),
    [
        (_accepted, "accepted"),
        (_startup_rejected, "rejected"),
        (_lead_rejected, "lead_investor_rejected"),
        (_advisor_rejected, "investor_advisor_rejected"),
    ],
)
def test_decided_co_offers_cannot_be_resolved_again(active_opportunity, link_advisor, reach, status):
    done = reach(active_opportunity, link_advisor)
    cid = done["coInvestmentOfferId"]
    assert done["status"] == status
    entries = len(wf.get_co_investment_offer_ledger(cid))

    steps = [
        (wf.resolve_co_offer_investor_advisor, "adv_b"),
        (wf.resolve_co_offer_lead_investor, "lead_l"),
        (wf.resolve_co_offer_startup, "su_s"),
    ]
    for resolve, actor in steps:
        for decision in ("approve", "reject"):
            with pytest.raises(InvalidTransition):
                resolve(co_offer_id=cid, decision=decision, actor_id=actor)

    after = wf.get_co_investment_offer(cid)
    assert (after["status"], after["version"]) == (status, done["version"])
    assert len(wf.get_co_investment_offer_ledger(cid)) == entries


def test_work_queues(active_opportunity, link_advisor):
    link_advisor("investor", "inv_b", "adv_b")
    b = _offer(active_opportunity, "inv_b", "20000", "2")
    c = _offer(active_opportunity, "inv_c", "20000", "2")

    assert [x["coInvestmentOfferId"] for x in wf.get_advisor_queue(advisor_id="adv_b")["coInvestmentOffers"]] == [
        b["coInvestmentOfferId"]
    ]
    assert [x["coInvestmentOfferId"] for x in wf.list_pending_lead_approvals(lead_investor_id="lead_l")] == [
        c["coInvestmentOfferId"]
    ]

    wf.resolve_co_offer_lead_investor(co_offer_id=c["coInvestmentOfferId"], decision="approve", actor_id="lead_l")
    assert wf.list_pending_lead_approvals(lead_investor_id="lead_l") == []
    assert [x["coInvestmentOfferId"] for x in wf.get_startup_queue(startup_id="su_s")["coInvestmentOffers"]] == [
        c["coInvestmentOfferId"]
    ]

    mine = wf.list_co_investment_offers_for_investor(investor_id="inv_c")["data"]
    assert [x["status"] for x in mine] == ["pending_startup_approval"]
