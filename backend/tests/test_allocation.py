from __future__ import annotations

from decimal import Decimal

from offerflow.domain.investments import allocation


def _opp(total="100000", equity="20", maximum="40000", minimum="0"):
    return {
        "opportunityId": "opp_1",
        "totalInvestmentAmount": Decimal(total),
        "totalEquityPercentage": Decimal(equity),
        "maximumCoInvestment": Decimal(maximum),
        "minimumCoInvestment": Decimal(minimum),
    }


def _co(cid, amount, status, equity="1"):
    return {
        "coInvestmentOfferId": cid,
        "offerAmount": Decimal(amount),
        "equityPercentage": Decimal(equity),
        "status": status,
    }


def test_lead_share_is_derived_from_the_non_co_investable_part():
    opp = _opp()
    assert allocation.lead_invested(opp) == Decimal("60000")
    assert allocation.lead_equity(opp) == Decimal("12.0")


def test_lead_equity_is_zero_when_total_is_zero():
    opp = _opp(total="0", maximum="0")
    assert allocation.lead_equity(opp) == Decimal("0")


def test_remaining_capacity_counts_only_reserving_statuses():
    offers = [
        _co("a", "10000", "accepted"),
        _co("b", "5000", "pending_lead_investor_approval"),
        _co("c", "5000", "pending_startup_approval"),
        _co("d", "7000", "pending_investor_advisor_approval"),
        _co("e", "9000", "lead_investor_rejected"),
        _co("f", "9000", "rejected"),
    ]
    assert allocation.reserved_amount(offers) == Decimal("20000")
    assert allocation.remaining_capacity(_opp(), offers) == Decimal("20000")
    assert allocation.remaining_capacity(_opp(), offers, exclude_offer_id="a") == Decimal("30000")


def test_creation_check_also_counts_offers_waiting_on_an_advisor():
    offers = [_co("a", "30000", "pending_investor_advisor_approval")]
    opp = _opp()
    assert allocation.exceeds_capacity(opp, offers, Decimal("20000"), include_advisor_pending=True)
    assert not allocation.exceeds_capacity(opp, offers, Decimal("20000"), include_advisor_pending=False)


def test_exactly_filling_the_cap_is_allowed():
    offers = [_co("a", "30000", "accepted")]
    assert not allocation.exceeds_capacity(_opp(), offers, Decimal("10000"))
    assert allocation.exceeds_capacity(_opp(), offers, Decimal("10000.01"))


def test_equity_is_kept_when_it_fits():
    opp = _opp()
    result = allocation.cap_co_investor_equity(opp, [_co("a", "10000", "accepted", "4")], _co("b", "10000", "pending_startup_approval", "3"))
    assert result.capped is False
    assert result.equity_percentage == Decimal("3")


def test_equity_is_capped_to_what_is_left_after_lead_and_accepted_offers():
    opp = _opp()  # lead holds 12 of 20
    accepted = [_co("a", "20000", "accepted", "6")]
    result = allocation.cap_co_investor_equity(opp, accepted, _co("b", "20000", "pending_startup_approval", "5"))
    assert result.capped is True
    assert result.equity_percentage == Decimal("2.0000")
    assert result.requested_equity_percentage == Decimal("5")


def test_equity_cap_never_goes_negative():
    opp = _opp()
    accepted = [_co("a", "20000", "accepted", "9")]
    result = allocation.cap_co_investor_equity(opp, accepted, _co("b", "1000", "pending_startup_approval", "1"))
    assert result.capped is True
    assert result.equity_percentage == Decimal("0")


def test_snapshot_record_uses_api_field_names():
    snap = allocation.snapshot(_opp(), [_co("a", "15000", "accepted")]).to_record()
    assert snap == {
        "leadInvested": Decimal("60000"),
        "leadEquity": Decimal("12.0000"),
        "reservedAmount": Decimal("15000"),
        "acceptedAmount": Decimal("15000"),
        "remainingCapacity": Decimal("25000"),
    }


def test_to_decimal_keeps_printed_float_value():
    assert allocation.to_decimal(0.1) == Decimal("0.1")
    assert allocation.to_decimal(None) == Decimal("0")
