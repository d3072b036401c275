from __future__ import annotations

import pytest

from offerflow.modules.workflow import duplicate_guard
from offerflow.modules.workflow import workflow_service as wf
from offerflow.modules.workflow.errors import DuplicateActiveOffer


def _create(investor="inv_a", startup="su_s"):
    return wf.create_offer(investor_id=investor, startup_id=startup, offer_amount="1000", equity_percentage="1")


def test_second_offer_for_live_pair_is_refused(fake_table):
    first = _create()

    with pytest.raises(DuplicateActiveOffer) as exc:
        _create()

    assert exc.value.record_id == first["offerId"]
    assert len([r for r in fake_table.rows("OFFER#") if r["sk"] == "PROFILE"]) == 1


def test_other_pairs_are_unaffected(fake_table):
    _create()
    assert _create(startup="su_other")["status"] == "pending"
    assert _create(investor="inv_b")["status"] == "pending"


def test_pair_lock_blocks_create_even_when_listing_misses_it(fake_table, monkeypatch):
    import offerflow.repositories.offers_repo as offers_repo

    _create()
    # Simulate a lagging index: the listing does not see the live offer yet.
    monkeypatch.setattr(offers_repo, "list_offers_for_pair", lambda **_kw: [])

    with pytest.raises(DuplicateActiveOffer):
        _create()


def test_accepted_offers_are_kept_and_do_not_block(fake_table):
    first = _create()
    wf.resolve_offer_startup(offer_id=first["offerId"], decision="approve", actor_id="su_s")

    second = _create()

    assert wf.get_offer(first["offerId"])["status"] == "accepted"
    assert second["status"] == "pending"


def test_purge_is_a_noop_when_nothing_to_purge(fake_table):
    assert duplicate_guard.ensure_no_active_offer(investor_id="inv_a", startup_id="su_s") == 0
    first = _create()
    wf.resolve_offer_startup(offer_id=first["offerId"], decision="reject", actor_id="su_s")

    assert duplicate_guard.ensure_no_active_offer(investor_id="inv_a", startup_id="su_s") == 1
    assert duplicate_guard.ensure_no_active_offer(investor_id="inv_a", startup_id="su_s") == 0
