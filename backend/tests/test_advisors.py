from __future__ import annotations

from offerflow.modules.identity import advisors
from offerflow.repositories import advisor_links_repo


def test_assignment_from_another_process_is_seen_immediately(fake_table):
    assert advisors.lookup_investor_advisor("inv_a") == advisors.NoAdvisor()

    # Written straight to the table, bypassing this process's invalidation.
    advisor_links_repo.put_link(kind="investor", party_id="inv_a", advisor_id="adv_i")

    assert advisors.lookup_investor_advisor("inv_a") == advisors.HasAdvisor(advisor_id="adv_i")


def test_enabled_cache_holds_lookups_until_cleared(fake_table, monkeypatch):
    monkeypatch.setattr(advisors.settings, "advisor_cache_ttl_seconds", 30)
    assert advisors.lookup_startup_advisor("su_s") == advisors.NoAdvisor()

    advisor_links_repo.put_link(kind="startup", party_id="su_s", advisor_id="adv_s")
    assert advisors.lookup_startup_advisor("su_s") == advisors.NoAdvisor()

    advisors.clear_cache()
    assert advisors.lookup_startup_advisor("su_s") == advisors.HasAdvisor(advisor_id="adv_s")


def test_local_assignment_invalidates_the_cache(fake_table, monkeypatch):
    monkeypatch.setattr(advisors.settings, "advisor_cache_ttl_seconds", 30)
    assert advisors.lookup_investor_advisor("inv_b") == advisors.NoAdvisor()

    advisors.assign_advisor(kind="investor", party_id="inv_b", advisor_id="adv_b")

    assert advisors.lookup_investor_advisor("inv_b") == advisors.HasAdvisor(advisor_id="adv_b")
