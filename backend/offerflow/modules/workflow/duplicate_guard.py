from __future__ import annotations

from typing import Any

from ...domain.investments.statuses import OFFER_REJECTED_STATUSES, is_offer_terminal
from ...observability.logging import get_logger
from ...repositories import ledger_repo, offers_repo
from .errors import DuplicateActiveOffer

log = get_logger("duplicate_guard")


def ensure_no_active_offer(*, investor_id: str, startup_id: str) -> int:
    """
    Prepare the (investor, startup) pair for a new direct offer.

    Raises DuplicateActiveOffer when a non-terminal offer exists for the pair.
    Otherwise deletes every rejected offer for the pair together with its
    ledger entries and returns how many were purged (0 on a clean pair).
    Accepted offers are history and are kept.

    The query here is the fast path; the pair lock written with the new offer
    is what actually prevents two concurrent creates from both succeeding.
    """
    offers = offers_repo.list_offers_for_pair(investor_id=investor_id, startup_id=startup_id)

    live = [o for o in offers if not is_offer_terminal(o.get("status"))]
    if live:
        raise DuplicateActiveOffer(
            message="An active offer already exists for this startup",
            record_id=str(live[0].get("offerId") or "") or None,
            details={"investorId": investor_id, "startupId": startup_id},
        )

    purged = 0
    for offer in offers:
        if str(offer.get("status") or "") not in OFFER_REJECTED_STATUSES:
            continue
        _purge(offer)
        purged += 1

    if purged:
        log.info("rejected_offers_purged", investor_id=investor_id, startup_id=startup_id, count=purged)
    return purged


def _purge(offer: dict[str, Any]) -> None:
    oid = str(offer["offerId"])
    ledger_keys = ledger_repo.entry_keys(record_pk=offers_repo.offer_pk(oid))
    # Terminal offers already released their pair lock.
    offers_repo.delete_offer(
        offer=offer,
        expected_version=int(offer.get("version") or 0),
        release_pair_lock=False,
        extra_keys=ledger_keys,
    )
