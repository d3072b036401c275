"""
Advisor directory.

Answers "does this investor/startup have an assigned advisor, and who is it".
Every auto-skip decision in the workflow branches on the tagged result
returned here rather than on a nullable advisor id.

Lookups read the link table on every call unless ADVISOR_CACHE_TTL_SECONDS is
set. The cache is local to one process: assign/unassign only invalidate it
here, so other processes may act on the old assignment until the TTL runs out.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

from cachetools import TTLCache

from ...observability.logging import get_logger
from ...repositories import advisor_links_repo
from ...settings import settings

log = get_logger("advisors")


@dataclass(frozen=True, slots=True)
class HasAdvisor:
    advisor_id: str


@dataclass(frozen=True, slots=True)
class NoAdvisor:
    pass


AdvisorAssignment = HasAdvisor | NoAdvisor

_cache: TTLCache = TTLCache(
    maxsize=max(1, int(settings.advisor_cache_max_entries)),
    ttl=max(1, int(settings.advisor_cache_ttl_seconds)),
)
_cache_lock = threading.Lock()


def _lookup(kind: str, party_id: str) -> AdvisorAssignment:
    cached = int(settings.advisor_cache_ttl_seconds) > 0
    cache_key = (kind, party_id)
    if cached:
        with _cache_lock:
            hit = _cache.get(cache_key)
        if hit is not None:
            return hit

    link = advisor_links_repo.get_link(kind=kind, party_id=party_id) or {}
    advisor_id = str(link.get("advisorId") or "").strip()
    result: AdvisorAssignment = HasAdvisor(advisor_id=advisor_id) if advisor_id else NoAdvisor()

    if cached:
        with _cache_lock:
            _cache[cache_key] = result
    return result


def lookup_investor_advisor(investor_id: str) -> AdvisorAssignment:
    return _lookup("investor", str(investor_id))


def lookup_startup_advisor(startup_id: str) -> AdvisorAssignment:
    return _lookup("startup", str(startup_id))


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


def assign_advisor(*, kind: str, party_id: str, advisor_id: str) -> dict[str, Any]:
    if str(advisor_id or "").strip() == str(party_id or "").strip():
        raise ValueError("a party cannot advise itself")
    link = advisor_links_repo.put_link(kind=kind, party_id=party_id, advisor_id=advisor_id)
    with _cache_lock:
        _cache.pop((link["partyKind"], link["partyId"]), None)
    log.info("advisor_assigned", party_kind=link["partyKind"], party_id=link["partyId"], advisor_id=link["advisorId"])
    return link


def unassign_advisor(*, kind: str, party_id: str) -> None:
    advisor_links_repo.delete_link(kind=kind, party_id=party_id)
    with _cache_lock:
        _cache.pop((str(kind).strip().lower(), str(party_id).strip()), None)
    log.info("advisor_unassigned", party_kind=kind, party_id=party_id)


def get_assignment(*, kind: str, party_id: str) -> dict[str, Any] | None:
    return advisor_links_repo.get_link(kind=kind, party_id=party_id)


def advises(*, advisor_id: str, kind: str, party_id: str) -> bool:
    """True when `advisor_id` is the advisor currently assigned to the party (uncached)."""
    link = advisor_links_repo.get_link(kind=kind, party_id=party_id) or {}
    return bool(advisor_id) and str(link.get("advisorId") or "") == str(advisor_id)
