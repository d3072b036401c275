from __future__ import annotations

from typing import Any

from ..infrastructure.notifications.webhook_notifier import deliver
from ..observability.logging import configure_logging, get_logger
from ..repositories.outbox_repo import claim_event, list_pending, mark_done, mark_retry
from ..repositories.records import now_iso
from ..settings import settings

log = get_logger("outbox_worker")

# Event families the webhook accepts; anything else is a producer bug.
_KNOWN_PREFIXES = ("offer.", "co_investment_offer.", "opportunity.")


def dispatch_event(event: dict[str, Any]) -> dict[str, Any]:
    """Dispatch a single outbox event."""
    et = str(event.get("eventType") or "").strip()
    payload_raw = event.get("payload")
    payload: dict[str, Any] = payload_raw if isinstance(payload_raw, dict) else {}

    if not et.startswith(_KNOWN_PREFIXES):
        return {"ok": False, "error": "unknown_event_type", "eventType": et}

    return deliver(event_id=str(event.get("eventId") or ""), event_type=et, payload=payload)


def run_once(*, limit: int = 30) -> dict[str, Any]:
    """
    Best-effort outbox dispatcher. Safe to run from cron/ECS scheduled task.
    """
    lim = max(1, min(100, int(limit or 30)))
    scanned = 0
    processed = 0
    failed = 0

    if not settings.notifications_enabled:
        return {"ok": True, "scanned": 0, "processed": 0, "failed": 0, "skipped": "notifications_disabled"}

    now = now_iso()
    pg = list_pending(limit=lim, next_token=None)
    for it in pg.get("items") or []:
        scanned += 1
        eid = str(it.get("eventId") or "").strip()
        if not eid:
            continue
        # Pending items are ordered by nextAttemptAt; the rest are backing off.
        if str(it.get("nextAttemptAt") or "") > now:
            break
        claimed = claim_event(event_id=eid)
        if not claimed:
            continue
        try:
            res = dispatch_event(claimed)
        except Exception as e:
            log.warning("outbox_dispatch_exception", event_id=eid, error=str(e) or type(e).__name__)
            res = {"ok": False, "error": str(e) or "dispatch_failed"}

        if res.get("ok"):
            processed += 1
            mark_done(event=claimed, result=res)
        else:
            failed += 1
            mark_retry(event=claimed, error=str(res.get("error") or "dispatch_failed"))

    out = {"ok": True, "scanned": scanned, "processed": processed, "failed": failed}
    log.info("outbox_run_once_done", **out)
    return out


if __name__ == "__main__":
    configure_logging(level=settings.log_level, fmt=settings.log_format)
    run_once(limit=30)
