from __future__ import annotations

from typing import Any

import httpx
import orjson

from ...observability.logging import get_logger
from ...settings import settings

log = get_logger("webhook_notifier")


def deliver(*, event_id: str, event_type: str, payload: dict[str, Any]) -> dict[str, Any]:
    """
    POST one workflow event to the configured notification webhook.

    Returns {"ok": True} on a 2xx response. Any other outcome returns
    {"ok": False, "error": ...} so the outbox can schedule a retry; transport
    errors propagate to the caller.
    """
    url = str(settings.notification_webhook_url or "").strip()
    if not url:
        return {"ok": False, "error": "webhook_not_configured"}

    body = {"eventId": event_id, "eventType": event_type, "payload": payload or {}}
    with httpx.Client(timeout=float(settings.notification_timeout_seconds)) as c:
        r = c.post(
            url,
            # DynamoDB numbers come back as Decimal.
            content=orjson.dumps(body, default=str),
            headers={
                "Content-Type": "application/json",
                "X-Event-Id": event_id,
                "X-Event-Type": event_type,
            },
        )
    if r.status_code >= 400:
        log.warning("webhook_delivery_failed", event_id=event_id, event_type=event_type, status_code=int(r.status_code))
        return {"ok": False, "error": f"http_{r.status_code}"}
    return {"ok": True, "statusCode": int(r.status_code)}
