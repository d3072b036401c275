from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

# Storage-only attributes never returned to callers.
_INTERNAL_KEYS = (
    "pk",
    "sk",
    "gsi1pk",
    "gsi1sk",
    "gsi2pk",
    "gsi2sk",
    "gsi3pk",
    "gsi3sk",
    "entityType",
)

# Conditions used by every workflow record write.
CREATE_CONDITION = "attribute_not_exists(pk)"
VERSION_CONDITION = "#v = :expected_version"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:20]}"


def require_id(value: Any, name: str) -> str:
    v = str(value or "").strip()
    if not v:
        raise ValueError(f"{name} is required")
    return v


def normalize_for_api(item: dict[str, Any] | None) -> dict[str, Any] | None:
    if not item:
        return None
    return {k: v for k, v in item.items() if k not in _INTERNAL_KEYS}


def drop_none(item: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in item.items() if v is not None}


def version_condition(expected_version: int) -> dict[str, Any]:
    """kwargs for a put that only succeeds if nobody wrote the record since we read it."""
    return {
        "condition_expression": VERSION_CONDITION,
        "expression_attribute_names": {"#v": "version"},
        "expression_attribute_values": {":expected_version": int(expected_version)},
    }
