from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from ...infrastructure.token_crypto import decrypt_string, encrypt_string
from .errors import DdbValidation

_TOKEN_VERSION = 1


def _json_default(v: Any) -> Any:
    # LastEvaluatedKey values come back from boto3 as Decimal for numeric keys.
    if isinstance(v, Decimal):
        return str(v)
    raise TypeError(f"Unserializable key value: {type(v).__name__}")


def encode_next_token(last_evaluated_key: dict[str, Any] | None, *, scope: str | None = None) -> str | None:
    """
    Wrap a LastEvaluatedKey in an encrypted, opaque token.

    `scope` names the listing the key came from (the queried partition); the
    token is only accepted again for that same listing.
    """
    if not last_evaluated_key:
        return None

    payload = {"v": _TOKEN_VERSION, "s": scope, "lek": last_evaluated_key}
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=_json_default)
    return encrypt_string(raw)


def decode_next_token(next_token: str | None, *, scope: str | None = None) -> dict[str, Any] | None:
    if not next_token:
        return None

    raw = decrypt_string(next_token)
    if not raw:
        raise DdbValidation(message="Invalid nextToken")

    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise DdbValidation(message="Invalid nextToken") from e

    if not isinstance(payload, dict) or payload.get("v") != _TOKEN_VERSION:
        raise DdbValidation(message="Invalid nextToken")
    if payload.get("s") != scope:
        raise DdbValidation(message="nextToken belongs to a different listing")

    lek = payload.get("lek")
    if lek is None:
        return None
    if not isinstance(lek, dict):
        raise DdbValidation(message="Invalid nextToken")
    return lek
