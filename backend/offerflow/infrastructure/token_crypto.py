from __future__ import annotations

import base64
import hashlib
import os
from typing import Any

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..settings import settings

_DEV_FALLBACK_SECRET = "offerflow-dev-pagination-key"


def _get_key() -> bytes:
    raw = settings.pagination_token_key or _DEV_FALLBACK_SECRET
    return hashlib.sha256(str(raw).encode("utf-8")).digest()  # 32 bytes


def encrypt_string(plain_text: Any) -> str | None:
    if plain_text is None:
        return None

    iv = os.urandom(12)  # 12 bytes for GCM
    ct_with_tag = AESGCM(_get_key()).encrypt(iv, str(plain_text).encode("utf-8"), None)

    return ":".join(
        [
            "v1",
            base64.urlsafe_b64encode(iv).decode("ascii"),
            base64.urlsafe_b64encode(ct_with_tag).decode("ascii"),
        ]
    )


def decrypt_string(cipher_text: Any) -> str | None:
    """Return the plain text, or None for anything that is not a token we issued."""
    if not cipher_text:
        return None

    parts = str(cipher_text).split(":")
    if len(parts) != 3 or parts[0] != "v1":
        return None

    try:
        iv = base64.urlsafe_b64decode(parts[1])
        data = base64.urlsafe_b64decode(parts[2])
        if len(iv) != 12:
            return None
        return AESGCM(_get_key()).decrypt(iv, data, None).decode("utf-8")
    except Exception:
        return None
