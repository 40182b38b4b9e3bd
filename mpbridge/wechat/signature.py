"""Webhook signature checks for the service account callback."""
from __future__ import annotations

import hashlib
import hmac


def generate_signature(token: str, timestamp: str, nonce: str) -> str:
    """Return the SHA-1 hex digest WeChat sends as ``signature``.

    The three parts are sorted as strings before hashing, so ``"10"`` sorts
    before ``"9"``.
    """
    parts = sorted([token, timestamp, nonce])
    raw = "".join(parts)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def verify_signature(signature: object, token: object, timestamp: object, nonce: object) -> bool:
    """Check an inbound ``signature`` against the configured token.

    Anything that is not a string fails verification instead of raising.
    """
    values = (signature, token, timestamp, nonce)
    if not all(isinstance(value, str) for value in values):
        return False
    if not signature:
        return False
    try:
        expected = generate_signature(token, timestamp, nonce)  # type: ignore[arg-type]
        supplied = signature.encode("utf-8")  # type: ignore[union-attr]
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected.encode("ascii"), supplied)
