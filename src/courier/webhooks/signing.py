"""HMAC-SHA256 signing for outbound webhook requests.

The signed message is ``"{timestamp}.{body}"`` so a captured body cannot be
replayed under a new timestamp. Subscribers recompute the digest with their
copy of the secret and reject requests outside their freshness window.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time

SIGNATURE_PREFIX = "sha256="

# Bytes of entropy in a generated secret (hex-encoded to twice the length)
SECRET_BYTES = 32


def generate_secret() -> str:
    """Generate a random 256-bit webhook secret, hex-encoded."""
    return secrets.token_hex(SECRET_BYTES)


def sign(secret: str, timestamp: int, body: str | bytes) -> str:
    """Compute the hex HMAC-SHA256 digest of ``"{timestamp}.{body}"``.

    Args:
        secret: Shared secret for HMAC.
        timestamp: Unix milliseconds sent in ``X-Webhook-Timestamp``.
        body: Exact request body.

    Returns:
        Lowercase hex digest.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    message = f"{timestamp}.".encode() + body
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=message,
        digestmod=hashlib.sha256,
    ).hexdigest()


def signature_header(digest: str) -> str:
    """Format a digest for ``X-Webhook-Signature``."""
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(
    secret: str,
    timestamp: int,
    body: str | bytes,
    header: str,
    tolerance_seconds: float | None = 300.0,
    now: float | None = None,
) -> bool:
    """Verify a received ``X-Webhook-Signature`` header.

    Args:
        secret: Shared secret for HMAC.
        timestamp: Value of ``X-Webhook-Timestamp`` (unix millis).
        body: Raw request body as received.
        header: Signature header (format: "sha256=<hex_digest>").
        tolerance_seconds: Maximum age (or clock skew) accepted. None disables
            the freshness check.
        now: Current unix time in seconds, for testing.

    Returns:
        True if the signature matches and the timestamp is fresh.
    """
    if tolerance_seconds is not None:
        current = time.time() if now is None else now
        if abs(current - timestamp / 1000) > tolerance_seconds:
            return False

    expected = signature_header(sign(secret, timestamp, body))
    return hmac.compare_digest(expected, header)
