"""Tests for webhook payload signing."""

import hashlib
import hmac

from courier.webhooks.signing import (
    SIGNATURE_PREFIX,
    generate_secret,
    sign,
    signature_header,
    verify_signature,
)

SECRET = "s3cr3t"
TIMESTAMP = 1_718_000_000_000
BODY = '{"type":"page.created","data":{"id":"p1"}}'


class TestSign:
    """Tests for HMAC-SHA256 digest computation."""

    def test_signs_timestamp_dot_body(self):
        """Digest should cover "{timestamp}.{body}"."""
        expected = hmac.new(
            SECRET.encode(), f"{TIMESTAMP}.{BODY}".encode(), hashlib.sha256
        ).hexdigest()

        assert sign(SECRET, TIMESTAMP, BODY) == expected

    def test_str_and_bytes_body_agree(self):
        assert sign(SECRET, TIMESTAMP, BODY) == sign(SECRET, TIMESTAMP, BODY.encode())

    def test_deterministic(self):
        assert sign(SECRET, TIMESTAMP, BODY) == sign(SECRET, TIMESTAMP, BODY)

    def test_timestamp_changes_digest(self):
        assert sign(SECRET, TIMESTAMP, BODY) != sign(SECRET, TIMESTAMP + 1, BODY)

    def test_secret_changes_digest(self):
        assert sign(SECRET, TIMESTAMP, BODY) != sign("other", TIMESTAMP, BODY)

    def test_header_format(self):
        digest = sign(SECRET, TIMESTAMP, BODY)
        header = signature_header(digest)
        assert header == f"sha256={digest}"
        assert header.startswith(SIGNATURE_PREFIX)
        assert len(digest) == 64


class TestGenerateSecret:
    def test_secret_is_64_hex_chars(self):
        secret = generate_secret()
        assert len(secret) == 64
        int(secret, 16)

    def test_secrets_are_unique(self):
        assert len({generate_secret() for _ in range(20)}) == 20


class TestVerifySignature:
    """Tests for subscriber-side verification."""

    def _header(self) -> str:
        return signature_header(sign(SECRET, TIMESTAMP, BODY))

    def test_valid_signature(self):
        assert verify_signature(SECRET, TIMESTAMP, BODY, self._header(), now=TIMESTAMP / 1000)

    def test_wrong_secret_rejected(self):
        assert not verify_signature("wrong", TIMESTAMP, BODY, self._header(), now=TIMESTAMP / 1000)

    def test_tampered_body_rejected(self):
        assert not verify_signature(
            SECRET, TIMESTAMP, BODY + " ", self._header(), now=TIMESTAMP / 1000
        )

    def test_missing_prefix_rejected(self):
        digest = sign(SECRET, TIMESTAMP, BODY)
        assert not verify_signature(SECRET, TIMESTAMP, BODY, digest, now=TIMESTAMP / 1000)

    def test_stale_timestamp_rejected(self):
        now = TIMESTAMP / 1000 + 301
        assert not verify_signature(SECRET, TIMESTAMP, BODY, self._header(), now=now)

    def test_within_tolerance_accepted(self):
        now = TIMESTAMP / 1000 + 299
        assert verify_signature(SECRET, TIMESTAMP, BODY, self._header(), now=now)

    def test_freshness_check_can_be_disabled(self):
        assert verify_signature(
            SECRET, TIMESTAMP, BODY, self._header(), tolerance_seconds=None, now=0.0
        )
