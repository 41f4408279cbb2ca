"""Webhook payload signing and verification."""

import hashlib
import hmac
import time
from typing import Callable, List, Optional

from .models import VerificationResult


class WebhookSigner:
    """
    Signs and verifies webhook payloads using HMAC-SHA256.

    The scheme matches the one Resend uses for outgoing webhooks.

    Signature header format:
        v1,<signature>[ v1,<signature>...]

    Older senders join several pairs with commas instead
    (``v1,<sig>,v2,<sig>``); both forms are accepted.

    The signature is computed as:
        hex(HMAC-SHA256(secret, "<timestamp>.<payload>"))
    """

    SIGNATURE_VERSION = "v1"
    DEFAULT_MAX_AGE_SECONDS = 300  # 5 minutes

    def __init__(
        self,
        secret: str,
        max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the signer.

        Args:
            secret: The webhook signing secret
            max_age_seconds: Replay window; older or newer timestamps are rejected
            clock: Source of the current epoch time
        """
        self.secret = secret or ""
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    def sign(self, payload: str, timestamp: Optional[int] = None) -> str:
        """
        Sign a payload.

        Args:
            payload: The raw payload string
            timestamp: Unix timestamp (defaults to current time)

        Returns:
            The signature header value (e.g., "v1,abc123...")
        """
        if timestamp is None:
            timestamp = int(self._clock())
        return f"{self.SIGNATURE_VERSION},{self._compute_signature(payload, str(timestamp))}"

    def verify(
        self,
        payload: str,
        signature: Optional[str],
        timestamp: Optional[str],
    ) -> VerificationResult:
        """
        Verify a webhook signature.

        Args:
            payload: The raw request body
            signature: The signature header value
            timestamp: The timestamp header value (epoch seconds)

        Returns:
            VerificationResult with the first failing check as ``error``
        """
        if not payload:
            return VerificationResult.fail("Missing payload")
        if not signature:
            return VerificationResult.fail("Missing signature")
        if not timestamp:
            return VerificationResult.fail("Missing timestamp")
        if not self.secret:
            return VerificationResult.fail("Webhook signing secret not configured")

        timestamp = timestamp.strip()
        # isdigit() alone accepts non-ASCII digits that int() rejects
        if not (timestamp.isascii() and timestamp.isdigit()):
            return VerificationResult.fail("Invalid timestamp format")

        age = int(self._clock()) - int(timestamp)
        if age > self.max_age_seconds:
            return VerificationResult.fail(
                f"Webhook too old: {age}s (max age: {self.max_age_seconds}s)"
            )
        if -age > self.max_age_seconds:
            return VerificationResult.fail(
                f"Webhook timestamp too far in the future: {-age}s "
                f"(max age: {self.max_age_seconds}s)"
            )

        candidates = self._parse_signature_header(signature)
        if not candidates:
            return VerificationResult.fail("Missing v1 signature")

        expected = self._compute_signature(payload, timestamp).encode("utf-8")

        # Constant-time comparison against every v1 candidate
        matched = False
        for candidate in candidates:
            if hmac.compare_digest(candidate.encode("utf-8"), expected):
                matched = True

        if not matched:
            return VerificationResult.fail("Signature mismatch")

        return VerificationResult.ok()

    def _parse_signature_header(self, header: str) -> List[str]:
        """Extract every v1 signature from the header."""
        signatures = []
        for group in header.split():
            parts = group.split(",")
            for i in range(0, len(parts) - 1, 2):
                if parts[i] == self.SIGNATURE_VERSION and parts[i + 1]:
                    signatures.append(parts[i + 1])
        return signatures

    def _compute_signature(self, payload: str, timestamp: str) -> str:
        """Compute the expected signature."""
        signed_payload = f"{timestamp}.{payload}"
        return hmac.new(
            self.secret.encode("utf-8"),
            signed_payload.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
