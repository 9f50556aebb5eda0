"""
WhatsApp Signature Verification

SECURITY BOUNDARY - Verify Meta HMAC signature.
No I/O. No retries. Never raises.
"""

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hub-signature-256"
SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, app_secret: str) -> str:
    """Header value Meta sends for this body: "sha256=" + hex HMAC-SHA256."""
    return SIGNATURE_PREFIX + hmac.new(
        key=app_secret.encode("utf-8"),
        msg=raw_body,
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(raw_body: bytes, provided_signature: str, app_secret: str) -> bool:
    """
    Verify Meta HMAC-SHA256 signature on a WhatsApp webhook body.

    WhatsApp sends:
    - X-Hub-Signature-256 header with HMAC
    - Request body

    We compute HMAC(body, app_secret) and compare in constant time.

    Args:
        raw_body: Exact request body bytes (before any JSON decoding)
        provided_signature: Header value, "sha256=<hex>"
        app_secret: Facebook app secret

    Returns:
        True only when the signature matches. Any malformed input yields
        False; this function never raises.
    """
    try:
        expected = compute_signature(raw_body, app_secret).encode("ascii")
        provided = provided_signature.encode("ascii")

        # compare_digest requires equal lengths for a meaningful answer
        if len(provided) != len(expected):
            return False

        return hmac.compare_digest(provided, expected)

    except Exception as e:
        logger.error(f"Error verifying webhook signature: {e}")
        return False
