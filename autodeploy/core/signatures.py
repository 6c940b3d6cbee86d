"""Webhook signature verification."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """HMAC-SHA256 of the raw request body in GitHub's header format."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Constant-time comparison of the received signature against the expected one."""
    if not signature or not secret:
        return False
    return hmac.compare_digest(signature.encode(), compute_signature(secret, body).encode())
