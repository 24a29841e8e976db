"""HMAC-SHA256 integrity check over notification ciphertext."""

import hashlib
import hmac


def compute_signature(key: bytes, ciphertext: bytes) -> bytes:
    """Compute the raw HMAC-SHA256 digest of the ciphertext."""
    return hmac.new(key, ciphertext, hashlib.sha256).digest()


def verify_signature(key: bytes, ciphertext: bytes, signature: bytes) -> bool:
    """Return True only if ``signature`` is the HMAC of ``ciphertext`` under ``key``.

    The comparison is constant-time, and a length mismatch yields False
    rather than an exception. Must be called before any decryption of the
    same ciphertext.
    """
    expected = compute_signature(key, ciphertext)
    return hmac.compare_digest(expected, signature)
