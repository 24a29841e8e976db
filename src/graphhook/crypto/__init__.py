"""Hybrid decryption primitives for Graph rich notifications."""

from graphhook.crypto.integrity import compute_signature, verify_signature
from graphhook.crypto.key_unwrap import unwrap_key, wrap_key
from graphhook.crypto.payload import decrypt_payload, derive_iv, encrypt_payload

__all__ = [
    "compute_signature",
    "verify_signature",
    "unwrap_key",
    "wrap_key",
    "decrypt_payload",
    "derive_iv",
    "encrypt_payload",
]
