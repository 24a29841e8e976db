"""Recovery of the per-notification symmetric key from its RSA-wrapped form."""

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from graphhook.errors.exceptions import DecryptionError

# Graph wraps data keys with RSA-OAEP using SHA-1 for both the MGF and the label hash
OAEP_SHA1 = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA1()),
    algorithm=hashes.SHA1(),
    label=None,
)


def unwrap_key(wrapped_key: bytes, private_key: rsa.RSAPrivateKey) -> bytes:
    """Decrypt a wrapped symmetric key with the subscription's private key.

    Args:
        wrapped_key: Raw (already base64-decoded) RSA-OAEP ciphertext.
        private_key: RSA private key matching the active certificate.

    Returns:
        The recovered symmetric key material.

    Raises:
        DecryptionError: The blob does not match the modulus size or fails
            OAEP padding validation (wrong key or corrupted data).
    """
    modulus_bytes = (private_key.key_size + 7) // 8
    if len(wrapped_key) != modulus_bytes:
        raise DecryptionError(
            "Wrapped key length does not match the private key modulus",
            {"length": len(wrapped_key), "expected": modulus_bytes},
        )
    try:
        return private_key.decrypt(wrapped_key, OAEP_SHA1)
    except ValueError as exc:
        raise DecryptionError("Wrapped key failed OAEP unwrapping") from exc


def wrap_key(key: bytes, public_key: rsa.RSAPublicKey) -> bytes:
    """Inverse of :func:`unwrap_key`, as performed by the notifying service."""
    return public_key.encrypt(key, OAEP_SHA1)
