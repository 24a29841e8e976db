"""AES-256-CBC payload decryption using the notification key-derived IV.

The upstream notifier does not transmit an IV: the first 16 bytes of the
symmetric key double as the CBC initialization vector. This is a wire
contract and is kept exactly as the notifier implements it.
"""

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from graphhook.errors.exceptions import DecryptionError

KEY_LENGTH = 32
IV_LENGTH = 16
BLOCK_BYTES = algorithms.AES.block_size // 8


def derive_iv(key: bytes) -> bytes:
    """Return the IV implied by the key: its leading 16 bytes."""
    if len(key) < IV_LENGTH:
        raise DecryptionError(
            "Symmetric key too short to derive an IV",
            {"length": len(key), "required": IV_LENGTH},
        )
    return key[:IV_LENGTH]


def _cipher(key: bytes) -> Cipher:
    if len(key) != KEY_LENGTH:
        raise DecryptionError(
            "Symmetric key must be 32 bytes for AES-256",
            {"length": len(key), "required": KEY_LENGTH},
        )
    return Cipher(algorithms.AES(key), modes.CBC(derive_iv(key)))


def decrypt_payload(key: bytes, ciphertext: bytes) -> bytes:
    """Decrypt and unpad notification ciphertext.

    Raises:
        DecryptionError: The key has the wrong length, the ciphertext is not
            whole blocks, or PKCS#7 padding is invalid after decryption.
    """
    cipher = _cipher(key)
    if not ciphertext or len(ciphertext) % BLOCK_BYTES:
        raise DecryptionError(
            "Ciphertext is not a whole number of cipher blocks",
            {"length": len(ciphertext)},
        )

    decryptor = cipher.decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise DecryptionError("Invalid padding after decryption") from exc


def encrypt_payload(key: bytes, plaintext: bytes) -> bytes:
    """Pad and encrypt ``plaintext`` the way the notifier does."""
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = _cipher(key).encryptor()
    return encryptor.update(padded) + encryptor.finalize()
