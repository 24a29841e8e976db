"""Base64 transport decoding for encrypted notification fields."""

import base64
import binascii

from graphhook.errors.exceptions import RelayError


def decode_field(value: str, field_name: str, error_cls: type[RelayError]) -> bytes:
    """Decode a strict base64 field, raising ``error_cls`` on corrupt input."""
    try:
        decoded = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise error_cls(f"Field '{field_name}' is not valid base64", {"field": field_name}) from exc
    if not decoded:
        raise error_cls(f"Field '{field_name}' is empty", {"field": field_name})
    return decoded


def encode_field(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")
