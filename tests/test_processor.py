"""Tests for the per-notification state machine and batch relay."""

import base64
import logging

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from graphhook.config import RelayConfig
from graphhook.crypto import compute_signature
from graphhook.crypto.encoding import encode_field
from graphhook.errors.exceptions import (
    CertificateMismatchError,
    ConfigurationError,
    DecryptionError,
    IntegrityError,
    ParseError,
    PublishError,
)
from graphhook.publishing.base import EventPublisher
from graphhook.services import processor as processor_module
from graphhook.services.processor import ItemState, NotificationProcessor, StageOutcome


def _corrupt_b64(value: str) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[0] ^= 0x01
    return encode_field(bytes(raw))


@pytest.fixture
def processor(relay_config):
    return NotificationProcessor(relay_config)


# ---------------------------------------------------------------------------
# Plaintext notifications
# ---------------------------------------------------------------------------

def test_unencrypted_notification_scenario(processor, notification):
    result = processor.process([notification(resource="AAMk...==", change_type="updated")])

    assert len(result.events) == 1
    event = result.events[0]
    assert event.event_type == "Microsoft.Graph.CalendarEvent.UPDATED"
    assert event.subject == "AAMk...=="
    assert event.data.change_type == "updated"
    assert event.data.event == {"id": "AAMk...=="}
    assert event.id == "sub1-AAMk...=="
    assert result.outcomes[0].state == ItemState.EVENT_BUILT


def test_inline_resource_data_is_used(processor, notification):
    result = processor.process([notification(resource_data={"id": "evt9", "@odata.etag": "W/1"})])
    assert result.events[0].data.event == {"id": "evt9", "@odata.etag": "W/1"}
    assert result.events[0].id == "sub1-evt9"


def test_unencrypted_item_needs_no_private_key(notification):
    config = RelayConfig(private_key=None, active_certificate_id="v1")
    result = NotificationProcessor(config).process([notification()])
    assert len(result.events) == 1


# ---------------------------------------------------------------------------
# Encrypted notifications
# ---------------------------------------------------------------------------

def test_encrypted_notification_scenario(processor, notification, encrypt):
    item = notification(encrypted=encrypt({"id": "evt42", "subject": "Team sync"}))
    result = processor.process([item])

    assert len(result.events) == 1
    event = result.events[0]
    assert event.data.event == {"id": "evt42", "subject": "Team sync"}
    assert event.data.event["id"] == "evt42"
    assert event.id == "sub1-evt42"


def test_corrupted_signature_skips_item_and_batch_continues(processor, notification, encrypt):
    bad = encrypt({"id": "evt1"})
    bad["dataSignature"] = _corrupt_b64(bad["dataSignature"])
    good = notification(subscription_id="sub2", encrypted=encrypt({"id": "evt2"}))

    result = processor.process([notification(encrypted=bad), good])

    assert [e.id for e in result.events] == ["sub2-evt2"]
    skipped = result.skipped
    assert len(skipped) == 1
    assert skipped[0].index == 0
    assert skipped[0].failed_stage == ItemState.VERIFY
    assert isinstance(skipped[0].error, IntegrityError)


def test_integrity_failure_is_logged_as_error(processor, notification, encrypt, caplog):
    bad = encrypt({"id": "evt1"})
    bad["data"] = _corrupt_b64(bad["data"])
    with caplog.at_level(logging.WARNING, logger="graphhook.services.processor"):
        processor.process([notification(encrypted=bad)])
    records = [r for r in caplog.records if r.getMessage() == "notification_integrity_failed"]
    assert records and records[0].levelno == logging.ERROR


def test_signature_is_checked_before_decryption(processor, notification, encrypt, monkeypatch):
    def _must_not_decrypt(key, ciphertext):
        raise AssertionError("decrypt_payload called on unauthenticated ciphertext")

    monkeypatch.setattr(processor_module, "decrypt_payload", _must_not_decrypt)
    bad = encrypt({"id": "evt1"})
    bad["dataSignature"] = _corrupt_b64(bad["dataSignature"])

    result = processor.process([notification(encrypted=bad)])
    assert result.skipped[0].failed_stage == ItemState.VERIFY


def test_certificate_mismatch_skips_without_crypto(processor, notification, encrypt, monkeypatch):
    def _must_not_unwrap(wrapped, private_key):
        raise AssertionError("unwrap_key called for an unrecognized certificate")

    monkeypatch.setattr(processor_module, "unwrap_key", _must_not_unwrap)
    item = notification(encrypted=encrypt({"id": "evt42"}, cert_id="v2"))

    result = processor.process([item])

    assert result.events == []
    outcome = result.outcomes[0]
    assert outcome.state == ItemState.SKIPPED
    assert outcome.failed_stage == ItemState.UNWRAP
    assert isinstance(outcome.error, CertificateMismatchError)
    assert outcome.error.details == {"certificate_id": "v2", "expected": "v1"}


def test_missing_private_key_skips_encrypted_item(notification, encrypt):
    config = RelayConfig(private_key=None, active_certificate_id="v1")
    result = NotificationProcessor(config).process([notification(encrypted=encrypt({"id": "e"}))])
    assert result.events == []
    assert isinstance(result.outcomes[0].error, ConfigurationError)


def test_wrapped_key_for_other_recipient_is_skipped(processor, notification, encrypt):
    enc = encrypt({"id": "evt1"})
    enc["dataKey"] = _corrupt_b64(enc["dataKey"])
    result = processor.process([notification(encrypted=enc)])
    assert result.outcomes[0].failed_stage == ItemState.UNWRAP
    assert isinstance(result.outcomes[0].error, DecryptionError)


@pytest.mark.parametrize(
    "field, error_cls, stage",
    [
        ("dataKey", DecryptionError, ItemState.UNWRAP),
        ("data", DecryptionError, ItemState.VERIFY),
        ("dataSignature", IntegrityError, ItemState.VERIFY),
    ],
)
@pytest.mark.parametrize("value", ["%%%not-base64%%%", ""])
def test_corrupt_transport_encoding_is_skipped(
    processor, notification, encrypt, field, error_cls, stage, value
):
    enc = encrypt({"id": "evt1"})
    enc[field] = value
    good = notification(subscription_id="sub2", encrypted=encrypt({"id": "evt2"}))

    result = processor.process([notification(encrypted=enc), good])

    assert [e.id for e in result.events] == ["sub2-evt2"]
    outcome = result.outcomes[0]
    assert outcome.state == ItemState.SKIPPED
    assert outcome.failed_stage == stage
    assert isinstance(outcome.error, error_cls)
    assert outcome.error.details == {"field": field}


def test_bad_padding_is_skipped(processor, notification, encrypt, private_key):
    key = bytes(range(32))
    encryptor = Cipher(algorithms.AES(key), modes.CBC(key[:16])).encryptor()
    ciphertext = encryptor.update(bytes(16)) + encryptor.finalize()
    enc = encrypt({"id": "placeholder"}, key=key)
    enc["data"] = encode_field(ciphertext)
    enc["dataSignature"] = encode_field(compute_signature(key, ciphertext))

    result = processor.process([notification(encrypted=enc)])

    assert result.outcomes[0].failed_stage == ItemState.DECRYPT
    assert isinstance(result.outcomes[0].error, DecryptionError)


@pytest.mark.parametrize("plaintext", [b"not json", b"\xff\xfe{}", b"[1, 2]", b'"evt"'])
def test_unparseable_payload_is_skipped(processor, notification, encrypt, plaintext):
    result = processor.process([notification(encrypted=encrypt(plaintext))])
    assert result.outcomes[0].failed_stage == ItemState.PARSE
    assert isinstance(result.outcomes[0].error, ParseError)


def test_deeply_nested_payload_is_skipped(processor, notification, encrypt):
    nested = encrypt(b"[" * 200_000 + b"]" * 200_000)
    good = notification(subscription_id="sub2", encrypted=encrypt({"id": "evt2"}))

    result = processor.process([notification(encrypted=nested), good])

    assert [e.id for e in result.events] == ["sub2-evt2"]
    assert result.outcomes[0].failed_stage == ItemState.PARSE
    assert isinstance(result.outcomes[0].error, ParseError)


def test_numeric_subscription_id_is_coerced(processor, notification):
    item = notification(resource="evt-n")
    item["subscriptionId"] = 12345

    result = processor.process([item])

    assert [e.id for e in result.events] == ["12345-evt-n"]


@pytest.mark.parametrize(
    "item",
    [
        "not-an-object",
        None,
        {"resource": "r", "changeType": "updated"},
        {"subscriptionId": "s", "encryptedContent": {"data": "AA=="}},
        {"subscriptionId": "s", "resourceData": "oops"},
    ],
)
def test_malformed_items_are_skipped(processor, item):
    result = processor.process([item])
    assert result.events == []
    assert result.outcomes[0].failed_stage == ItemState.RAW
    assert isinstance(result.outcomes[0].error, ParseError)


def test_stage_outcome_values():
    ok = StageOutcome.success(ItemState.PARSE, {"id": 1})
    assert ok.ok and ok.value == {"id": 1}
    rejected = StageOutcome.reject(ItemState.VERIFY, IntegrityError())
    assert not rejected.ok and rejected.value is None


# ---------------------------------------------------------------------------
# Batch relay
# ---------------------------------------------------------------------------

async def test_partial_failure_isolation(processor, notification, encrypt, publisher):
    bad_sig = encrypt({"id": "a"})
    bad_sig["dataSignature"] = _corrupt_b64(bad_sig["dataSignature"])
    batch = [
        notification(subscription_id="s1", encrypted=encrypt({"id": "ok1"})),
        notification(subscription_id="s2", encrypted=bad_sig),
        notification(subscription_id="s3", encrypted=encrypt({"id": "x"}, cert_id="old")),
        notification(subscription_id="s4", encrypted=encrypt(b"{broken")),
        notification(subscription_id="s5", resource="plain-1"),
        notification(subscription_id="s6", encrypted=encrypt({"id": "ok2"})),
    ]

    result = await processor.relay(batch, publisher)

    assert [e.id for e in result.events] == ["s1-ok1", "s5-plain-1", "s6-ok2"]
    assert len(result.skipped) == 3
    assert result.published is True
    assert len(publisher.calls) == 1
    assert [e.id for e in publisher.calls[0]] == ["s1-ok1", "s5-plain-1", "s6-ok2"]


async def test_empty_batch_does_not_publish(processor, publisher):
    result = await processor.relay([], publisher)
    assert result.events == []
    assert publisher.calls == []
    assert result.published is False


async def test_all_items_skipped_does_not_publish(processor, notification, encrypt, publisher):
    batch = [notification(encrypted=encrypt({"id": "x"}, cert_id="nope")), 42]
    result = await processor.relay(batch, publisher)
    assert len(result.skipped) == 2
    assert publisher.calls == []


async def test_publish_failure_propagates(processor, notification, failing_publisher):
    with pytest.raises(PublishError):
        await processor.relay([notification()], failing_publisher)
    assert len(failing_publisher.calls) == 1


async def test_unexpected_sink_error_becomes_publish_error(processor, notification):
    class BrokenPublisher(EventPublisher):
        sink_type = "broken"

        async def publish(self, events):
            raise RuntimeError("connection reset")

    with pytest.raises(PublishError) as exc_info:
        await processor.relay([notification()], BrokenPublisher())
    assert exc_info.value.details == {"sink": "broken"}
