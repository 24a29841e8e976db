"""Per-notification processing state machine and batch relay.

Each notification moves RAW -> (UNWRAP -> VERIFY -> DECRYPT -> PARSE) ->
EVENT_BUILT, or stops in SKIPPED. Every stage returns a ``StageOutcome``
value instead of raising, so a bad item is an ordinary result and never
aborts the rest of the batch. Only the publish step raises.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from graphhook.config import RelayConfig
from graphhook.crypto.encoding import decode_field
from graphhook.crypto.integrity import verify_signature
from graphhook.crypto.key_unwrap import unwrap_key
from graphhook.crypto.payload import decrypt_payload
from graphhook.errors.exceptions import (
    CertificateMismatchError,
    ConfigurationError,
    DecryptionError,
    IntegrityError,
    ParseError,
    PublishError,
    RelayError,
)
from graphhook.models.event import OutboundEvent
from graphhook.models.notification import ChangeNotification, EncryptedContent
from graphhook.publishing.base import EventPublisher
from graphhook.services.event_builder import build_event, fallback_resource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ItemState(StrEnum):
    RAW = "raw"
    UNWRAP = "unwrap"
    VERIFY = "verify"
    DECRYPT = "decrypt"
    PARSE = "parse"
    EVENT_BUILT = "event_built"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """Result of one processing stage: a value, or the reason the item is rejected."""

    stage: ItemState
    value: T | None = None
    error: RelayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, stage: ItemState, value: T) -> StageOutcome[T]:
        return cls(stage=stage, value=value)

    @classmethod
    def reject(cls, stage: ItemState, error: RelayError) -> StageOutcome[T]:
        return cls(stage=stage, error=error)


@dataclass
class ItemOutcome:
    """Terminal state of one notification in a batch."""

    index: int
    state: ItemState
    event: OutboundEvent | None = None
    failed_stage: ItemState | None = None
    error: RelayError | None = None
    subscription_id: str | None = None


@dataclass
class BatchResult:
    events: list[OutboundEvent] = field(default_factory=list)
    outcomes: list[ItemOutcome] = field(default_factory=list)
    published: bool = False

    @property
    def skipped(self) -> list[ItemOutcome]:
        return [o for o in self.outcomes if o.state == ItemState.SKIPPED]


class NotificationProcessor:
    """Turns raw notification batches into Event Grid events.

    Holds only the immutable ``RelayConfig``; safe to share across
    concurrent requests.
    """

    def __init__(self, config: RelayConfig) -> None:
        self._config = config

    @property
    def config(self) -> RelayConfig:
        return self._config

    # ------------------------------------------------------------------
    # Batch entry points
    # ------------------------------------------------------------------

    def process(self, items: Iterable[Any]) -> BatchResult:
        """Process every item in arrival order, isolating per-item failures."""
        result = BatchResult()
        for index, raw in enumerate(items):
            outcome = self._process_item(index, raw)
            result.outcomes.append(outcome)
            if outcome.event is not None:
                result.events.append(outcome.event)
            else:
                self._log_skip(outcome)
        return result

    async def relay(self, items: Iterable[Any], publisher: EventPublisher) -> BatchResult:
        """Process a batch and publish the resulting events in a single call.

        Raises:
            PublishError: The sink rejected the batch or was unreachable.
        """
        result = self.process(items)
        if not result.events:
            logger.info(
                "no_events_to_publish",
                extra={"skipped": len(result.skipped)},
            )
            return result

        try:
            await publisher.publish(result.events)
        except PublishError:
            raise
        except Exception as exc:
            raise PublishError(f"Publish failed: {exc}", {"sink": publisher.sink_type}) from exc

        result.published = True
        logger.info(
            "events_published",
            extra={"count": len(result.events), "skipped": len(result.skipped)},
        )
        return result

    # ------------------------------------------------------------------
    # Per-item state machine
    # ------------------------------------------------------------------

    def _process_item(self, index: int, raw: Any) -> ItemOutcome:
        validated = self._validate(raw)
        if not validated.ok:
            return ItemOutcome(
                index=index,
                state=ItemState.SKIPPED,
                failed_stage=validated.stage,
                error=validated.error,
                subscription_id=raw.get("subscriptionId") if isinstance(raw, dict) else None,
            )
        notification: ChangeNotification = validated.value

        if notification.encrypted_content is None:
            resource = fallback_resource(notification)
        else:
            recovered = self._recover_resource(notification.encrypted_content)
            if not recovered.ok:
                return ItemOutcome(
                    index=index,
                    state=ItemState.SKIPPED,
                    failed_stage=recovered.stage,
                    error=recovered.error,
                    subscription_id=notification.subscription_id,
                )
            resource = recovered.value

        event = build_event(notification, resource, self._config.event_type_prefix)
        return ItemOutcome(
            index=index,
            state=ItemState.EVENT_BUILT,
            event=event,
            subscription_id=notification.subscription_id,
        )

    def _validate(self, raw: Any) -> StageOutcome[ChangeNotification]:
        if not isinstance(raw, dict):
            return StageOutcome.reject(
                ItemState.RAW,
                ParseError("Notification item is not an object", {"type": type(raw).__name__}),
            )
        try:
            return StageOutcome.success(ItemState.RAW, ChangeNotification.model_validate(raw))
        except ValidationError as exc:
            return StageOutcome.reject(
                ItemState.RAW,
                ParseError(
                    "Notification item failed validation",
                    [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()],
                ),
            )

    def _recover_resource(self, content: EncryptedContent) -> StageOutcome[dict[str, Any]]:
        """Run unwrap, verify, decrypt and parse strictly in that order."""
        unwrapped = self._unwrap(content)
        if not unwrapped.ok:
            return unwrapped
        key: bytes = unwrapped.value

        verified = self._verify(key, content)
        if not verified.ok:
            return verified
        ciphertext: bytes = verified.value

        decrypted = self._decrypt(key, ciphertext)
        if not decrypted.ok:
            return decrypted

        return self._parse(decrypted.value)

    def _unwrap(self, content: EncryptedContent) -> StageOutcome[bytes]:
        private_key = self._config.private_key
        if private_key is None:
            return StageOutcome.reject(
                ItemState.UNWRAP,
                ConfigurationError("Private key missing; cannot decrypt encrypted content"),
            )

        # Cheap certificate gate before any cryptographic work
        expected = self._config.active_certificate_id
        if content.encryption_certificate_id != expected:
            return StageOutcome.reject(
                ItemState.UNWRAP,
                CertificateMismatchError(content.encryption_certificate_id, expected),
            )

        try:
            wrapped = decode_field(content.data_key, "dataKey", DecryptionError)
            return StageOutcome.success(ItemState.UNWRAP, unwrap_key(wrapped, private_key))
        except DecryptionError as exc:
            return StageOutcome.reject(ItemState.UNWRAP, exc)

    def _verify(self, key: bytes, content: EncryptedContent) -> StageOutcome[bytes]:
        try:
            ciphertext = decode_field(content.data, "data", DecryptionError)
            signature = decode_field(content.data_signature, "dataSignature", IntegrityError)
        except RelayError as exc:
            return StageOutcome.reject(ItemState.VERIFY, exc)

        if not verify_signature(key, ciphertext, signature):
            return StageOutcome.reject(ItemState.VERIFY, IntegrityError())
        return StageOutcome.success(ItemState.VERIFY, ciphertext)

    def _decrypt(self, key: bytes, ciphertext: bytes) -> StageOutcome[bytes]:
        try:
            return StageOutcome.success(ItemState.DECRYPT, decrypt_payload(key, ciphertext))
        except DecryptionError as exc:
            return StageOutcome.reject(ItemState.DECRYPT, exc)

    def _parse(self, plaintext: bytes) -> StageOutcome[dict[str, Any]]:
        try:
            resource = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as exc:
            return StageOutcome.reject(
                ItemState.PARSE,
                ParseError("Decrypted payload is not valid JSON", {"error": str(exc)}),
            )
        if not isinstance(resource, dict):
            return StageOutcome.reject(
                ItemState.PARSE,
                ParseError(
                    "Decrypted payload is not a JSON object",
                    {"type": type(resource).__name__},
                ),
            )
        return StageOutcome.success(ItemState.PARSE, resource)

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def _log_skip(self, outcome: ItemOutcome) -> None:
        extra = {
            "index": outcome.index,
            "subscription_id": outcome.subscription_id,
            "stage": str(outcome.failed_stage),
            "code": outcome.error.code if outcome.error else None,
            "reason": outcome.error.message if outcome.error else None,
        }
        if isinstance(outcome.error, IntegrityError):
            # Signature mismatch after a successful unwrap may mean tampering
            logger.error("notification_integrity_failed", extra=extra)
        else:
            logger.warning("notification_skipped", extra=extra)
