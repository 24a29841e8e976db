"""Azure Event Grid sink that posts event batches to a custom topic endpoint."""

from __future__ import annotations

import json
import logging

import httpx

from graphhook.config import RelayConfig, SinkCredentials
from graphhook.errors.exceptions import PublishError
from graphhook.models.event import OutboundEvent
from graphhook.publishing.base import EventPublisher

logger = logging.getLogger(__name__)


class EventGridPublisher(EventPublisher):
    """Publishes Event Grid schema events authenticated with the topic key.

    The batch is always sent as one JSON array; server errors and transport
    failures are retried up to ``max_retries`` attempts in total, client
    errors never are.
    """

    sink_type: str = "event_grid"

    def __init__(
        self,
        sink: SinkCredentials,
        timeout: float = 10.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._sink = sink
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._transport = transport

    @classmethod
    def from_config(cls, config: RelayConfig) -> EventGridPublisher:
        return cls(
            config.sink,
            timeout=config.publish_timeout_seconds,
            max_retries=config.publish_max_retries,
        )

    async def publish(self, events: list[OutboundEvent]) -> None:
        if not self._sink.configured:
            raise PublishError("Event Grid topic endpoint or key not set")

        body = json.dumps([event.to_wire() for event in events], separators=(",", ":")).encode("utf-8")
        headers = {
            "aeg-sas-key": self._sink.key,
            "Content-Type": "application/json",
        }

        for attempt in range(self._max_retries):
            last_attempt = attempt == self._max_retries - 1
            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    resp = await client.post(self._sink.endpoint, content=body, headers=headers)
            except httpx.HTTPError as exc:
                if not last_attempt:
                    logger.warning(
                        "event_grid_retry",
                        extra={"attempt": attempt + 1, "reason": str(exc)},
                    )
                    continue
                raise PublishError(
                    f"Event Grid unreachable: {exc}", {"attempts": attempt + 1}
                ) from exc

            if resp.status_code < 300:
                logger.debug(
                    "event_grid_accepted",
                    extra={"count": len(events), "status": resp.status_code},
                )
                return
            if resp.status_code >= 500 and not last_attempt:
                logger.warning(
                    "event_grid_retry",
                    extra={"attempt": attempt + 1, "status": resp.status_code},
                )
                continue
            raise PublishError(
                f"Publish failed {resp.status_code}: {resp.text}",
                {"status": resp.status_code, "attempts": attempt + 1},
            )
