"""Abstract base class for downstream event sinks."""

from __future__ import annotations

from abc import ABC, abstractmethod

from graphhook.models.event import OutboundEvent


class EventPublisher(ABC):
    """Accepts a batch of events as a unit: all accepted, or PublishError."""

    sink_type: str = "unknown"

    @abstractmethod
    async def publish(self, events: list[OutboundEvent]) -> None:
        """Deliver the whole batch.

        Raises:
            PublishError: The sink rejected the batch or was unreachable.
        """
        ...
