"""FastAPI dependency injection providers."""

from typing import Annotated

from fastapi import Depends, Request

from graphhook.publishing.base import EventPublisher
from graphhook.services.processor import NotificationProcessor


def get_processor(request: Request) -> NotificationProcessor:
    """Return the processor built from the app's RelayConfig at startup."""
    return request.app.state.processor


def get_publisher(request: Request) -> EventPublisher:
    """Return the configured downstream event sink."""
    return request.app.state.publisher


def get_trace_id(request: Request) -> str:
    """Extract trace_id from request state (set by middleware)."""
    return getattr(request.state, "trace_id", "unknown")


# Type aliases for dependency injection
Processor = Annotated[NotificationProcessor, Depends(get_processor)]
Publisher = Annotated[EventPublisher, Depends(get_publisher)]
TraceId = Annotated[str, Depends(get_trace_id)]
