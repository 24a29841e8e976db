"""Outbound event envelope and id construction."""

import logging
import secrets
from datetime import datetime, timezone
from typing import Any

from graphhook.config import DEFAULT_EVENT_TYPE_PREFIX
from graphhook.models.event import EventData, OutboundEvent
from graphhook.models.notification import ChangeNotification

logger = logging.getLogger(__name__)

UNKNOWN_CHANGE_TYPE = "unknown"
UNKNOWN_SUBJECT = "/unknown"


def fallback_resource(notification: ChangeNotification) -> dict[str, Any]:
    """Resource object for plaintext notifications: inline data or an id stub."""
    if notification.resource_data is not None:
        return notification.resource_data
    return {"id": notification.resource}


def resolve_resource_id(resource: dict[str, Any], locator: str | None) -> str | None:
    """Best-effort identifier: the resource's ``id`` field, else the locator."""
    resource_id = resource.get("id")
    if resource_id:
        return str(resource_id)
    return locator or None


def build_event_id(subscription_id: str, resource: dict[str, Any], locator: str | None) -> str:
    """Deterministic ``<subscription>-<resource id>`` event id.

    A random token is used only when neither the resource nor the
    notification identifies anything; that is logged as a data-quality issue.
    """
    resource_id = resolve_resource_id(resource, locator)
    if resource_id is None:
        resource_id = secrets.token_hex(6)
        logger.warning(
            "notification_missing_resource_id",
            extra={"subscription_id": subscription_id, "fallback_id": resource_id},
        )
    return f"{subscription_id}-{resource_id}"


def build_event_type(change_type: str | None, prefix: str = DEFAULT_EVENT_TYPE_PREFIX) -> str:
    return f"{prefix}.{(change_type or UNKNOWN_CHANGE_TYPE).upper()}"


def build_event(
    notification: ChangeNotification,
    resource: dict[str, Any],
    prefix: str = DEFAULT_EVENT_TYPE_PREFIX,
    event_time: datetime | None = None,
) -> OutboundEvent:
    """Build the Event Grid envelope for a processed notification."""
    return OutboundEvent(
        id=build_event_id(notification.subscription_id, resource, notification.resource),
        subject=notification.resource or UNKNOWN_SUBJECT,
        event_type=build_event_type(notification.change_type, prefix),
        event_time=event_time or datetime.now(timezone.utc),
        data=EventData(
            change_type=notification.change_type,
            subscription_id=notification.subscription_id,
            event=resource,
        ),
    )
