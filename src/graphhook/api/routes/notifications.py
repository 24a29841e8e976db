"""Graph change-notification webhook: validation handshake and batch relay."""

import json
import logging
from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse, Response

from graphhook.dependencies import Processor, Publisher, TraceId
from graphhook.errors.exceptions import ParseError, PublishError
from graphhook.logging_config import bind_request_context

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


def extract_notifications(body: Any) -> list | None:
    """Return the notification list from ``{"value": [...]}`` or a bare array."""
    if isinstance(body, dict) and isinstance(body.get("value"), list):
        return body["value"]
    if isinstance(body, list):
        return body
    return None


def _handshake(token: str) -> PlainTextResponse:
    logger.info("validation_handshake")
    return PlainTextResponse(token, status_code=200)


@router.get("/notifications")
async def validate_subscription(
    validation_token: str | None = Query(None, alias="validationToken"),
) -> PlainTextResponse:
    """Answer a subscription validation request by echoing the token."""
    if not validation_token:
        raise ParseError("Missing validationToken query parameter")
    return _handshake(validation_token)


@router.post("/notifications")
async def receive_notifications(
    request: Request,
    processor: Processor,
    publisher: Publisher,
    trace_id: TraceId,
    validation_token: str | None = Query(None, alias="validationToken"),
) -> Response:
    """Handle a notification POST from the Graph subscription.

    Returns 200 with the token for a validation handshake, 204 when there is
    no notification batch, 202 once the batch has been relayed, and 500 when
    the event sink rejects it.
    """
    if validation_token:
        return _handshake(validation_token)

    raw = await request.body()
    try:
        body = json.loads(raw) if raw else None
    except (ValueError, RecursionError):
        body = None

    if isinstance(body, dict) and body.get("validationToken"):
        return _handshake(str(body["validationToken"]))

    notifications = extract_notifications(body)
    if notifications is None:
        return Response(status_code=204)

    bind_request_context(trace_id, batch_size=len(notifications))
    try:
        await processor.relay(notifications, publisher)
    except PublishError as exc:
        logger.error(
            "publish_failed",
            extra={"reason": exc.message, "details": exc.details},
        )
        return PlainTextResponse("Publish failed", status_code=500)

    return PlainTextResponse("Accepted", status_code=202)
