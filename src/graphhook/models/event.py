"""Pydantic models for outbound Event Grid events."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DATA_VERSION = "1.0"


class EventData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    change_type: str | None = Field(None, alias="changeType")
    subscription_id: str = Field(..., alias="subscriptionId")
    event: dict[str, Any]


class OutboundEvent(BaseModel):
    """Event Grid schema event published for one processed notification."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    id: str
    subject: str
    event_type: str = Field(..., alias="eventType")
    event_time: datetime = Field(..., alias="eventTime")
    data: EventData
    data_version: str = Field(DATA_VERSION, alias="dataVersion")

    def to_wire(self) -> dict[str, Any]:
        """Serialize with Event Grid's camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)
