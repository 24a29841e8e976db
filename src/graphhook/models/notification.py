"""Pydantic models for inbound Microsoft Graph change notifications."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EncryptedContent(BaseModel):
    """Hybrid-encrypted resource payload; binary fields are base64 text."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    data_key: str = Field(..., alias="dataKey")
    data: str
    data_signature: str = Field(..., alias="dataSignature")
    encryption_certificate_id: str | None = Field(None, alias="encryptionCertificateId")


class ChangeNotification(BaseModel):
    """One item of the ``value`` array posted by the Graph subscription."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    subscription_id: str = Field(..., alias="subscriptionId")
    resource: str | None = None
    change_type: str | None = Field(None, alias="changeType")
    resource_data: dict[str, Any] | None = Field(None, alias="resourceData")
    encrypted_content: EncryptedContent | None = Field(None, alias="encryptedContent")
