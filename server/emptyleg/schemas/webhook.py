"""Inbound messaging webhook schemas."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class InboundMessageStatus(str, Enum):
    """What became of an inbound message."""
    ATTACHED = "attached"
    UNMATCHED = "unmatched"
    AMBIGUOUS = "ambiguous"


class InboundMessage(BaseModel):
    """Message relayed by the messaging provider."""

    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(..., alias="from", min_length=1, description="Sender address, e.g. whatsapp:+2348012345678")
    body: str | None = Field(None, max_length=4000)
    media_url: str | None = Field(None, max_length=1024)
    media_content_type: str | None = Field(None, max_length=128)


class InboundMessageResponse(BaseModel):
    status: InboundMessageStatus
    booking_reference: str | None = None
    evidence_id: str | None = None
