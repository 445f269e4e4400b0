"""Direct message-related Pydantic schemas."""
from __future__ import annotations

from datetime import datetime

from pydantic import Field

from courier.db.time import as_utc
from courier.models import DirectMessage
from courier.schemas.common import CamelModel


class MessageCreate(CamelModel):
    """Body of a REST send; the receiver comes from the path."""

    content: str = Field(..., description="Message text")


class SendFrame(CamelModel):
    """Realtime ``send`` frame submitted by a connected client."""

    receiver_id: str = Field(..., description="Identifier of the receiving user")
    content: str = Field(..., description="Message text")
    client_ref: str | None = Field(
        None, description="Opaque client token echoed back on ack or error"
    )


class MessageResponse(CamelModel):
    """A persisted message as clients see it."""

    id: int
    sender_id: str
    receiver_id: str
    content: str
    timestamp: datetime

    @classmethod
    def from_message(cls, message: DirectMessage) -> MessageResponse:
        """Build the wire form of a stored message."""
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            content=message.content,
            timestamp=as_utc(message.created_at),
        )


class HistoryResponse(CamelModel):
    """One page of a conversation, oldest message first."""

    messages: list[MessageResponse]
    next_before: int | None = Field(
        None, description="Cursor for the next older page, or null when exhausted"
    )
