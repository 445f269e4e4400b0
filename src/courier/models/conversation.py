# src/courier/models/conversation.py
"""Derived per-user conversation index."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courier.db.session import Base
from courier.models.direct_message import DirectMessage


class ConversationEntry(Base):
    """Latest message between ``owner_id`` and ``peer_id``.

    Each conversation is stored twice, once per participant, so an inbox is a
    single range scan on ``owner_id``. Rows are rewritten in the same
    transaction that inserts the message they point at.
    """

    __tablename__ = "conversation_index"
    __table_args__ = (
        Index("ix_conversation_index_owner_recent", "owner_id", "last_message_at"),
    )

    owner_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    peer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_message_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("direct_message.id"), nullable=False
    )
    last_message_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    last_message: Mapped[DirectMessage] = relationship(DirectMessage, lazy="joined")
