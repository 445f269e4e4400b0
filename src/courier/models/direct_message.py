# src/courier/models/direct_message.py
"""Models describing direct messages between users."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from courier.db.session import Base
from courier.db.time import utcnow


class DirectMessage(Base):
    """Text message exchanged between two users.

    Rows are append-only: nothing in the relay updates or deletes them.
    """

    __tablename__ = "direct_message"
    __table_args__ = (
        Index("ix_direct_message_pair", "sender_id", "receiver_id", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    sender_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    receiver_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def peer_of(self, user_id: str) -> str:
        """Return the other participant from ``user_id``'s point of view."""
        return self.receiver_id if self.sender_id == user_id else self.sender_id
