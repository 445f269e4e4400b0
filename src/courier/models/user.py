# src/courier/models/user.py
"""Read-side model for user profiles owned by the surrounding system."""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from courier.db.session import Base


class User(Base):
    """Minimal display identity used to label conversation partners.

    The relay never writes this table; the identity collaborator does.
    """

    __tablename__ = "user_account"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
