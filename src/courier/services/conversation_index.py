"""Per-user inbox index derived from the message log."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courier.models import ConversationEntry, DirectMessage
from courier.services.errors import PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Conversation:
    """A conversation seen from one participant."""

    other_party: str
    latest_message: DirectMessage


class ConversationIndex:
    """Maintains ``conversation_index`` rows alongside message writes.

    ``record`` must run inside the transaction that inserted the message so
    the inbox can never lag behind the log.
    """

    def record(self, db: Session, message: DirectMessage) -> None:
        """Point both participants' entries at ``message``.

        The caller flushes ``message`` first and commits afterwards.
        """
        for owner_id in (message.sender_id, message.receiver_id):
            peer_id = message.peer_of(owner_id)
            entry = db.get(ConversationEntry, (owner_id, peer_id))
            if entry is None:
                db.add(
                    ConversationEntry(
                        owner_id=owner_id,
                        peer_id=peer_id,
                        last_message=message,
                        last_message_at=message.created_at,
                    )
                )
            else:
                entry.last_message = message
                entry.last_message_at = message.created_at

    def recent(self, db: Session, owner_id: str, limit: int) -> list[Conversation]:
        """Return ``owner_id``'s conversations, most recently active first."""
        stmt = (
            select(ConversationEntry)
            .where(ConversationEntry.owner_id == owner_id)
            .order_by(
                ConversationEntry.last_message_at.desc(),
                ConversationEntry.last_message_id.desc(),
            )
            .limit(limit)
        )
        return [
            Conversation(other_party=entry.peer_id, latest_message=entry.last_message)
            for entry in db.scalars(stmt)
        ]

    def rebuild(self, db: Session) -> int:
        """Recompute every entry from ``direct_message``.

        Returns:
            The number of index rows written.
        """
        try:
            db.execute(delete(ConversationEntry))

            latest_ids: dict[tuple[str, str], int] = {}
            rows = db.execute(
                select(
                    DirectMessage.sender_id,
                    DirectMessage.receiver_id,
                    func.max(DirectMessage.id),
                ).group_by(DirectMessage.sender_id, DirectMessage.receiver_id)
            )
            for sender_id, receiver_id, max_id in rows:
                for key in ((sender_id, receiver_id), (receiver_id, sender_id)):
                    if latest_ids.get(key, 0) < max_id:
                        latest_ids[key] = max_id

            messages = {
                message.id: message
                for message in db.scalars(
                    select(DirectMessage).where(DirectMessage.id.in_(set(latest_ids.values())))
                )
            }
            for (owner_id, peer_id), message_id in latest_ids.items():
                message = messages[message_id]
                db.add(
                    ConversationEntry(
                        owner_id=owner_id,
                        peer_id=peer_id,
                        last_message=message,
                        last_message_at=message.created_at,
                    )
                )
            db.commit()
        except SQLAlchemyError as exc:
            with contextlib.suppress(SQLAlchemyError):
                db.rollback()
            logger.error("Conversation index rebuild failed", exc_info=True)
            raise PersistenceError("Conversation index could not be rebuilt") from exc

        logger.info("Rebuilt conversation index with %d entries", len(latest_ids))
        return len(latest_ids)
