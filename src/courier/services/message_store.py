"""Durable append-only message log with per-conversation lookup.

The store owns every invariant of a persisted message: it validates the
request, assigns the id and timestamp, and keeps the conversation index in
step with the log inside one transaction.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courier.core.security import is_valid_user_id
from courier.core.settings import settings
from courier.db.time import utcnow
from courier.models import DirectMessage
from courier.services.conversation_index import Conversation, ConversationIndex
from courier.services.errors import MessageValidationError, PersistenceError
from courier.utils.locks import StripedLock, pair_key

logger = logging.getLogger(__name__)


class MessageClock:
    """Hands out UTC timestamps that never go backwards within a process."""

    def __init__(self, now: Callable[[], datetime] = utcnow) -> None:
        self._now = now
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def next(self) -> datetime:
        """Return the current time, clamped to the last value handed out."""
        with self._lock:
            current = self._now()
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current


_CLOCK = MessageClock()
# Serialises appends per conversation pair so commit order matches timestamp order.
_PAIR_LOCKS = StripedLock(settings.registry_stripes)


def validate_message(sender_id: str, receiver_id: str, content: object) -> None:
    """Check a send request against every message constraint.

    Raises:
        MessageValidationError: Naming the first violated constraint.
    """
    if not is_valid_user_id(sender_id):
        raise MessageValidationError("Sender id is not a valid user identifier", field="senderId")
    if not is_valid_user_id(receiver_id):
        raise MessageValidationError(
            "Receiver id is not a valid user identifier", field="receiverId"
        )
    if sender_id == receiver_id:
        raise MessageValidationError("Cannot send a message to yourself", field="receiverId")
    if not isinstance(content, str) or not content.strip():
        raise MessageValidationError("Message content must not be empty", field="content")
    if len(content) > settings.message_max_length:
        raise MessageValidationError(
            f"Message content exceeds {settings.message_max_length} characters",
            field="content",
        )


@dataclass
class HistoryPage:
    """Slice of a conversation ordered oldest first."""

    messages: list[DirectMessage] = field(default_factory=list)
    next_before: int | None = None


class MessageStore:
    """Message log operations bound to one database session."""

    def __init__(
        self,
        db: Session,
        *,
        index: ConversationIndex | None = None,
        clock: MessageClock | None = None,
    ) -> None:
        self.db = db
        self.index = index or ConversationIndex()
        self.clock = clock or _CLOCK
        # Sessions are not thread-safe and appends run in worker threads.
        self._session_lock = threading.Lock()

    def _rollback(self) -> None:
        with contextlib.suppress(SQLAlchemyError):
            self.db.rollback()

    def append(
        self,
        sender_id: str,
        receiver_id: str,
        content: str,
        *,
        abandoned: threading.Event | None = None,
    ) -> DirectMessage:
        """Persist a new message and return the stored record.

        Args:
            sender_id: Authenticated sender.
            receiver_id: Intended receiver.
            content: Message text.
            abandoned: Set by a caller that stopped waiting for this write.
                The transaction is rolled back instead of committed once it is set.

        Raises:
            MessageValidationError: If the request violates a constraint.
            PersistenceError: If the write did not commit; the message is not sent.
        """
        validate_message(sender_id, receiver_id, content)

        with self._session_lock, _PAIR_LOCKS.for_key(pair_key(sender_id, receiver_id)):
            if abandoned is not None and abandoned.is_set():
                raise PersistenceError("Timed out saving message")
            try:
                message = DirectMessage(
                    sender_id=sender_id,
                    receiver_id=receiver_id,
                    content=content,
                    created_at=self.clock.next(),
                )
                self.db.add(message)
                self.db.flush()
                self.index.record(self.db, message)
                if abandoned is not None and abandoned.is_set():
                    self._rollback()
                    logger.warning(
                        "Discarded message from %s to %s after its caller timed out",
                        sender_id,
                        receiver_id,
                    )
                    raise PersistenceError("Timed out saving message")
                self.db.commit()
            except SQLAlchemyError as exc:
                self._rollback()
                logger.error(
                    "Failed to persist message from %s to %s", sender_id, receiver_id,
                    exc_info=True,
                )
                raise PersistenceError("Message could not be saved") from exc

        return message

    def history(
        self,
        user_a: str,
        user_b: str,
        *,
        limit: int | None = None,
        before: int | None = None,
    ) -> HistoryPage:
        """Return messages exchanged between two users in either direction.

        Args:
            user_a: One participant.
            user_b: The other participant.
            limit: Page size, capped at ``settings.history_max_page_size``.
            before: Only return messages with an id below this cursor.

        Returns:
            The newest ``limit`` matching messages, oldest first. An empty page
            when the pair never talked.
        """
        page_size = max(1, min(limit or settings.history_page_size, settings.history_max_page_size))

        stmt = select(DirectMessage).where(
            or_(
                and_(DirectMessage.sender_id == user_a, DirectMessage.receiver_id == user_b),
                and_(DirectMessage.sender_id == user_b, DirectMessage.receiver_id == user_a),
            )
        )
        if before is not None:
            stmt = stmt.where(DirectMessage.id < before)
        stmt = stmt.order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc()).limit(
            page_size + 1
        )

        try:
            with self._session_lock:
                rows = list(self.db.scalars(stmt))
        except SQLAlchemyError as exc:
            self._rollback()
            logger.error("Failed to load history for %s/%s", user_a, user_b, exc_info=True)
            raise PersistenceError("Conversation history could not be loaded") from exc

        has_more = len(rows) > page_size
        messages = list(reversed(rows[:page_size]))
        next_before = messages[0].id if has_more and messages else None
        return HistoryPage(messages=messages, next_before=next_before)

    def recent_conversations(self, user_id: str, *, limit: int | None = None) -> list[Conversation]:
        """Return one entry per counterparty with the latest message exchanged.

        Ordered by that message's timestamp, newest first.
        """
        try:
            with self._session_lock:
                return self.index.recent(
                    self.db, user_id, limit or settings.recent_conversations_limit
                )
        except SQLAlchemyError as exc:
            self._rollback()
            logger.error("Failed to load recent conversations for %s", user_id, exc_info=True)
            raise PersistenceError("Recent conversations could not be loaded") from exc
