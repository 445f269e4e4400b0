# mypy: ignore-errors
"""Tests for the message store and its validation rules."""

import itertools
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from courier.core.settings import settings
from courier.models import DirectMessage
from courier.services.conversation_index import ConversationIndex
from courier.services.errors import MessageValidationError, PersistenceError
from courier.services.message_store import MessageClock, MessageStore, validate_message


def _count_messages(db_session) -> int:
    return db_session.scalar(select(func.count()).select_from(DirectMessage))


class TestValidateMessage:
    """Constraint checks applied before anything is persisted."""

    def test_accepts_valid_request(self):
        validate_message("alice", "bob", "hello")

    @pytest.mark.parametrize(
        ("sender", "receiver", "content", "field"),
        [
            ("", "bob", "hi", "senderId"),
            ("alice", "bob smith", "hi", "receiverId"),
            ("alice", None, "hi", "receiverId"),
            ("alice", "alice", "hi", "receiverId"),
            ("alice", "bob", "", "content"),
            ("alice", "bob", "   \n\t", "content"),
            ("alice", "bob", None, "content"),
        ],
    )
    def test_rejects_invalid_request(self, sender, receiver, content, field):
        with pytest.raises(MessageValidationError) as exc_info:
            validate_message(sender, receiver, content)
        assert exc_info.value.field == field

    def test_rejects_over_length_content(self):
        with pytest.raises(MessageValidationError) as exc_info:
            validate_message("alice", "bob", "x" * (settings.message_max_length + 1))
        assert exc_info.value.field == "content"
        assert str(settings.message_max_length) in exc_info.value.reason

    def test_accepts_content_at_max_length(self):
        validate_message("alice", "bob", "x" * settings.message_max_length)


class TestMessageClock:
    def test_clock_never_goes_backwards(self):
        base = datetime(2026, 1, 1, tzinfo=UTC)
        readings = iter([base, base - timedelta(seconds=5), base + timedelta(seconds=1)])
        clock = MessageClock(now=lambda: next(readings))

        first = clock.next()
        second = clock.next()
        third = clock.next()

        assert first == base
        assert second == base
        assert third == base + timedelta(seconds=1)


class TestAppend:
    def test_append_assigns_id_and_timestamp(self, db_session):
        store = MessageStore(db_session)

        message = store.append("alice", "bob", "hi")

        assert message.id is not None
        assert message.sender_id == "alice"
        assert message.receiver_id == "bob"
        assert message.content == "hi"
        assert message.created_at is not None
        assert _count_messages(db_session) == 1

    def test_rejected_message_is_not_persisted(self, db_session):
        store = MessageStore(db_session)

        with pytest.raises(MessageValidationError):
            store.append("alice", "alice", "talking to myself")
        with pytest.raises(MessageValidationError):
            store.append("alice", "bob", "")

        assert _count_messages(db_session) == 0
        assert store.history("alice", "bob").messages == []

    def test_database_failure_raises_persistence_error(self, db_session):
        store = MessageStore(db_session)

        with patch.object(
            db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("disk full"))
        ):
            with pytest.raises(PersistenceError) as exc_info:
                store.append("alice", "bob", "lost")

        assert exc_info.value.reason == "Message could not be saved"
        assert store.history("alice", "bob").messages == []
        assert store.recent_conversations("alice") == []

    def test_failed_rollback_still_raises_persistence_error(self, db_session):
        store = MessageStore(db_session)
        lost_connection = OperationalError("ROLLBACK", {}, Exception("connection lost"))

        with patch.object(
            db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("gone"))
        ), patch.object(db_session, "rollback", side_effect=lost_connection):
            with pytest.raises(PersistenceError):
                store.append("alice", "bob", "lost")

    def test_abandoned_write_is_rolled_back(self, db_session):
        store = MessageStore(db_session)
        abandoned = threading.Event()
        abandoned.set()

        with pytest.raises(PersistenceError):
            store.append("alice", "bob", "too late", abandoned=abandoned)

        assert _count_messages(db_session) == 0
        assert store.recent_conversations("alice") == []

    def test_write_abandoned_mid_flight_is_not_committed(self, db_session):
        abandoned = threading.Event()

        class GiveUpDuringIndex(ConversationIndex):
            def record(self, db, message):
                super().record(db, message)
                abandoned.set()

        store = MessageStore(db_session, index=GiveUpDuringIndex())

        with pytest.raises(PersistenceError):
            store.append("alice", "bob", "too late", abandoned=abandoned)

        assert _count_messages(db_session) == 0
        assert store.history("alice", "bob").messages == []

    def test_concurrent_appends_to_one_pair_keep_commit_order(self, db_session):
        base = datetime(2026, 1, 1, tzinfo=UTC)
        readings = itertools.count()

        def jittery_now():
            # Wall clock that steps back every other reading.
            tick = next(readings)
            return base + timedelta(milliseconds=tick if tick % 2 else tick - 5)

        store = MessageStore(db_session, clock=MessageClock(now=jittery_now))
        senders = [("alice", "bob"), ("bob", "alice")] * 3

        def send_batch(worker):
            sender, receiver = senders[worker]
            return [store.append(sender, receiver, f"w{worker}-{i}").id for i in range(5)]

        with ThreadPoolExecutor(max_workers=len(senders)) as pool:
            written = [message_id for batch in pool.map(send_batch, range(len(senders)))
                       for message_id in batch]

        messages = store.history("alice", "bob", limit=100).messages

        assert len(messages) == len(written) == 30
        assert [m.id for m in messages] == sorted(written)
        timestamps = [m.created_at for m in messages]
        assert timestamps == sorted(timestamps)


class TestHistory:
    def test_history_includes_both_directions_in_order(self, db_session):
        store = MessageStore(db_session)
        sent = [
            store.append("alice", "bob", "one"),
            store.append("bob", "alice", "two"),
            store.append("alice", "bob", "three"),
        ]
        store.append("alice", "carol", "elsewhere")

        page = store.history("bob", "alice")

        assert [m.id for m in page.messages] == [m.id for m in sent]
        assert [m.content for m in page.messages] == ["one", "two", "three"]
        assert page.next_before is None

    def test_history_ends_with_latest_append(self, db_session):
        store = MessageStore(db_session)
        for i in range(5):
            store.append("alice", "bob", f"m{i}")

        latest = store.append("bob", "alice", "newest")

        assert store.history("alice", "bob").messages[-1].id == latest.id

    def test_history_for_strangers_is_empty(self, db_session):
        page = MessageStore(db_session).history("alice", "zed")

        assert page.messages == []
        assert page.next_before is None

    def test_history_paginates_with_cursor(self, db_session):
        store = MessageStore(db_session)
        sent = [store.append("alice", "bob", f"m{i}") for i in range(5)]

        newest = store.history("alice", "bob", limit=2)
        assert [m.content for m in newest.messages] == ["m3", "m4"]
        assert newest.next_before == sent[3].id

        middle = store.history("alice", "bob", limit=2, before=newest.next_before)
        assert [m.content for m in middle.messages] == ["m1", "m2"]

        oldest = store.history("alice", "bob", limit=2, before=middle.next_before)
        assert [m.content for m in oldest.messages] == ["m0"]
        assert oldest.next_before is None

    def test_history_limit_is_capped(self, db_session):
        store = MessageStore(db_session)
        store.append("alice", "bob", "only")

        page = store.history("alice", "bob", limit=settings.history_max_page_size * 10)

        assert len(page.messages) == 1


class TestRecentConversations:
    def test_read_your_writes(self, db_session):
        store = MessageStore(db_session)

        message = store.append("alice", "bob", "fresh")

        for owner, peer in (("alice", "bob"), ("bob", "alice")):
            conversations = store.recent_conversations(owner)
            assert len(conversations) == 1
            assert conversations[0].other_party == peer
            assert conversations[0].latest_message.id == message.id

    def test_one_entry_per_counterparty_newest_first(self, db_session):
        store = MessageStore(db_session)
        store.append("alice", "bob", "first to bob")
        store.append("carol", "alice", "from carol")
        latest_bob = store.append("bob", "alice", "reply from bob")

        conversations = store.recent_conversations("alice")

        assert [c.other_party for c in conversations] == ["bob", "carol"]
        assert conversations[0].latest_message.id == latest_bob.id
        assert conversations[0].latest_message.content == "reply from bob"

    def test_store_and_forward_for_offline_receiver(self, db_session):
        store = MessageStore(db_session)

        message = store.append("alice", "bob", "while you were away")

        assert [m.id for m in store.history("bob", "alice").messages] == [message.id]
        assert store.recent_conversations("bob")[0].other_party == "alice"

    def test_limit(self, db_session):
        store = MessageStore(db_session)
        for peer in ("bob", "carol", "dave"):
            store.append("alice", peer, "hello")

        assert len(store.recent_conversations("alice", limit=2)) == 2
