# mypy: ignore-errors
"""Tests for the derived conversation index."""

from unittest.mock import patch

import pytest
from sqlalchemy import delete, select
from sqlalchemy.exc import OperationalError

from courier.models import ConversationEntry, DirectMessage
from courier.services.conversation_index import ConversationIndex
from courier.services.errors import PersistenceError
from courier.services.message_store import MessageStore


def _entries(db_session):
    rows = db_session.scalars(select(ConversationEntry)).all()
    return {(row.owner_id, row.peer_id): row.last_message_id for row in rows}


def test_record_keeps_one_row_per_direction(db_session):
    store = MessageStore(db_session)
    store.append("alice", "bob", "one")
    latest = store.append("bob", "alice", "two")

    assert _entries(db_session) == {
        ("alice", "bob"): latest.id,
        ("bob", "alice"): latest.id,
    }


def test_rebuild_restores_index_from_log(db_session):
    store = MessageStore(db_session)
    store.append("alice", "bob", "hi bob")
    to_carol = store.append("alice", "carol", "hi carol")
    from_bob = store.append("bob", "alice", "hi alice")
    expected = _entries(db_session)

    db_session.execute(delete(ConversationEntry))
    db_session.commit()
    assert store.recent_conversations("alice") == []

    written = ConversationIndex().rebuild(db_session)

    assert written == 4
    assert _entries(db_session) == expected
    assert expected[("alice", "bob")] == from_bob.id
    assert expected[("carol", "alice")] == to_carol.id
    assert [c.other_party for c in store.recent_conversations("alice")] == ["bob", "carol"]


def test_rebuild_picks_up_messages_written_outside_the_store(db_session):
    store = MessageStore(db_session)
    store.append("alice", "bob", "tracked")
    imported = DirectMessage(sender_id="dave", receiver_id="alice", content="imported")
    db_session.add(imported)
    db_session.commit()

    ConversationIndex().rebuild(db_session)

    assert _entries(db_session)[("alice", "dave")] == imported.id


def test_rebuild_on_empty_log(db_session):
    assert ConversationIndex().rebuild(db_session) == 0
    assert _entries(db_session) == {}


def test_rebuild_failure_raises_persistence_error(db_session):
    with patch.object(
        db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("locked"))
    ):
        with pytest.raises(PersistenceError):
            ConversationIndex().rebuild(db_session)
