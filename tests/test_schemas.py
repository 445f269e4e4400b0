# mypy: ignore-errors
"""Tests for wire schemas."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from courier.models import DirectMessage
from courier.schemas import MessageResponse, SendFrame, UserSummary
from courier.schemas.conversation import PLACEHOLDER_NAME


def test_message_response_uses_camel_case_on_the_wire():
    message = DirectMessage(
        id=3,
        sender_id="alice",
        receiver_id="bob",
        content="hi",
        created_at=datetime(2026, 3, 4, 5, 6, 7),
    )

    wire = MessageResponse.from_message(message).to_wire()

    assert wire == {
        "id": 3,
        "senderId": "alice",
        "receiverId": "bob",
        "content": "hi",
        "timestamp": "2026-03-04T05:06:07Z",
    }


def test_send_frame_accepts_camel_case_and_ignores_event_key():
    frame = SendFrame.model_validate(
        {"event": "send", "receiverId": "bob", "content": "hi", "clientRef": "r"}
    )

    assert frame.receiver_id == "bob"
    assert frame.client_ref == "r"


def test_send_frame_requires_receiver():
    with pytest.raises(ValidationError):
        SendFrame.model_validate({"content": "hi"})


def test_placeholder_identity():
    summary = UserSummary.placeholder("ghost")

    assert summary.to_wire() == {"id": "ghost", "name": PLACEHOLDER_NAME, "avatar": None}


def test_timestamps_keep_utc():
    response = MessageResponse(
        id=1,
        sender_id="a",
        receiver_id="b",
        content="x",
        timestamp=datetime(2026, 1, 1, tzinfo=UTC),
    )
    assert response.to_wire()["timestamp"].endswith("Z")
