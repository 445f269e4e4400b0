"""Conversation history endpoints for the Courier API."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status

from courier.core.security import is_valid_user_id
from courier.core.settings import settings
from courier.db.time import as_utc
from courier.schemas.conversation import (
    ConversationResponse,
    LatestMessage,
    RecentConversationsResponse,
)
from courier.schemas.direct_message import HistoryResponse, MessageCreate, MessageResponse
from courier.services.errors import RelayError

from ..dependencies import (
    CurrentUserDep,
    GatewayDep,
    MessageStoreDep,
    ProfilesDep,
    SessionDep,
)

router = APIRouter(prefix="/conversations", tags=["conversations"])


def _http_error(exc: RelayError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.reason)


def _require_user_id(other_user_id: str) -> None:
    if not is_valid_user_id(other_user_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user identifier",
        )


@router.get("/recent", response_model=RecentConversationsResponse)
def get_recent_conversations(
    current_user_id: CurrentUserDep,
    db: SessionDep,
    store: MessageStoreDep,
    profiles: ProfilesDep,
    limit: int = Query(settings.recent_conversations_limit, ge=1, le=100),
) -> RecentConversationsResponse:
    """List the caller's conversations, most recently active first."""
    try:
        conversations = store.recent_conversations(current_user_id, limit=limit)
    except RelayError as exc:
        raise _http_error(exc) from exc

    identities = profiles.resolve(db, [item.other_party for item in conversations])
    return RecentConversationsResponse(
        conversations=[
            ConversationResponse(
                other_user=identities[item.other_party],
                latest_message=LatestMessage(
                    id=item.latest_message.id,
                    sender_id=item.latest_message.sender_id,
                    content=item.latest_message.content,
                    timestamp=as_utc(item.latest_message.created_at),
                ),
            )
            for item in conversations
        ]
    )


@router.get("/{other_user_id}", response_model=HistoryResponse)
def get_conversation(
    other_user_id: str,
    current_user_id: CurrentUserDep,
    store: MessageStoreDep,
    limit: int = Query(
        settings.history_page_size, ge=1, le=settings.history_max_page_size
    ),
    before: int | None = Query(None, ge=1),
) -> HistoryResponse:
    """Return messages exchanged with ``other_user_id``, oldest first.

    A pair that never talked yields an empty list, not an error.
    """
    _require_user_id(other_user_id)
    try:
        page = store.history(current_user_id, other_user_id, limit=limit, before=before)
    except RelayError as exc:
        raise _http_error(exc) from exc

    return HistoryResponse(
        messages=[MessageResponse.from_message(message) for message in page.messages],
        next_before=page.next_before,
    )


@router.post(
    "/{other_user_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    other_user_id: str,
    message_data: MessageCreate,
    current_user_id: CurrentUserDep,
    store: MessageStoreDep,
    gateway: GatewayDep,
) -> MessageResponse:
    """Persist a message to ``other_user_id`` and push it to their live channels."""
    try:
        report = await gateway.relay(
            store, current_user_id, other_user_id, message_data.content
        )
    except RelayError as exc:
        raise _http_error(exc) from exc
    return report.message
