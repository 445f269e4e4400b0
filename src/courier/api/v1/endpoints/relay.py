"""Realtime relay websocket endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket

from courier.core.security import bearer_token
from courier.services.channels import WebSocketChannel
from courier.services.message_store import MessageStore

from ..dependencies import GatewayDep, SessionDep

router = APIRouter(tags=["relay"])

logger = logging.getLogger(__name__)


def handshake_credential(websocket: WebSocket) -> str | None:
    """Return the token presented while opening ``websocket``, if any.

    Browsers cannot set headers on a websocket, so the ``token`` query
    parameter is checked first, then the Authorization header, then the
    session cookie.
    """
    return (
        websocket.query_params.get("token")
        or bearer_token(websocket.headers.get("authorization"))
        or websocket.cookies.get("token")
        or None
    )


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket, db: SessionDep, gateway: GatewayDep) -> None:
    """Live channel for sending and receiving direct messages.

    Protocol:
        1. Authenticate with a handshake token or a first frame
           ``{"event": "auth", "token": ...}``. Failure sends an ``error``
           frame and closes with code 1008.
        2. Server sends ``{"event": "ready", "userId": ...}``.
        3. Client sends ``{"event": "send", "receiverId", "content", "clientRef"?}``
           and receives ``ack`` or ``error``; receivers get ``message``.
        4. ``{"event": "ping"}`` is answered with ``{"event": "pong"}``.
    """
    await websocket.accept()
    channel = WebSocketChannel(websocket)
    logger.debug("Accepted websocket channel %s", channel.channel_id)
    await gateway.serve(channel, MessageStore(db), handshake_credential(websocket))
