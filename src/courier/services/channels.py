"""Transport adapters for live connections.

The gateway only needs an ordered, full-duplex stream of JSON frames with
``send_event``/``receive``/``close``; ``WebSocketChannel`` provides that over
a Starlette websocket.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import uuid
from typing import Any, Protocol

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

NORMAL_CLOSURE = 1000
POLICY_VIOLATION = 1008
INTERNAL_ERROR = 1011


class ChannelClosed(Exception):
    """Raised when the peer is gone and the channel can no longer be used."""


class Channel(Protocol):
    """One live connection belonging to a user."""

    channel_id: str

    async def send_event(self, event: str, payload: dict[str, Any] | None = None) -> None:
        """Send ``{"event": event, **payload}``; raise ``ChannelClosed`` if gone."""

    async def receive(self) -> Any:
        """Return the next decoded frame.

        Raises ``ChannelClosed`` on disconnect and ``ValueError`` on a frame
        that is not JSON.
        """

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close the connection; closing twice is a no-op."""


class WebSocketChannel:
    """``Channel`` over an accepted FastAPI websocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.channel_id = uuid.uuid4().hex
        # Fan-out from other connections may write while this connection acks.
        self._send_lock = asyncio.Lock()
        self._closed = False

    def __repr__(self) -> str:
        return f"<WebSocketChannel {self.channel_id}>"

    @property
    def closed(self) -> bool:
        return self._closed or self.websocket.application_state == WebSocketState.DISCONNECTED

    async def send_event(self, event: str, payload: dict[str, Any] | None = None) -> None:
        frame = {"event": event, **(payload or {})}
        if self.closed:
            raise ChannelClosed(self.channel_id)
        async with self._send_lock:
            try:
                await self.websocket.send_json(frame)
            except (WebSocketDisconnect, RuntimeError) as exc:
                self._closed = True
                raise ChannelClosed(self.channel_id) from exc

    async def receive(self) -> Any:
        if self.closed:
            raise ChannelClosed(self.channel_id)
        try:
            message = await self.websocket.receive()
        except RuntimeError as exc:
            self._closed = True
            raise ChannelClosed(self.channel_id) from exc

        if message["type"] == "websocket.disconnect":
            self._closed = True
            raise ChannelClosed(self.channel_id)

        text = message.get("text")
        if text is None:
            text = (message.get("bytes") or b"").decode("utf-8", errors="replace")
        return json.loads(text)

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self.closed:
            return
        self._closed = True
        # The peer may have vanished between the check and the close frame.
        with contextlib.suppress(RuntimeError, WebSocketDisconnect):
            await self.websocket.close(code=code, reason=reason)
