"""Realtime relay gateway.

Each live connection runs ``RelayGateway.serve`` as its own task:

1. authenticate the credential (bounded by ``AUTH_TIMEOUT_SECONDS``),
2. register the channel under the authenticated user id,
3. process ``send`` frames: validate, persist, then fan out,
4. unregister on every exit path.

A message is only ever pushed to live channels after the store committed it.
Receivers that are offline simply find it through the History API later.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from courier.core.security import decode_access_token
from courier.core.settings import settings
from courier.schemas.direct_message import MessageResponse, SendFrame
from courier.services.channels import INTERNAL_ERROR, POLICY_VIOLATION, Channel, ChannelClosed
from courier.services.errors import (
    MessageValidationError,
    PersistenceError,
    RelayError,
    Unauthorized,
    validation_error_from,
)
from courier.services.message_store import MessageStore, validate_message
from courier.services.registry import ConnectionRegistry

if TYPE_CHECKING:
    from courier.services.fanout import RedisFanout

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    """Outcome of relaying one persisted message.

    ``delivered == 0`` is a delivery miss: the receiver was offline. It is not
    an error and is never reported to the sender.
    """

    message: MessageResponse
    delivered: int = 0
    echoed: int = 0

    @property
    def delivery_miss(self) -> bool:
        return self.delivered == 0


class RelayGateway:
    """Authenticates connections, tracks them and relays messages between users."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        *,
        fanout: RedisFanout | None = None,
        auth_timeout: float | None = None,
        append_timeout: float | None = None,
        delivery_timeout: float | None = None,
        echo_to_sender: bool | None = None,
    ) -> None:
        self.registry = registry
        self.fanout = fanout
        self._auth_timeout = auth_timeout
        self._append_timeout = append_timeout
        self._delivery_timeout = delivery_timeout
        self._echo_to_sender = echo_to_sender

    @property
    def auth_timeout(self) -> float:
        return self._auth_timeout if self._auth_timeout is not None else settings.auth_timeout_seconds

    @property
    def append_timeout(self) -> float:
        if self._append_timeout is not None:
            return self._append_timeout
        return settings.append_timeout_seconds

    @property
    def delivery_timeout(self) -> float:
        if self._delivery_timeout is not None:
            return self._delivery_timeout
        return settings.delivery_timeout_seconds

    @property
    def echo_to_sender(self) -> bool:
        return self._echo_to_sender if self._echo_to_sender is not None else settings.echo_to_sender

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def serve(self, channel: Channel, store: MessageStore, credential: str | None = None) -> None:
        """Run one connection from authentication to disconnect.

        Args:
            channel: The accepted connection.
            store: Message store bound to this connection's database session.
            credential: Token presented during the handshake, if any. Without
                one the first frame must be ``{"event": "auth", "token": ...}``.
        """
        try:
            user_id = await self.authenticate(channel, credential)
        except Unauthorized as exc:
            logger.warning("Rejected connection %s: %s", channel.channel_id, exc.reason)
            with contextlib.suppress(ChannelClosed):
                await channel.send_event("error", exc.to_event())
            await channel.close(code=POLICY_VIOLATION, reason=exc.reason)
            return
        except ChannelClosed:
            return

        self.registry.register(user_id, channel)
        logger.info("User %s connected on channel %s", user_id, channel.channel_id)
        try:
            await channel.send_event("ready", {"userId": user_id})
            while True:
                try:
                    frame = await channel.receive()
                except ValueError:
                    await self._send_error(
                        channel, MessageValidationError("Frame is not valid JSON")
                    )
                    continue
                await self.handle_frame(user_id, channel, store, frame)
        except ChannelClosed:
            pass
        finally:
            self.registry.unregister(user_id, channel)
            logger.info("User %s disconnected from channel %s", user_id, channel.channel_id)

    async def authenticate(self, channel: Channel, credential: str | None) -> str:
        """Return the user id behind ``credential`` or the first ``auth`` frame.

        Raises:
            Unauthorized: On a missing, invalid or late credential.
        """
        if credential is None:
            try:
                frame = await asyncio.wait_for(channel.receive(), timeout=self.auth_timeout)
            except TimeoutError as exc:
                raise Unauthorized("Authentication timed out") from exc
            except ValueError as exc:
                raise Unauthorized("Authentication frame is not valid JSON") from exc

            if not isinstance(frame, dict) or frame.get("event") != "auth":
                raise Unauthorized("Expected an auth frame")
            token = frame.get("token")
            credential = token if isinstance(token, str) else None

        return decode_access_token(credential)

    async def handle_frame(
        self, user_id: str, channel: Channel, store: MessageStore, frame: Any
    ) -> None:
        """Dispatch one client frame; failures are reported to this channel only."""
        if not isinstance(frame, dict):
            await self._send_error(channel, MessageValidationError("Frame must be a JSON object"))
            return

        event = frame.get("event")
        if event == "send":
            await self.handle_send(user_id, channel, store, frame)
        elif event == "ping":
            await channel.send_event("pong")
        else:
            await self._send_error(
                channel, MessageValidationError(f"Unknown event: {event!r}", field="event")
            )

    async def handle_send(
        self, user_id: str, channel: Channel, store: MessageStore, frame: dict[str, Any]
    ) -> None:
        """Relay a ``send`` frame and acknowledge it on the originating channel."""
        raw_ref = frame.get("clientRef")
        client_ref = raw_ref if isinstance(raw_ref, str) else None

        try:
            request = SendFrame.model_validate(frame)
        except ValidationError as exc:
            await self._send_error(channel, validation_error_from(exc.errors()), client_ref)
            return

        try:
            report = await self.relay(
                store, user_id, request.receiver_id, request.content, origin=channel
            )
        except (MessageValidationError, PersistenceError) as exc:
            await self._send_error(channel, exc, client_ref)
            return

        ack = report.message.to_wire()
        if client_ref is not None:
            ack["clientRef"] = client_ref
        await channel.send_event("ack", ack)

    # ------------------------------------------------------------------
    # Persistence and fan-out
    # ------------------------------------------------------------------

    async def relay(
        self,
        store: MessageStore,
        sender_id: str,
        receiver_id: str,
        content: str,
        *,
        origin: Channel | None = None,
    ) -> DeliveryReport:
        """Persist a message, then push it to every live channel that should see it.

        Args:
            store: Message store to append to.
            sender_id: Authenticated sender.
            receiver_id: Intended receiver.
            content: Message text.
            origin: The sender's channel that submitted the message; it gets an
                ack from the caller instead of an echo.

        Raises:
            MessageValidationError: Nothing was persisted or delivered.
            PersistenceError: The write failed or timed out; nothing was delivered.
        """
        validate_message(sender_id, receiver_id, content)
        message = await self._append(store, sender_id, receiver_id, content)

        report = DeliveryReport(message=message)
        report.delivered, report.echoed = await self.deliver_local(message, exclude=origin)
        if report.delivery_miss:
            logger.debug(
                "Receiver %s offline; message %s stored for later retrieval",
                receiver_id,
                message.id,
            )

        if self.fanout is not None:
            await self.fanout.publish(message)
        return report

    async def _append(
        self, store: MessageStore, sender_id: str, receiver_id: str, content: str
    ) -> MessageResponse:
        # Set on timeout; the still-running worker then rolls back instead of committing.
        abandoned = threading.Event()

        def write() -> MessageResponse:
            message = store.append(sender_id, receiver_id, content, abandoned=abandoned)
            return MessageResponse.from_message(message)

        try:
            return await asyncio.wait_for(asyncio.to_thread(write), timeout=self.append_timeout)
        except TimeoutError as exc:
            abandoned.set()
            logger.error(
                "Timed out after %.1fs persisting message from %s to %s",
                self.append_timeout,
                sender_id,
                receiver_id,
            )
            raise PersistenceError("Timed out saving message") from exc

    async def deliver_local(
        self, message: MessageResponse, *, exclude: Channel | None = None
    ) -> tuple[int, int]:
        """Push ``message`` to the receiver's channels and the sender's other channels.

        Returns:
            ``(delivered, echoed)`` counts of successful pushes.
        """
        frame = message.to_wire()
        receivers = list(self.registry.channels_for(message.receiver_id))
        echoes: list[Channel] = []
        if self.echo_to_sender:
            echoes = [
                channel
                for channel in self.registry.channels_for(message.sender_id)
                if channel is not exclude
            ]
        if not receivers and not echoes:
            return 0, 0

        results = await asyncio.gather(
            *[self._safe_send(message.receiver_id, channel, frame) for channel in receivers],
            *[self._safe_send(message.sender_id, channel, frame) for channel in echoes],
        )
        return sum(results[: len(receivers)]), sum(results[len(receivers):])

    async def deliver_remote(self, payload: dict[str, Any]) -> tuple[int, int]:
        """Deliver a message persisted and published by another instance."""
        try:
            message = MessageResponse.model_validate(payload)
        except ValidationError:
            logger.warning("Discarding malformed message from relay bridge")
            return 0, 0
        return await self.deliver_local(message)

    async def _safe_send(self, user_id: str, channel: Channel, frame: dict[str, Any]) -> bool:
        """Push one ``message`` frame; drop the channel if it is dead or stalled."""
        try:
            await asyncio.wait_for(
                channel.send_event("message", frame), timeout=self.delivery_timeout
            )
            return True
        except (ChannelClosed, TimeoutError) as exc:
            logger.debug("Dropping channel %s of %s: %r", channel.channel_id, user_id, exc)

        self.registry.unregister(user_id, channel)
        # A stalled client is closed so it reconnects and backfills from history.
        with contextlib.suppress(ChannelClosed, TimeoutError):
            await asyncio.wait_for(
                channel.close(code=INTERNAL_ERROR, reason="delivery failed"),
                timeout=self.delivery_timeout,
            )
        return False

    async def _send_error(
        self, channel: Channel, error: RelayError, client_ref: str | None = None
    ) -> None:
        payload = error.to_event()
        if client_ref is not None:
            payload["clientRef"] = client_ref
        await channel.send_event("error", payload)


_gateway: RelayGateway | None = None


def get_relay_gateway() -> RelayGateway:
    """Return the process-wide gateway shared by every connection."""
    global _gateway
    if _gateway is None:
        _gateway = RelayGateway(ConnectionRegistry(settings.registry_stripes))
    return _gateway
