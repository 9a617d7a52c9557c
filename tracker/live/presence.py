"""
Presence hub for the live map.

Consumes typed client events per connection, keeps the ConnectionRegistry
current and asks the Broadcaster to fan out the resulting server events.
"""

from typing import Any, Union
from pydantic import ValidationError as PydanticValidationError

from tracker.exceptions import ValidationError
from tracker.logging_config import ConnectionLogger
from tracker.live.broadcaster import Broadcaster, Connection
from tracker.live.registry import ConnectionRegistry
from tracker.models import (
    ChatMessage,
    ClientEvent,
    ClientEventType,
    LocationPayload,
    ServerEvent,
    ServerEventType,
    UnknownSender,
)

MAX_USERNAME_LENGTH = 64


def _event(event_type: ServerEventType, payload: Any) -> ServerEvent:
    return ServerEvent(event_type=event_type, payload=payload)


class PresenceHub:
    """
    Routes join, location, chat and disconnect events.

    Events from one connection must be handed in arrival order; events of
    different connections may interleave freely.
    """

    def __init__(self, registry: ConnectionRegistry, broadcaster: Broadcaster):
        self.registry = registry
        self.broadcaster = broadcaster

    def connect(self, connection: Connection):
        """Start delivering events to a new connection."""
        self.broadcaster.attach(connection)
        ConnectionLogger(connection.connection_id).info("Connected")

    async def dispatch(self, connection_id: str, raw: Union[str, bytes, dict]):
        """
        Parse and handle one inbound frame.

        A malformed frame is answered with an ``error`` event to the sender
        only; the connection stays open.
        """
        try:
            await self.handle_event(connection_id, ClientEvent.from_raw(raw))
        except ValidationError as e:
            ConnectionLogger(connection_id).warning(f"Rejected event: {e}")
            await self.broadcaster.send_to(
                connection_id,
                _event(ServerEventType.ERROR, {"error": str(e)}),
            )

    async def handle_event(self, connection_id: str, event: ClientEvent):
        if event.event_type == ClientEventType.JOIN:
            await self.join(connection_id, event.payload)
        elif event.event_type == ClientEventType.LOCATION_UPDATE:
            await self.update_location(connection_id, event.payload)
        elif event.event_type == ClientEventType.CHAT_MESSAGE:
            await self.chat(connection_id, event.payload)

    async def join(self, connection_id: str, username: Any):
        if not isinstance(username, str) or not username.strip():
            raise ValidationError("Username is required.")
        username = username.strip()
        if len(username) > MAX_USERNAME_LENGTH:
            raise ValidationError(f"Username must be at most {MAX_USERNAME_LENGTH} characters.")

        user = await self.registry.join(connection_id, username)

        snapshot = [u.model_dump(mode="json") for u in self.registry.snapshot()]
        await self.broadcaster.send_to(
            connection_id,
            _event(ServerEventType.CURRENT_USERS, snapshot),
        )
        await self.broadcaster.broadcast(
            _event(ServerEventType.USER_JOINED, user.model_dump(mode="json")),
            exclude=connection_id,
        )
        ConnectionLogger(connection_id).info(f"User {username} joined")

    async def update_location(self, connection_id: str, payload: Any):
        try:
            location = LocationPayload.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid location: {e}") from e

        user = await self.registry.update_location(
            connection_id, location.latitude, location.longitude
        )
        if user is None:
            ConnectionLogger(connection_id).debug("Location update before join ignored")
            return

        await self.broadcaster.broadcast(
            _event(ServerEventType.LOCATION_RECEIVED, user.model_dump(mode="json")),
            exclude=connection_id,
        )

    async def chat(self, connection_id: str, message: Any):
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Chat message must be non-empty text.")

        sender = self.registry.get(connection_id) or UnknownSender()
        chat = ChatMessage(user=sender, message=message)
        await self.broadcaster.broadcast(
            _event(ServerEventType.CHAT_MESSAGE_RECEIVED, chat.model_dump(mode="json")),
        )

    async def disconnect(self, connection_id: str):
        """Detach a connection and tell everyone else if it had joined."""
        self.broadcaster.detach(connection_id)

        if connection_id in self.registry:
            await self.broadcaster.broadcast(
                _event(ServerEventType.USER_DISCONNECTED, connection_id),
            )
            await self.registry.remove(connection_id)

        ConnectionLogger(connection_id).info("Disconnected")
