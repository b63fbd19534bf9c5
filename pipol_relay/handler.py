import logging
from typing import Any, Dict, Optional, Union

from .broadcast import Broadcaster
from .errors import FrameError, IdentityAlreadySetError, UnknownConnectionError
from .protocol import ChatMessage, FrameType, make_frame, parse_frame
from .registry import ConnectionEntry, ConnectionRegistry

logger = logging.getLogger(__name__)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class MessageHandler:
    """Dispatches inbound relay frames by their ``type``.

    Bad input never produces an error frame and never closes the
    connection: malformed frames are logged and dropped.
    """

    def __init__(self, registry: ConnectionRegistry, broadcaster: Broadcaster):
        self.registry = registry
        self.broadcaster = broadcaster

    async def handle(self, connection_id: str, raw: Union[str, bytes]) -> None:
        try:
            frame = parse_frame(raw)
        except FrameError as e:
            logger.warning("Dropping unparseable frame from %s: %s", connection_id, e)
            return

        typ = frame["type"]
        if typ == FrameType.AUTH.value:
            await self._handle_auth(connection_id, frame)
        elif typ == FrameType.MESSAGE.value:
            await self._handle_message(connection_id, frame)
        else:
            logger.debug("Ignoring frame type %r from %s", typ, connection_id)

    async def _handle_auth(self, connection_id: str, frame: Dict[str, Any]) -> None:
        user_id = frame.get("userId")
        user_name = frame.get("userName")
        if not _is_int(user_id) or not isinstance(user_name, str) or not user_name:
            logger.debug("Ignoring malformed auth frame from %s", connection_id)
            return

        try:
            entry = await self.registry.set_identity(connection_id, user_id, user_name)
        except UnknownConnectionError:
            logger.info("Auth from unregistered connection %s ignored", connection_id)
            return
        except IdentityAlreadySetError:
            logger.warning(
                "Connection %s already authenticated; rejecting auth as %s (%s)",
                connection_id,
                user_name,
                user_id,
            )
            return

        logger.info("Client authenticated: %s (%s) on %s", user_name, user_id, connection_id)
        await self._reply(
            entry,
            make_frame(FrameType.AUTH_SUCCESS, userId=user_id, userName=user_name),
        )

    async def _handle_message(self, connection_id: str, frame: Dict[str, Any]) -> None:
        entry = await self.registry.get(connection_id)
        if entry is None or not entry.is_authenticated:
            logger.debug("Dropping message from unauthenticated connection %s", connection_id)
            return

        message = self.build_message(entry, frame)
        if message is None:
            logger.debug("Dropping invalid message frame from %s", connection_id)
            return
        await self.broadcaster.broadcast(message)

    @staticmethod
    def build_message(entry: ConnectionEntry, frame: Dict[str, Any]) -> Optional[ChatMessage]:
        event_id = frame.get("eventId")
        content = frame.get("content")
        if not _is_int(event_id) or event_id <= 0:
            return None
        if not isinstance(content, str) or not content.strip():
            return None
        return ChatMessage(
            event_id=event_id,
            sender_user_id=entry.user_id,
            sender_user_name=entry.user_name,
            content=content.strip(),
        )

    async def _reply(self, entry: ConnectionEntry, raw: str) -> None:
        try:
            await entry.channel.send(raw)
        except Exception as e:
            logger.warning("Failed to send to %s: %r", entry.connection_id, e)
