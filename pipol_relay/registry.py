import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from websockets.protocol import State

from .errors import DuplicateIdError, IdentityAlreadySetError, UnknownConnectionError

logger = logging.getLogger(__name__)


@dataclass
class ConnectionEntry:
    connection_id: str
    channel: Any
    user_id: Optional[int] = None
    user_name: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


def channel_is_open(channel: Any) -> bool:
    return getattr(channel, "state", None) is State.OPEN


class ConnectionRegistry:
    """Live relay connections keyed by connection id.

    Mutations and the open-connection snapshot go through ``self.lock``.
    ``all_open`` hands back a copy; callers may await between sends without
    holding the lock.
    """

    def __init__(self):
        self._entries: Dict[str, ConnectionEntry] = {}
        self.lock = asyncio.Lock()

    async def register(self, connection_id: str, channel: Any) -> ConnectionEntry:
        async with self.lock:
            if connection_id in self._entries:
                raise DuplicateIdError(connection_id)
            entry = ConnectionEntry(connection_id, channel)
            self._entries[connection_id] = entry
        logger.debug("Registered connection %s", connection_id)
        return entry

    async def set_identity(self, connection_id: str, user_id: int, user_name: str) -> ConnectionEntry:
        async with self.lock:
            entry = self._entries.get(connection_id)
            if entry is None:
                raise UnknownConnectionError(connection_id)
            if entry.is_authenticated:
                raise IdentityAlreadySetError(connection_id)
            entry.user_id = user_id
            entry.user_name = user_name
        return entry

    async def get(self, connection_id: str) -> Optional[ConnectionEntry]:
        async with self.lock:
            return self._entries.get(connection_id)

    async def remove(self, connection_id: str) -> Optional[ConnectionEntry]:
        async with self.lock:
            entry = self._entries.pop(connection_id, None)
        if entry is not None:
            logger.debug("Removed connection %s", connection_id)
        return entry

    async def all_open(self) -> List[ConnectionEntry]:
        async with self.lock:
            entries = list(self._entries.values())
        return [e for e in entries if channel_is_open(e.channel)]

    def count_authenticated(self) -> int:
        return sum(1 for e in list(self._entries.values()) if e.is_authenticated)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._entries
