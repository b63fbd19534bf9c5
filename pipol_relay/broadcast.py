import asyncio
import logging
from typing import Optional, Set

from websockets.exceptions import ConnectionClosed

from .protocol import ChatMessage
from .registry import ConnectionEntry, ConnectionRegistry

logger = logging.getLogger(__name__)


class Broadcaster:
    def __init__(self, registry: ConnectionRegistry, send_timeout: Optional[float] = None):
        self.registry = registry
        self.send_timeout = send_timeout
        self._lock = asyncio.Lock()
        self._close_tasks: Set[asyncio.Task] = set()

    async def broadcast(self, message: ChatMessage) -> int:
        """Send ``message`` to every open connection, sender included.

        Delivery is best effort; a failing recipient is logged and skipped.
        Returns how many recipients accepted the frame. Broadcasts never
        interleave, so every recipient sees messages in processing order.
        A recipient whose send is still blocked after ``send_timeout`` is
        dropped so it cannot hold up the rest of the relay.
        """
        raw = message.to_frame()
        delivered = 0
        async with self._lock:
            for entry in await self.registry.all_open():
                try:
                    await asyncio.wait_for(entry.channel.send(raw), self.send_timeout)
                    delivered += 1
                except ConnectionClosed:
                    logger.info("Skipping closed connection %s", entry.connection_id)
                except asyncio.TimeoutError:
                    logger.warning(
                        "Send to %s blocked for %ss; closing connection",
                        entry.connection_id,
                        self.send_timeout,
                    )
                    self._close_later(entry)
                except Exception as e:
                    logger.warning("Failed to send to %s: %r", entry.connection_id, e)
        logger.debug(
            "Broadcast event %s message from user %s to %d connection(s)",
            message.event_id,
            message.sender_user_id,
            delivered,
        )
        return delivered

    def _close_later(self, entry: ConnectionEntry) -> None:
        task = asyncio.create_task(entry.channel.close())
        self._close_tasks.add(task)
        task.add_done_callback(self._close_tasks.discard)
