import asyncio
import logging
import uuid
from http import HTTPStatus
from typing import Any, Dict, Optional

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.frames import CloseCode
from websockets.http11 import Request, Response

from .broadcast import Broadcaster
from .config import RelayConfig
from .errors import DuplicateIdError
from .handler import MessageHandler
from .protocol import FrameType, make_frame
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class RelayServer:
    """Websocket chat relay.

    Each accepted connection gets a fresh id and a registry entry, is greeted
    with ``connection_established``, has its frames dispatched in arrival
    order, and is removed from the registry when the transport closes.
    """

    def __init__(self, config: Optional[RelayConfig] = None, registry: Optional[ConnectionRegistry] = None):
        self.config = config or RelayConfig()
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.broadcaster = Broadcaster(self.registry, send_timeout=self.config.send_timeout)
        self.message_handler = MessageHandler(self.registry, self.broadcaster)
        self._server: Optional[Server] = None

    @staticmethod
    def new_connection_id() -> str:
        return uuid.uuid4().hex

    def process_request(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        path = request.path.split("?", 1)[0]
        if path != self.config.path:
            logger.info("Rejecting websocket upgrade on %s", path)
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")
        return None

    async def handler(self, connection: ServerConnection) -> None:
        connection_id = self.new_connection_id()
        try:
            await self.registry.register(connection_id, connection)
        except DuplicateIdError:
            logger.error("Connection id collision for %s; dropping connection", connection_id)
            await connection.close(CloseCode.INTERNAL_ERROR, "connection id collision")
            return

        logger.info("WebSocket connection established: %s from %s", connection_id, connection.remote_address)
        try:
            await connection.send(
                make_frame(FrameType.CONNECTION_ESTABLISHED, message=self.config.greeting)
            )
            async for raw in connection:
                try:
                    await self.message_handler.handle(connection_id, raw)
                except Exception:
                    logger.exception("Error processing frame from %s", connection_id)
        except ConnectionClosedError as e:
            logger.info("Connection %s closed abnormally: %s", connection_id, e)
        except ConnectionClosed:
            pass
        finally:
            await self.registry.remove(connection_id)
            logger.info("WebSocket connection closed: %s", connection_id)

    async def start(self) -> Server:
        self._server = await serve(
            self.handler,
            self.config.host,
            self.config.port,
            process_request=self.process_request,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
        )
        logger.info(
            "Relay listening on ws://%s:%s%s", self.config.host, self.port, self.config.path
        )
        return self._server

    @property
    def port(self) -> Optional[int]:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Relay stopped")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        await self._server.serve_forever()

    def status(self) -> Dict[str, Any]:
        return {
            "connections": len(self.registry),
            "authenticated": self.registry.count_authenticated(),
        }

    async def log_status_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            st = self.status()
            logger.info(
                "Open connections: %d (authenticated: %d)", st["connections"], st["authenticated"]
            )
