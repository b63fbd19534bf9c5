import asyncio
import json
import os
from typing import Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from .errors import FrameError
from .protocol import FrameType, make_frame, parse_frame

EVENT_COMMAND = "/event "
CLOSE_COMMAND = "/quit"


# Color codes for terminal output
class Colors:
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'

    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    CYAN = '\033[36m'
    WHITE = '\033[37m'


def colorize(text, color):
    """Add color to text if terminal supports it"""
    if os.getenv('TERM') and os.getenv('TERM') != 'dumb':
        return f"{color}{text}{Colors.RESET}"
    return text


def format_frame(frame: dict) -> Optional[str]:
    typ = frame.get("type")
    if typ == FrameType.CONNECTION_ESTABLISHED.value:
        return colorize(f"[SERVER] {frame.get('message', '')}", Colors.GREEN)
    if typ == FrameType.AUTH_SUCCESS.value:
        return colorize(
            f"[SERVER] Signed in as {frame.get('userName')} ({frame.get('userId')})",
            Colors.GREEN + Colors.BOLD,
        )
    if typ == FrameType.MESSAGE.value:
        when = colorize(frame.get("timestamp", ""), Colors.DIM)
        who = colorize(frame.get("userName", "?"), Colors.CYAN + Colors.BOLD)
        return f"{when} [event {frame.get('eventId')}] {who}: {frame.get('content', '')}"
    return None


class RelayClient:
    """Interactive terminal client for the chat relay."""

    def __init__(self, user_id: int, user_name: str, event_id: int):
        self.user_id = user_id
        self.user_name = user_name
        self.event_id = event_id

    def auth_frame(self) -> str:
        return make_frame(FrameType.AUTH, userId=self.user_id, userName=self.user_name)

    def message_frame(self, content: str) -> str:
        return make_frame(FrameType.MESSAGE, eventId=self.event_id, content=content)

    async def sender(self, ws: ClientConnection):
        loop = asyncio.get_running_loop()
        while True:
            try:
                line = await loop.run_in_executor(None, input)
            except EOFError:
                line = CLOSE_COMMAND
            line = line.strip()

            if line == CLOSE_COMMAND:
                await ws.close()
                print(colorize("[CLIENT] Disconnected", Colors.YELLOW))
                return
            if line.startswith(EVENT_COMMAND):
                arg = line[len(EVENT_COMMAND):].strip()
                try:
                    self.event_id = int(arg)
                except ValueError:
                    print(colorize(f"[CLIENT] Not an event id: {arg}", Colors.RED))
                    continue
                print(colorize(f"[CLIENT] Now chatting in event {self.event_id}", Colors.YELLOW))
                continue
            if not line:
                continue
            await ws.send(self.message_frame(line))

    async def receiver(self, ws: ClientConnection):
        try:
            async for raw in ws:
                try:
                    frame = parse_frame(raw)
                except FrameError:
                    continue
                text = format_frame(frame)
                if text is None:
                    text = colorize(json.dumps(frame), Colors.DIM)
                print(text)
        except ConnectionClosed:
            pass

    async def run_client(self, uri: str):
        async with connect(uri) as ws:
            print(colorize(f"[CLIENT:{self.user_name}] Connected to {uri}", Colors.GREEN + Colors.BOLD))
            await ws.send(self.auth_frame())
            receive_task = asyncio.create_task(self.receiver(ws))
            try:
                await self.sender(ws)
            finally:
                await receive_task
