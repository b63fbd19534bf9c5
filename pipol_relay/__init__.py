from .broadcast import Broadcaster
from .config import RelayConfig
from .errors import (
    DuplicateIdError,
    FrameError,
    IdentityAlreadySetError,
    RelayError,
    UnknownConnectionError,
)
from .handler import MessageHandler
from .protocol import ChatMessage, FrameType, make_frame, parse_frame
from .registry import ConnectionEntry, ConnectionRegistry
from .server import RelayServer
