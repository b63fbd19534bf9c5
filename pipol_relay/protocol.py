import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Union

from .errors import FrameError


class FrameType(str, Enum):
    CONNECTION_ESTABLISHED = "connection_established"
    AUTH = "auth"
    AUTH_SUCCESS = "auth_success"
    MESSAGE = "message"


def iso_timestamp(dt: datetime) -> str:
    """Render ``dt`` the way browsers do with ``Date.toISOString()``."""
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_frame(frame_type: FrameType, **fields: Any) -> str:
    return json.dumps({"type": frame_type.value, **fields}, separators=(",", ":"))


def parse_frame(raw: Union[str, bytes]) -> Dict[str, Any]:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FrameError(f"frame is not utf-8: {e}") from e
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as e:
        raise FrameError(f"frame is not JSON: {e}") from e
    if not isinstance(frame, dict):
        raise FrameError("frame is not a JSON object")
    if not isinstance(frame.get("type"), str):
        raise FrameError("frame has no type")
    return frame


@dataclass
class ChatMessage:
    event_id: int
    sender_user_id: int
    sender_user_name: str
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_frame(self) -> str:
        return make_frame(
            FrameType.MESSAGE,
            eventId=self.event_id,
            userId=self.sender_user_id,
            userName=self.sender_user_name,
            content=self.content,
            timestamp=iso_timestamp(self.timestamp),
        )
