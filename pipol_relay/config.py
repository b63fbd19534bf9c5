import os
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlparse

DEFAULT_BIND = "ws://0.0.0.0:5000"
DEFAULT_PATH = "/ws"
DEFAULT_GREETING = "Successfully connected to Pipol chat server"
DEFAULT_PING_INTERVAL = 20.0
DEFAULT_PING_TIMEOUT = 20.0
DEFAULT_STATUS_INTERVAL = 60.0
DEFAULT_SEND_TIMEOUT = 10.0


def parse_bind(bind_uri: str) -> Tuple[str, int]:
    # Accept ws://host:port, host:port or a bare port
    if bind_uri.startswith("ws://") or bind_uri.startswith("wss://"):
        p = urlparse(bind_uri)
        return p.hostname or "0.0.0.0", int(p.port or 5000)
    if ":" in bind_uri:
        host, port = bind_uri.rsplit(":", 1)
        return host or "0.0.0.0", int(port)
    return "0.0.0.0", int(bind_uri)


def parse_seconds(value: Optional[str]) -> Optional[float]:
    """Parse a duration in seconds; ``off``/``none``/empty disables it."""
    if value is None:
        return None
    value = str(value).strip().lower()
    if value in ("", "off", "none", "0"):
        return None
    seconds = float(value)
    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value}")
    return seconds


@dataclass
class RelayConfig:
    host: str = "0.0.0.0"
    port: int = 5000
    path: str = DEFAULT_PATH
    greeting: str = DEFAULT_GREETING
    ping_interval: Optional[float] = DEFAULT_PING_INTERVAL
    ping_timeout: Optional[float] = DEFAULT_PING_TIMEOUT
    status_interval: Optional[float] = DEFAULT_STATUS_INTERVAL
    send_timeout: Optional[float] = DEFAULT_SEND_TIMEOUT

    def __post_init__(self):
        if not self.path.startswith("/"):
            self.path = "/" + self.path

    @classmethod
    def from_env(cls, environ=None) -> "RelayConfig":
        env = os.environ if environ is None else environ
        host, port = parse_bind(env.get("RELAY_BIND", DEFAULT_BIND))
        return cls(
            host=host,
            port=port,
            path=env.get("RELAY_PATH", DEFAULT_PATH),
            greeting=env.get("RELAY_GREETING", DEFAULT_GREETING),
            ping_interval=parse_seconds(env.get("RELAY_PING_INTERVAL", str(DEFAULT_PING_INTERVAL))),
            ping_timeout=parse_seconds(env.get("RELAY_PING_TIMEOUT", str(DEFAULT_PING_TIMEOUT))),
            status_interval=parse_seconds(env.get("RELAY_STATUS_INTERVAL", str(DEFAULT_STATUS_INTERVAL))),
            send_timeout=parse_seconds(env.get("RELAY_SEND_TIMEOUT", str(DEFAULT_SEND_TIMEOUT))),
        )
