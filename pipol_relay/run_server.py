import argparse
import asyncio
import logging
import os
import signal
from typing import Optional

from .config import RelayConfig, parse_bind, parse_seconds
from .server import RelayServer


def _seconds_default(value: Optional[float]) -> str:
    return "off" if value is None else str(value)


def build_config(args: argparse.Namespace) -> RelayConfig:
    host, port = parse_bind(args.bind)
    return RelayConfig(
        host=host,
        port=port,
        path=args.path,
        greeting=args.greeting,
        ping_interval=parse_seconds(args.ping_interval),
        ping_timeout=parse_seconds(args.ping_timeout),
        status_interval=parse_seconds(args.status_interval),
        send_timeout=parse_seconds(args.send_timeout),
    )


async def _run(relay: RelayServer, stop: Optional[asyncio.Event] = None) -> None:
    await relay.start()
    serve_task = asyncio.create_task(relay.serve_forever())

    status_task = None
    if relay.config.status_interval:
        status_task = asyncio.create_task(relay.log_status_forever(relay.config.status_interval))

    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows, or not running in the main thread
            pass

    try:
        await stop.wait()
    finally:
        logging.info("Shutting down relay")
        for sig in installed:
            loop.remove_signal_handler(sig)
        if status_task:
            status_task.cancel()
            try:
                await status_task
            except asyncio.CancelledError:
                pass
        # Closing the listener also ends serve_forever
        await relay.stop()
        try:
            await serve_task
        except asyncio.CancelledError:
            pass


def make_parser(defaults: Optional[RelayConfig] = None) -> argparse.ArgumentParser:
    defaults = defaults or RelayConfig.from_env()
    parser = argparse.ArgumentParser(description="Pipol event chat relay")
    parser.add_argument(
        "--bind",
        default=f"ws://{defaults.host}:{defaults.port}",
        help="Bind address ws://host:port (env RELAY_BIND)",
    )
    parser.add_argument(
        "--path",
        default=defaults.path,
        help="Websocket path clients connect to (env RELAY_PATH)",
    )
    parser.add_argument(
        "--greeting",
        default=defaults.greeting,
        help="Text of the connection_established frame (env RELAY_GREETING)",
    )
    parser.add_argument(
        "--ping-interval",
        default=_seconds_default(defaults.ping_interval),
        help="Seconds between keepalive pings, or 'off' (env RELAY_PING_INTERVAL)",
    )
    parser.add_argument(
        "--ping-timeout",
        default=_seconds_default(defaults.ping_timeout),
        help="Seconds to wait for a pong before dropping the connection, or 'off' (env RELAY_PING_TIMEOUT)",
    )
    parser.add_argument(
        "--status-interval",
        default=_seconds_default(defaults.status_interval),
        help="Seconds between status log lines, or 'off' (env RELAY_STATUS_INTERVAL)",
    )
    parser.add_argument(
        "--send-timeout",
        default=_seconds_default(defaults.send_timeout),
        help="Seconds a broadcast may wait on one recipient before dropping it, or 'off' (env RELAY_SEND_TIMEOUT)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ...)",
    )
    return parser


def main(argv=None):
    try:
        args = make_parser().parse_args(argv)
        config = build_config(args)
    except ValueError as e:
        raise SystemExit(f"invalid relay configuration: {e}")

    logging.basicConfig(
        level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )
    try:
        asyncio.run(_run(RelayServer(config)))
    except KeyboardInterrupt:
        logging.info("Shutting down")


if __name__ == "__main__":
    main()
