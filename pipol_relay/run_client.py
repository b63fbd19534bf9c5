import argparse
import asyncio
import os

from .client import Colors, RelayClient, colorize


def main():
    print(colorize("=" * 60, Colors.CYAN))
    print(colorize("Pipol Event Chat", Colors.CYAN + Colors.BOLD))
    print(colorize("=" * 60, Colors.CYAN))
    print(colorize("Commands:", Colors.YELLOW))
    print(colorize("  <text>        - Send a message to the current event", Colors.WHITE))
    print(colorize("  /event <id>   - Switch to another event", Colors.WHITE))
    print(colorize("  /quit         - Exit", Colors.WHITE))
    print(colorize("=" * 60, Colors.CYAN))

    ap = argparse.ArgumentParser(description="Pipol chat client")
    ap.add_argument(
        "--server",
        default=os.getenv("RELAY_URL", "ws://127.0.0.1:5000/ws"),
        help="ws://host:port/path of the relay",
    )
    ap.add_argument("--user-id", type=int, required=True)
    ap.add_argument("--user-name", required=True)
    ap.add_argument("--event", type=int, default=1, help="Event to chat in")
    args = ap.parse_args()

    client = RelayClient(args.user_id, args.user_name, args.event)
    try:
        asyncio.run(client.run_client(args.server))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
