import argparse
import asyncio
import logging
import os

from .server import CardRoomServer, ServerConfig

logging.basicConfig(level=logging.INFO)


def main() -> None:
    defaults = ServerConfig()
    parser = argparse.ArgumentParser(description="Hold'em and BS Poker room server")
    parser.add_argument("--host", default=defaults.host)
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", defaults.port)))
    parser.add_argument(
        "--start-delay",
        type=float,
        default=defaults.holdem_start_delay,
        help="Seconds before a Hold'em room with two players deals its first hand",
    )
    parser.add_argument(
        "--next-hand-delay",
        type=float,
        default=defaults.next_hand_delay,
        help="Seconds between a Hold'em showdown and the next deal",
    )
    parser.add_argument(
        "--reveal-delay",
        type=float,
        default=defaults.reveal_delay,
        help="Seconds between a bullshit call and the round-end announcement",
    )
    parser.add_argument("--cleanup-interval", type=float, default=defaults.cleanup_interval)
    parser.add_argument(
        "--room-max-age",
        type=float,
        default=defaults.room_max_age,
        help="Seconds an empty room may linger before the sweep removes it",
    )
    args = parser.parse_args()

    config = ServerConfig(
        host=args.host,
        port=args.port,
        holdem_start_delay=args.start_delay,
        next_hand_delay=args.next_hand_delay,
        reveal_delay=args.reveal_delay,
        cleanup_interval=args.cleanup_interval,
        room_max_age=args.room_max_age,
    )
    server = CardRoomServer(config)
    asyncio.run(server.start())


if __name__ == "__main__":
    main()
