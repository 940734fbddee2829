import argparse
import asyncio
import logging

from holdem.sweeper import SweeperConfig

from .server import HostServer


def main() -> None:
    parser = argparse.ArgumentParser(description="Hold'em table host")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8765)
    parser.add_argument(
        "--sweep-period",
        type=float,
        default=60.0,
        help="Seconds between timeout sweeps across all tables",
    )
    parser.add_argument(
        "--turn-timeout",
        type=float,
        default=20.0,
        help="Seconds a seat may hold the turn before it is folded",
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    server = HostServer(sweeper_config=SweeperConfig(period_s=args.sweep_period, timeout_s=args.turn_timeout))
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
