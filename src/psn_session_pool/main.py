"""CLI entry point: loads settings, configures logging and runs one command."""

from __future__ import annotations

import argparse
import logging
import pathlib
import sys

from psn_session_pool.config.settings import load_settings
from psn_session_pool.errors import ConfigError


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="psn-pool: PSN API access over a pool of accounts",
    )
    parser.add_argument(
        "--config",
        default=str(pathlib.Path.cwd() / "config" / "settings.yaml"),
        help="Path to settings.yaml",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    profile = commands.add_parser("profile", help="Show one or more profiles")
    profile.add_argument("online_ids", nargs="+")

    trophies = commands.add_parser("trophies", help="List a user's trophy titles")
    trophies.add_argument("online_id")
    trophies.add_argument("--offset", type=int, default=0)

    threads = commands.add_parser("threads", help="List message threads")
    threads.add_argument("--offset", type=int, default=0)

    store = commands.add_parser("store", help="Search the PlayStation Store")
    store.add_argument("name")
    store.add_argument("--country", default="US")

    message = commands.add_parser("message", help="Send a message")
    message.add_argument("online_id")
    message.add_argument("--text")
    message.add_argument("--image", help="Path to a PNG to attach")

    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        logging.getLogger(__name__).error("%s", exc)
        sys.exit(2)

    from psn_session_pool.cli import commands

    if args.command == "profile":
        status = commands.run_profiles(settings, args.online_ids)
    elif args.command == "trophies":
        status = commands.run_trophies(settings, args.online_id, args.offset)
    elif args.command == "threads":
        status = commands.run_threads(settings, args.offset)
    elif args.command == "store":
        status = commands.run_store_search(settings, args.name, args.country)
    else:
        if not args.text and not args.image:
            logging.getLogger(__name__).error("message needs --text, --image, or both")
            sys.exit(2)
        status = commands.run_send_message(settings, args.online_id, args.text, args.image)
    sys.exit(status)


if __name__ == "__main__":
    main()
