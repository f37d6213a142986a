"""cli entrypoint for chatpath."""

import argparse
import logging

from .core.client import DEFAULT_REPLY_DELAY
from .tui.app import run


def main():
    parser = argparse.ArgumentParser(
        description="chatpath - branching conversations in the terminal"
    )
    parser.add_argument(
        "--data-dir",
        "-d",
        help="directory for the tree snapshot (default: ~/.chatpath)",
    )
    parser.add_argument(
        "--reply-delay",
        type=float,
        default=DEFAULT_REPLY_DELAY,
        help=f"mock reply delay in seconds (default: {DEFAULT_REPLY_DELAY})",
    )
    parser.add_argument("--no-persist", action="store_true", help="keep the tree in memory only")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")

    args = parser.parse_args()
    # textual owns the terminal, so only warnings and up unless asked
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    run(data_dir=args.data_dir, reply_delay=args.reply_delay, persist=not args.no_persist)


if __name__ == "__main__":
    main()
