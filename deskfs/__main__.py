"""Interactive terminal over the virtual filesystem.

Usage:
    python -m deskfs [--username NAME] [--db URL] [--log-level LEVEL]
"""

from __future__ import annotations

import argparse
import logging
import sys

from .config import VFSConfig, connect_store, open_vfs
from .errors import SyncError
from .shell import CLEAR_SCREEN, Shell


def parse_log_level(log_level: str) -> int:
    try:
        return {
            "error": logging.ERROR,
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }[log_level]
    except KeyError:
        raise ValueError("invalid log level specifier") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deskfs", description=__doc__.splitlines()[0])
    parser.add_argument("--username", default="user", help="home directory owner")
    parser.add_argument("--db", default=None, help="SQLAlchemy URL for the file_system table")
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=["error", "warning", "info", "debug"],
        help="console log level",
    )
    parser.add_argument(
        "--legacy-paths",
        action="store_true",
        help="keep '.' and '..' as literal path segments",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    options = build_parser().parse_args(argv)

    logger = logging.getLogger("")
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt="%(asctime)s deskfs %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(parse_log_level(options.log_level))

    store = connect_store("table", url=options.db) if options.db else connect_store("memory")
    config = VFSConfig(
        username=options.username,
        store=store,
        resolve_dots=not options.legacy_paths,
    )
    try:
        vfs = open_vfs(config)
    except SyncError as e:
        print(f"error: could not open filesystem: {e}", file=sys.stderr)
        return 1

    shell = Shell(vfs)
    with vfs:
        while True:
            try:
                line = input(shell.prompt)
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if line.strip() in ("exit", "logout"):
                break
            output = shell.execute(line)
            if output == CLEAR_SCREEN:
                sys.stdout.write(output)
            elif output:
                print(output)
            if vfs.error is not None:
                print(f"[sync] {vfs.error}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
