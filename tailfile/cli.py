"""Command line entrypoint for tailfile."""
from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from .bookmark import Bookmark
from .config import load_config
from .errors import TailError
from .notifier import NOTIFIER_KINDS
from .tailer import TailFile
from .version import __version__


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _cmd_follow(args: argparse.Namespace) -> int:
    _configure_logging(args.verbose)
    config = load_config(
        Path(args.config) if args.config else None,
        target_path=args.path,
        bookmark_path=args.bookmark,
        poll_interval=args.poll_interval,
        notifier=args.notifier,
    )
    try:
        tail = TailFile(config)
    except (TailError, OSError) as exc:
        print(f"tailfile: {exc}", file=sys.stderr)
        return 1
    lines = tail.follow()
    try:
        for line in lines:
            print(line, flush=True)
    except KeyboardInterrupt:
        return 0
    except (TailError, OSError) as exc:
        print(f"tailfile: {exc}", file=sys.stderr)
        return 1
    finally:
        lines.close()
    return 0


def _cmd_write(args: argparse.Namespace) -> int:
    """Write numbered lines, rotating the file a third of the way through."""

    path = Path(args.path)
    rotated = Path(args.rotate_to) if args.rotate_to else path.with_name(path.name + ".old")
    first, second = args.count // 3, 2 * args.count // 3
    handle = path.open("a", encoding="utf-8")
    try:
        for i in range(args.count):
            if i == first:
                os.rename(path, rotated)
            elif i == second:
                handle.close()
                handle = path.open("a", encoding="utf-8")
            handle.write(f"line{i}\n")
            handle.flush()
            time.sleep(args.interval)
    finally:
        handle.close()
    return 0


def _cmd_bookmark(args: argparse.Namespace) -> int:
    try:
        bookmark = Bookmark.load(args.file)
    except FileNotFoundError:
        print(f"tailfile: no bookmark at {args.file}", file=sys.stderr)
        return 1
    except TailError as exc:
        print(f"tailfile: {exc}", file=sys.stderr)
        return 1
    print(f"originalPath: {bookmark.original_path}")
    print(f"watchingPath: {bookmark.watching_path}")
    print(f"position: {bookmark.position}")
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tailfile")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    follow = sub.add_parser("follow", help="print lines appended to a file, across rotations")
    follow.add_argument("path", help="file to follow; it may not exist yet")
    follow.add_argument("--bookmark", help="file recording the read position between runs")
    follow.add_argument("--poll-interval", type=float, help="seconds between polls")
    follow.add_argument("--notifier", choices=NOTIFIER_KINDS, help="change detection strategy")
    follow.add_argument("--config", help="JSON config file")
    follow.add_argument("-v", "--verbose", action="store_true", help="log state transitions")
    follow.set_defaults(func=_cmd_follow)

    write = sub.add_parser("write", help="write numbered lines and rotate the file midway")
    write.add_argument("path")
    write.add_argument("--rotate-to", help="name the file is renamed to (default PATH.old)")
    write.add_argument("--count", type=int, default=150)
    write.add_argument("--interval", type=float, default=0.009)
    write.set_defaults(func=_cmd_write)

    bookmark = sub.add_parser("bookmark", help="show a bookmark file")
    bookmark.add_argument("file")
    bookmark.set_defaults(func=_cmd_bookmark)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover - manual execution
    sys.exit(main())
