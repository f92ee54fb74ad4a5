"""unistore CLI - copy one object between store locations.

Usage:
    unistore copy <src-object-url> <dest-dir-url>
    python -m unistore copy <src-object-url> <dest-dir-url>

Both sides are opened as simple stores (no extension, no compression,
overwrite on), so the object's bytes are copied as they are.

Exit codes:
    0: Copy succeeded
    1: Copy failed
"""

from __future__ import annotations

import argparse
import logging
import sys
from urllib.parse import urlsplit, urlunsplit

from unistore.errors import InvalidUsageError, StoreError
from unistore.factory import new_simple_store

logger = logging.getLogger(__name__)


def split_object_url(url: str) -> tuple[str, str]:
    """Split an object URL into (directory location, object name).

    The query string stays with the directory, since it configures the store.

    Raises:
        InvalidUsageError: If the URL does not end with an object name.
    """
    parts = urlsplit(url)
    if not parts.scheme or len(parts.scheme) == 1:
        directory, sep, name = url.rpartition("/")
        if not name:
            raise InvalidUsageError("Source URL must name an object", scope=url)
        return (directory or "/", name) if sep else (".", name)

    directory, _, name = parts.path.rpartition("/")
    if not name:
        raise InvalidUsageError("Source URL must name an object", scope=url)
    return urlunsplit(parts._replace(path=directory)), name


def cmd_copy(args: argparse.Namespace) -> int:
    """Copy one object from args.source into the directory args.dest."""
    src_dir, name = split_object_url(args.source)
    with new_simple_store(src_dir) as source, new_simple_store(args.dest) as dest:
        with source.open_object(name) as reader:
            dest.write_object(name, reader)
        logger.info("Copied %s to %s", args.source, dest.object_url(name))
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="unistore",
        description="unistore - unified object storage CLI",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug messages to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # copy command
    copy_parser = subparsers.add_parser(
        "copy",
        help="Copy an object from one location to another",
    )
    copy_parser.add_argument(
        "source",
        metavar="SRC_OBJECT_URL",
        help="Object to copy, e.g. s3://bucket/dir/name?region=us-east-1 or /data/dir/name",
    )
    copy_parser.add_argument(
        "dest",
        metavar="DEST_DIR_URL",
        help="Destination directory location; the object keeps its name",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Copy failed / Internal error
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "copy":
            return cmd_copy(args)
        return 0
    except StoreError as e:
        print(f"unistore: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        # Fail-closed: unexpected errors return exit code 1
        logger.exception("Unexpected error running %s", args.command)
        print(f"unistore: internal error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
