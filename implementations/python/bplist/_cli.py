"""bplist command-line interface.

Usage:
    python3 -m bplist dump FILE [--lenient] [--max-bytes N]
    echo '{"a": [1, 2.5, true]}' | python3 -m bplist from-json [--output FILE]
    python3 -m bplist from-json --input file.json --output file.plist
    python3 -m bplist version
"""

from __future__ import annotations

import argparse
import base64
import json
import logging
import sys
from typing import List, Optional

from . import (
    LENIENT,
    STRICT,
    Map,
    PlistError,
    __version__,
    decode_file,
    encode,
    format_value,
)
from ._constants import DEFAULT_MAX_BYTES


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bplist",
        description="bplist — binary property list decoder and encoder",
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Log decode/encode details to stderr")
    sub = parser.add_subparsers(dest="command")

    # ── dump ──
    dump_p = sub.add_parser("dump", help="Decode a binary plist and print its tree")
    dump_p.add_argument("file", metavar="FILE", help="Binary plist to decode")
    dump_p.add_argument("--lenient", action="store_true",
                        help="Replace unknown tags with null instead of failing")
    dump_p.add_argument("--max-bytes", type=int, default=DEFAULT_MAX_BYTES,
                        metavar="N", help="Input and allocation budget in bytes")

    # ── from-json ──
    fj_p = sub.add_parser("from-json", help="Encode JSON as a binary plist")
    fj_p.add_argument("--input", "-i", metavar="FILE",
                      help="Read JSON from FILE instead of stdin")
    fj_p.add_argument("--output", "-o", metavar="FILE",
                      help="Write binary plist to FILE (default: base64 to stdout)")

    # ── version ──
    sub.add_parser("version", help="Print version and exit")

    return parser


def _read_input(filepath: Optional[str]) -> bytes:
    """Read JSON bytes from a file or stdin."""
    if filepath:
        with open(filepath, "rb") as f:
            return f.read()
    if sys.stdin.isatty():
        print("bplist: reading from stdin (Ctrl-D to end)...", file=sys.stderr)
    return sys.stdin.buffer.read()


def _cmd_dump(args: argparse.Namespace) -> None:
    value = decode_file(args.file,
                        strictness=LENIENT if args.lenient else STRICT,
                        max_bytes=args.max_bytes)
    print(format_value(value))


def _cmd_from_json(args: argparse.Namespace) -> None:
    raw = _read_input(args.input)
    # Map keeps JSON key order; a plain dict would too, but Map is what
    # decode() hands back, so the two sides print the same.
    value = json.loads(raw, object_pairs_hook=Map)
    data = encode(value)
    if args.output:
        with open(args.output, "wb") as f:
            f.write(data)
    else:
        # base64 for safe terminal display
        print(base64.b64encode(data).decode("ascii"))


def main(argv: Optional[List[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="bplist: %(levelname)s %(message)s")

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "version":
        print(f"bplist {__version__}")
        return

    try:
        if args.command == "dump":
            _cmd_dump(args)
        elif args.command == "from-json":
            _cmd_from_json(args)
    except PlistError as e:
        print(f"bplist: error [{e.code}]: {e}", file=sys.stderr)
        sys.exit(2)
    except json.JSONDecodeError as e:
        print(f"bplist: JSON parse error: {e}", file=sys.stderr)
        sys.exit(2)
    except OSError as e:
        print(f"bplist: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
