"""Bounds-checked byte access, the trailer, and the offset table.

Everything here reads from an immutable buffer and either returns a value
or raises a FormatError naming the byte offset that was out of range.
Nothing in this module allocates more than the bytes it was asked for.
"""

from __future__ import annotations

import struct
from typing import List, NamedTuple

from ._constants import (
    HEADER_LEN,
    MAGIC,
    MIN_BUFFER_LEN,
    TRAILER_FORMAT,
    TRAILER_LEN,
)
from ._errors import (
    ERR_BAD_MAGIC,
    ERR_BAD_OFFSET,
    ERR_BAD_TRAILER,
    ERR_TRUNCATED,
    DanglingReferenceError,
    FormatError,
)


class Trailer(NamedTuple):
    offset_width: int
    ref_width: int
    object_count: int
    root_index: int
    offset_table_position: int


# ── Byte cursor ──────────────────────────────────────────────

def take(buf: bytes, off: int, n: int, what: str = "payload") -> bytes:
    """Return buf[off:off+n], or raise if any of it lies outside buf."""
    if off < 0 or n < 0 or off + n > len(buf):
        raise FormatError(ERR_TRUNCATED,
                          "truncated {}: need {} bytes".format(what, n),
                          offset=off)
    return buf[off:off + n]


def byte_at(buf: bytes, off: int, what: str = "tag") -> int:
    if off < 0 or off >= len(buf):
        raise FormatError(ERR_TRUNCATED, "truncated {}".format(what), offset=off)
    return buf[off]


# ── Big-endian integers ──────────────────────────────────────
# Plain byte-count driven: no width is special-cased.  int.from_bytes
# handles any width, so 16-byte and wider values need no extra path.

def read_uint(buf: bytes, off: int, width: int, what: str = "integer") -> int:
    """Read an unsigned big-endian integer of ``width`` bytes at ``off``."""
    if width < 1:
        raise FormatError(ERR_BAD_TRAILER, "zero-width {}".format(what), offset=off)
    return int.from_bytes(take(buf, off, width, what), "big")


def read_sint(buf: bytes, off: int, width: int, what: str = "integer") -> int:
    """Read a two's-complement big-endian integer of ``width`` bytes."""
    return int.from_bytes(take(buf, off, width, what), "big", signed=True)


# ── Header and trailer ───────────────────────────────────────

def check_header(buf: bytes) -> None:
    """Validate the 8-byte header: magic plus two ASCII version digits."""
    if len(buf) < MIN_BUFFER_LEN:
        raise FormatError(ERR_TRUNCATED,
                          "buffer of {} bytes is shorter than header + trailer ({})"
                          .format(len(buf), MIN_BUFFER_LEN))
    if buf[:len(MAGIC)] != MAGIC:
        raise FormatError(ERR_BAD_MAGIC,
                          "bad magic {!r}".format(bytes(buf[:len(MAGIC)])),
                          offset=0)
    version = bytes(buf[len(MAGIC):HEADER_LEN])
    if not (version.isdigit() and version.isascii()):
        raise FormatError(ERR_BAD_MAGIC, "bad version {!r}".format(version),
                          offset=len(MAGIC))


def parse_trailer(buf: bytes) -> Trailer:
    """Check the header, then unpack the final 32 bytes into a Trailer."""
    check_header(buf)
    trailer_off = len(buf) - TRAILER_LEN
    trailer = Trailer(*struct.unpack(TRAILER_FORMAT, buf[trailer_off:]))

    if trailer.offset_width < 1:
        raise FormatError(ERR_BAD_TRAILER, "offset width is zero",
                          offset=trailer_off + 6)
    if trailer.ref_width < 1:
        raise FormatError(ERR_BAD_TRAILER, "object reference width is zero",
                          offset=trailer_off + 7)
    if trailer.root_index >= trailer.object_count:
        raise DanglingReferenceError(
            msg="root index {} >= object count {}".format(
                trailer.root_index, trailer.object_count),
            offset=trailer_off + 16)
    return trailer


def load_offset_table(buf: bytes, trailer: Trailer) -> List[int]:
    """Read ``object_count`` offsets starting at ``offset_table_position``.

    The whole table must sit between the header and the trailer.  The
    offsets themselves are only range-checked when an object is read.
    """
    pos = trailer.offset_table_position
    width = trailer.offset_width
    end = pos + trailer.object_count * width
    if pos < HEADER_LEN or end > len(buf) - TRAILER_LEN:
        raise FormatError(ERR_BAD_OFFSET,
                          "offset table [{}, {}) outside object region".format(pos, end),
                          offset=pos)
    return [int.from_bytes(buf[p:p + width], "big")
            for p in range(pos, end, width)]
