"""bplist — binary property list codec.

Decode and encode the "bplist00" binary format: a typed tree of null,
booleans, arbitrary-width integers, reals, timestamps, data, text, UIDs,
lists, bags and maps, addressed through an offset table and a 32-byte
trailer.

Quick start:
    >>> from bplist import decode, encode
    >>> m = decode(encode({"success": True, "message": "ok"}))
    >>> m["success"], m["message"]
    (True, 'ok')
    >>> list(m.keys())
    ['success', 'message']

Decoding untrusted input is bounded: every length is checked against
``max_bytes`` before anything is allocated, nesting is limited by
``max_depth``, and an optional ``timeout`` or ``cancel`` token stops a
long decode.  Unknown tags raise UnsupportedTagError unless
``strictness=LENIENT``, which logs them and substitutes None.
"""

from __future__ import annotations

import os
from typing import Any, BinaryIO, Optional

from ._constants import (
    DEFAULT_MAX_BYTES,
    HEADER_LEN,
    LENIENT,
    MAGIC,
    MAX_DEPTH,
    STRICT,
)
from ._decoder import decode_buffer
from ._encoder import encode_value
from ._errors import (
    ERR_BAD_LENGTH,
    ERR_BAD_MAGIC,
    ERR_BAD_OFFSET,
    ERR_BAD_TAG,
    ERR_BAD_TRAILER,
    ERR_CANCELLED,
    ERR_CYCLE,
    ERR_ENCODE,
    ERR_LIMIT_DEPTH,
    ERR_LIMIT_SIZE,
    ERR_REFERENCE,
    ERR_TRUNCATED,
    ERR_UNSUPPORTED_TAG,
    DanglingReferenceError,
    DecodeCancelled,
    DecodeError,
    EncodeError,
    FormatError,
    PlistError,
    ResourceError,
    UnsupportedTagError,
)
from ._model import UID, Bag, Map, Real, Timestamp, format_value, values_equal

__version__ = "1.0.0"

_READ_CHUNK = 1 << 16

__all__ = [
    # Public API functions
    "decode",
    "decode_stream",
    "decode_file",
    "encode",
    "encode_file",
    "is_binary_plist",
    # Value model
    "Real",
    "Timestamp",
    "UID",
    "Bag",
    "Map",
    "values_equal",
    "format_value",
    # Strictness
    "STRICT",
    "LENIENT",
    # Exceptions
    "PlistError",
    "DecodeError",
    "FormatError",
    "UnsupportedTagError",
    "ResourceError",
    "DanglingReferenceError",
    "DecodeCancelled",
    "EncodeError",
    # Error codes
    "ERR_BAD_MAGIC",
    "ERR_TRUNCATED",
    "ERR_BAD_TRAILER",
    "ERR_BAD_OFFSET",
    "ERR_BAD_LENGTH",
    "ERR_BAD_TAG",
    "ERR_CYCLE",
    "ERR_UNSUPPORTED_TAG",
    "ERR_LIMIT_SIZE",
    "ERR_LIMIT_DEPTH",
    "ERR_REFERENCE",
    "ERR_CANCELLED",
    "ERR_ENCODE",
]


# ── Decoding ──────────────────────────────────────────────────

def decode(data: bytes, *,
           strictness: str = STRICT,
           max_bytes: int = DEFAULT_MAX_BYTES,
           max_depth: int = MAX_DEPTH,
           timeout: Optional[float] = None,
           cancel: Any = None) -> Any:
    """Decode a complete binary plist held in memory.

    ``cancel`` is any object with an ``is_set()`` method, such as a
    threading.Event.  ``timeout`` is in seconds.  Raises a DecodeError
    subclass on any failure; no partial tree is ever returned.
    """
    return decode_buffer(bytes(data), strictness=strictness,
                         max_bytes=max_bytes, max_depth=max_depth,
                         timeout=timeout, cancel=cancel)


def decode_stream(source: BinaryIO, **options: Any) -> Any:
    """Read ``source`` to the end, then decode it.

    At most ``max_bytes + 1`` bytes are read, so an oversized stream fails
    with ResourceError without being consumed in full.
    """
    max_bytes = options.get("max_bytes", DEFAULT_MAX_BYTES)
    chunks = []
    total = 0
    while True:
        chunk = source.read(min(_READ_CHUNK, max_bytes + 1 - total))
        if not chunk:
            break
        chunks.append(chunk)
        total += len(chunk)
        if total > max_bytes:
            raise ResourceError(ERR_LIMIT_SIZE,
                                "stream exceeds budget of {} bytes".format(max_bytes))
    return decode(b"".join(chunks), **options)


def decode_file(path: str, **options: Any) -> Any:
    """Decode a binary plist file, refusing oversized files before reading."""
    max_bytes = options.get("max_bytes", DEFAULT_MAX_BYTES)
    size = os.path.getsize(path)
    if size > max_bytes:
        raise ResourceError(ERR_LIMIT_SIZE,
                            "file of {} bytes exceeds budget of {}".format(size, max_bytes))
    with open(path, "rb") as f:
        return decode_stream(f, **options)


def is_binary_plist(data: bytes) -> bool:
    """Cheap sniff: does ``data`` start with the bplist magic and version?"""
    head = bytes(data[:HEADER_LEN])
    return (len(head) == HEADER_LEN and head.startswith(MAGIC)
            and head[len(MAGIC):].isdigit())


# ── Encoding ──────────────────────────────────────────────────

def encode(value: Any, *,
           max_bytes: Optional[int] = None,
           max_depth: int = MAX_DEPTH) -> bytes:
    """Encode a value tree as a binary plist.

    Accepts the value model plus convenience types: dict (as Map, in
    insertion order), tuple (as list), set/frozenset (as Bag), bytearray
    (as bytes), float (as an 8-byte Real) and datetime (as Timestamp).
    Raises EncodeError for anything else.
    """
    return encode_value(value, max_bytes=max_bytes, max_depth=max_depth)


def encode_file(value: Any, path: str, **options: Any) -> None:
    data = encode(value, **options)
    with open(path, "wb") as f:
        f.write(data)
