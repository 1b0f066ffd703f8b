"""Binary plist encoder.

Encoding is the decoder run backwards:

    1. flatten the value tree into a table of distinct objects
    2. serialize every object, collections referring to children by index
    3. append the offset table and the trailer

Objects are deduplicated by content: two equal strings, or two lists with
the same children, share one object index no matter where they sit in the
tree.  Collections are keyed on their children's indices, so flattening is
post-order and the root is always the last object.  The walk is iterative
and memoized on identity, so a deeply shared input encodes in linear time.

Width policy (the decoder accepts any choice; this is the one we write):

    - integers use the smallest two's-complement width in 1, 2, 4, 8, 16, ...
      bytes that holds the value;
    - extended lengths use the same rule, so the embedded length reads the
      same signed or unsigned;
    - offsets and references use the smallest of 1, 2, 4, 8 bytes;
    - a plain float is written as an 8-byte real.

Round-trip tests therefore compare decoded values, not buffers.
"""

from __future__ import annotations

import datetime
import logging
import struct
from typing import Any, Dict, List, Optional, Tuple

from ._constants import (
    DATE_INFO,
    EXTENDED_LENGTH,
    FIELD_WIDTHS,
    HEADER,
    KIND_ARRAY,
    KIND_ASCII,
    KIND_DATA,
    KIND_DATE,
    KIND_DICT,
    KIND_INT,
    KIND_REAL,
    KIND_SET,
    KIND_SIMPLE,
    KIND_UID,
    KIND_UTF16,
    MAX_DEPTH,
    SIMPLE_FALSE,
    SIMPLE_NULL,
    SIMPLE_TRUE,
    TRAILER_FORMAT,
)
from ._errors import ERR_ENCODE, ERR_LIMIT_DEPTH, ERR_LIMIT_SIZE, EncodeError
from ._model import UID, Bag, Map, Real, Timestamp

_log = logging.getLogger(__name__)

# Largest int tag nibble: 2**14 bytes is far past anything sensible.
_MAX_INT_INFO = 14


def _tag(kind: int, info: int) -> bytes:
    return bytes([(kind << 4) | info])


def _int_info(n: int) -> int:
    """Smallest info nibble whose 2**info bytes hold ``n`` as signed."""
    # ~n maps -128 to 127: both need 7 magnitude bits plus the sign bit.
    bits = (n if n >= 0 else ~n).bit_length() + 1
    info = 0
    while (8 << info) < bits:
        info += 1
        if info > _MAX_INT_INFO:
            raise EncodeError(ERR_ENCODE, "integer too wide: {} bits".format(bits))
    return info


def _int_object(n: int) -> bytes:
    info = _int_info(n)
    return _tag(KIND_INT, info) + n.to_bytes(1 << info, "big", signed=True)


def _sized_header(kind: int, length: int) -> bytes:
    """Tag plus length: inline below 15, else 0xF and an integer object."""
    if length < EXTENDED_LENGTH:
        return _tag(kind, length)
    return _tag(kind, EXTENDED_LENGTH) + _int_object(length)


def _field_width(n: int) -> int:
    """Smallest of FIELD_WIDTHS that holds ``n`` unsigned."""
    for width in FIELD_WIDTHS:
        if n < 1 << (8 * width):
            return width
    raise EncodeError(ERR_LIMIT_SIZE, "value {} does not fit an 8-byte field".format(n))


def _coerce(val: Any) -> Any:
    """Map convenience Python types onto the value model."""
    if isinstance(val, bytearray):
        return bytes(val)
    if isinstance(val, tuple):
        return list(val)
    if isinstance(val, (set, frozenset)):
        return Bag(val)
    if isinstance(val, dict):
        return Map(val)
    if isinstance(val, datetime.datetime):
        return Timestamp.from_datetime(val)
    return val


class _Flattener:
    """Assign object indices bottom-up, deduplicating by content."""

    def __init__(self, max_depth: int) -> None:
        self._max_depth = max_depth
        self.objects: List[Tuple[Any, ...]] = []
        self._by_content: Dict[Tuple[Any, ...], int] = {}
        self._by_identity: Dict[int, int] = {}
        # Holds every visited input so no id() is reused mid-walk.
        self._keep: List[Any] = []

    def _intern(self, key: Tuple[Any, ...]) -> int:
        idx = self._by_content.get(key)
        if idx is None:
            idx = len(self.objects)
            self.objects.append(key)
            self._by_content[key] = idx
        return idx

    @staticmethod
    def _scalar_key(val: Any) -> Tuple[Any, ...]:
        # bool before int: isinstance(True, int) is True.
        if val is None:
            return ("null",)
        if isinstance(val, bool):
            return ("bool", val)
        if isinstance(val, int):
            return ("int", val)
        if isinstance(val, float):
            return ("real", 8, struct.pack(">d", val))
        if isinstance(val, Real):
            packed = struct.pack(">d" if val.width == 8 else ">f", val.value)
            return ("real", val.width, packed)
        if isinstance(val, Timestamp):
            return ("date", struct.pack(">d", val.seconds))
        if isinstance(val, bytes):
            return ("data", val)
        if isinstance(val, str):
            return ("text", val)
        if isinstance(val, UID):
            return ("uid", val.data)
        raise EncodeError(ERR_ENCODE, "unsupported type: {}".format(type(val).__name__))

    def flatten(self, root: Any) -> int:
        # (input, depth, pending): pending is (kind, children, count) on the
        # way back up, None on the way down.
        stack: List[Tuple[Any, int, Optional[Tuple[str, List[Any], int]]]] = [(root, 1, None)]
        active = set()

        while stack:
            orig, depth, pending = stack.pop()
            oid = id(orig)

            if pending is not None:
                kind, children, count = pending
                ids = tuple(self._by_identity[id(c)] for c in children)
                self._by_identity[oid] = self._intern((kind, count, ids))
                active.discard(oid)
                continue

            if oid in self._by_identity:
                continue
            if depth > self._max_depth:
                raise EncodeError(ERR_LIMIT_DEPTH,
                                  "nesting exceeds max depth {}".format(self._max_depth))

            self._keep.append(orig)
            val = _coerce(orig)
            if isinstance(val, list):
                pending = ("list", val, len(val))
            elif isinstance(val, Bag):
                pending = ("bag", val.items, len(val))
            elif isinstance(val, Map):
                pending = ("map", val.keys() + val.values(), len(val))
            else:
                self._by_identity[oid] = self._intern(self._scalar_key(val))
                continue

            active.add(oid)
            stack.append((orig, depth, pending))
            for child in reversed(pending[1]):
                if id(child) in active:
                    raise EncodeError(ERR_ENCODE, "value contains itself")
                if id(child) not in self._by_identity:
                    stack.append((child, depth + 1, None))

        return self._by_identity[id(root)]


def _refs(ids: Tuple[int, ...], ref_width: int) -> bytes:
    return b"".join(i.to_bytes(ref_width, "big") for i in ids)


def _serialize(key: Tuple[Any, ...], ref_width: int) -> bytes:
    kind = key[0]
    if kind == "null":
        return _tag(KIND_SIMPLE, SIMPLE_NULL)
    if kind == "bool":
        return _tag(KIND_SIMPLE, SIMPLE_TRUE if key[1] else SIMPLE_FALSE)
    if kind == "int":
        return _int_object(key[1])
    if kind == "real":
        return _tag(KIND_REAL, 3 if key[1] == 8 else 2) + key[2]
    if kind == "date":
        return _tag(KIND_DATE, DATE_INFO) + key[1]
    if kind == "data":
        return _sized_header(KIND_DATA, len(key[1])) + key[1]
    if kind == "text":
        text = key[1]
        if text.isascii():
            return _sized_header(KIND_ASCII, len(text)) + text.encode("ascii")
        try:
            raw = text.encode("utf-16-be")
        except UnicodeEncodeError:
            raise EncodeError(ERR_ENCODE, "string is not encodable as UTF-16")
        # Length in UTF-16 code units, not characters.
        return _sized_header(KIND_UTF16, len(raw) // 2) + raw
    if kind == "uid":
        return _tag(KIND_UID, len(key[1]) - 1) + key[1]

    count, ids = key[1], key[2]
    if kind == "list":
        return _sized_header(KIND_ARRAY, count) + _refs(ids, ref_width)
    if kind == "bag":
        return _sized_header(KIND_SET, count) + _refs(ids, ref_width)
    # Map: all key refs, then all value refs.
    return _sized_header(KIND_DICT, count) + _refs(ids, ref_width)


def encode_value(value: Any, *, max_bytes: Optional[int] = None,
                 max_depth: int = MAX_DEPTH) -> bytes:
    """Serialize a value tree into a complete binary plist."""
    flat = _Flattener(max_depth)
    root = flat.flatten(value)
    count = len(flat.objects)
    ref_width = _field_width(count - 1)

    parts: List[bytes] = [HEADER]
    offsets: List[int] = []
    pos = len(HEADER)
    for key in flat.objects:
        blob = _serialize(key, ref_width)
        offsets.append(pos)
        parts.append(blob)
        pos += len(blob)

    table_pos = pos
    offset_width = _field_width(offsets[-1])
    parts.extend(off.to_bytes(offset_width, "big") for off in offsets)
    parts.append(struct.pack(TRAILER_FORMAT, offset_width, ref_width,
                             count, root, table_pos))
    out = b"".join(parts)

    if max_bytes is not None and len(out) > max_bytes:
        raise EncodeError(ERR_LIMIT_SIZE,
                          "encoded size {} exceeds budget of {}".format(len(out), max_bytes))
    _log.debug("encoded %d objects into %d bytes (offset width %d, ref width %d)",
               count, len(out), offset_width, ref_width)
    return out
