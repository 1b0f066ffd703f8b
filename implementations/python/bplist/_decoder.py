"""Binary plist decoder.

Decoding runs in three steps:

    1. parse_trailer()       header + the four format parameters
    2. load_offset_table()   object index -> byte offset
    3. _Decoder.run()        decode the root object and everything it reaches

Step 3 walks the object graph with an explicit work stack rather than
Python recursion, so adversarially deep inputs fail with ERR_LIMIT_DEPTH
at ``max_depth`` instead of RecursionError at the interpreter limit.

Each object index is decoded at most once.  The cache maps index -> value,
so diamond sharing (one index under many parents) costs linear time and
every parent gets the same Python object.  An index that is still being
assembled is "active"; reaching an active index again means the object
contains itself, which is ERR_CYCLE.

Every length read from the wire is checked against ``max_bytes`` before
anything sized by it is sliced or built, then bounds-checked against the
buffer.  The budget check comes first so that a forged 2**40 length is a
ResourceError, not a truncation.
"""

from __future__ import annotations

import logging
import struct
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from ._constants import (
    CANCEL_CHECK_INTERVAL,
    DATE_INFO,
    EXTENDED_LENGTH,
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
    LENIENT,
    SIMPLE_FALSE,
    SIMPLE_FILL,
    SIMPLE_NULL,
    SIMPLE_TRUE,
    STRICT,
)
from ._errors import (
    ERR_BAD_LENGTH,
    ERR_BAD_OFFSET,
    ERR_BAD_TAG,
    ERR_CYCLE,
    ERR_LIMIT_DEPTH,
    ERR_LIMIT_SIZE,
    DanglingReferenceError,
    DecodeCancelled,
    FormatError,
    ResourceError,
    UnsupportedTagError,
)
from ._model import UID, Bag, Map, Real, Timestamp
from ._reader import (
    Trailer,
    byte_at,
    load_offset_table,
    parse_trailer,
    read_sint,
    read_uint,
    take,
)

_log = logging.getLogger(__name__)


class _Pending:
    """A collection whose header is read but whose children are not."""

    __slots__ = ("kind", "refs", "count")

    def __init__(self, kind: int, refs: List[int], count: int) -> None:
        self.kind = kind
        self.refs = refs
        self.count = count


class _Decoder:
    def __init__(self, buf: bytes, trailer: Trailer, offsets: List[int], *,
                 strictness: str, max_bytes: int, max_depth: int,
                 timeout: Optional[float], cancel: Any) -> None:
        self._buf = buf
        self._trailer = trailer
        self._offsets = offsets
        self._strict = strictness == STRICT
        self._max_bytes = max_bytes
        self._max_depth = max_depth
        self._deadline = None if timeout is None else time.monotonic() + timeout
        self._cancel = cancel

    # ── Budget and cancellation ──────────────────────────────

    def _budget(self, nbytes: int, what: str, index: int, offset: int) -> None:
        if nbytes > self._max_bytes:
            raise ResourceError(
                ERR_LIMIT_SIZE,
                "{} needs {} bytes, budget is {}".format(what, nbytes, self._max_bytes),
                offset=offset, index=index)

    def _check_cancel(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise DecodeCancelled(msg="decode cancelled")
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise DecodeCancelled(msg="decode timed out")

    # ── Object headers ───────────────────────────────────────

    def _length(self, off: int, info: int, index: int) -> Tuple[int, int]:
        """Return (length, payload_offset) for a length-bearing tag at ``off``.

        A low nibble below 0xF is the length itself.  0xF means an integer
        object follows the tag and holds the real length, unsigned.
        """
        if info != EXTENDED_LENGTH:
            return info, off + 1
        pos = off + 1
        int_tag = byte_at(self._buf, pos, "extended length tag")
        if int_tag >> 4 != KIND_INT:
            raise FormatError(ERR_BAD_LENGTH,
                              "extended length tag 0x{:02x} is not an integer".format(int_tag),
                              offset=pos, index=index)
        width = 1 << (int_tag & 0x0F)
        self._budget(width, "extended length field", index, pos)
        length = read_uint(self._buf, pos + 1, width, "extended length")
        return length, pos + 1 + width

    def _refs(self, start: int, count: int, index: int) -> List[int]:
        width = self._trailer.ref_width
        self._budget(count * width, "object reference table", index, start)
        take(self._buf, start, count * width, "object references")
        refs = [read_uint(self._buf, start + i * width, width, "object reference")
                for i in range(count)]
        limit = self._trailer.object_count
        for ref in refs:
            if ref >= limit:
                raise DanglingReferenceError(
                    msg="reference to object {} >= object count {}".format(ref, limit),
                    offset=start, index=index)
        return refs

    def _unsupported(self, tag: int, index: int, off: int) -> None:
        if self._strict:
            raise UnsupportedTagError(msg="unknown tag 0x{:02x}".format(tag),
                                      offset=off, index=index)
        _log.warning("unknown tag 0x%02x for object %d at offset %d, using null",
                     tag, index, off)
        return None

    def _read_object(self, index: int) -> Any:
        """Decode a scalar, or return a _Pending for a collection."""
        off = self._offsets[index]
        buf = self._buf
        if off >= len(buf):
            raise FormatError(ERR_BAD_OFFSET,
                              "object offset {} outside buffer of {} bytes"
                              .format(off, len(buf)),
                              offset=off, index=index)
        tag = buf[off]
        kind = tag >> 4
        info = tag & 0x0F

        if kind == KIND_SIMPLE:
            if info == SIMPLE_NULL or info == SIMPLE_FILL:
                return None
            if info == SIMPLE_FALSE:
                return False
            if info == SIMPLE_TRUE:
                return True
            return self._unsupported(tag, index, off)

        if kind == KIND_INT:
            width = 1 << info
            self._budget(width, "integer", index, off)
            return read_sint(buf, off + 1, width)

        if kind == KIND_REAL:
            width = 1 << info
            if width == 8:
                return Real(struct.unpack(">d", take(buf, off + 1, 8, "real"))[0], 8)
            if width == 4:
                return Real(struct.unpack(">f", take(buf, off + 1, 4, "real"))[0], 4)
            raise FormatError(ERR_BAD_TAG,
                              "real of {} bytes (expected 4 or 8)".format(width),
                              offset=off, index=index)

        if kind == KIND_DATE:
            if info != DATE_INFO:
                _log.warning("timestamp tag 0x%02x for object %d at offset %d, "
                             "reading 8-byte double anyway", tag, index, off)
            return Timestamp(struct.unpack(">d", take(buf, off + 1, 8, "timestamp"))[0])

        if kind == KIND_DATA:
            length, start = self._length(off, info, index)
            self._budget(length, "data", index, off)
            return bytes(take(buf, start, length, "data"))

        if kind == KIND_ASCII:
            length, start = self._length(off, info, index)
            self._budget(length, "ascii string", index, off)
            raw = take(buf, start, length, "ascii string")
            try:
                return raw.decode("ascii")
            except UnicodeDecodeError:
                raise FormatError(ERR_BAD_TAG, "non-ASCII byte in ASCII string",
                                  offset=start, index=index)

        if kind == KIND_UTF16:
            # The length counts UTF-16 code units; each is two bytes.
            length, start = self._length(off, info, index)
            nbytes = length * 2
            self._budget(nbytes, "utf-16 string", index, off)
            raw = take(buf, start, nbytes, "utf-16 string")
            try:
                return raw.decode("utf-16-be")
            except UnicodeDecodeError:
                raise FormatError(ERR_BAD_TAG, "invalid UTF-16BE string",
                                  offset=start, index=index)

        if kind == KIND_UID:
            # info + 1 bytes, not a power of two.
            return UID(take(buf, off + 1, info + 1, "uid"))

        if kind == KIND_ARRAY or kind == KIND_SET:
            count, start = self._length(off, info, index)
            return _Pending(kind, self._refs(start, count, index), count)

        if kind == KIND_DICT:
            # count key refs, then count value refs: two parallel arrays.
            count, start = self._length(off, info, index)
            return _Pending(kind, self._refs(start, 2 * count, index), count)

        return self._unsupported(tag, index, off)

    @staticmethod
    def _assemble(node: _Pending, cache: Dict[int, Any]) -> Any:
        children = [cache[ref] for ref in node.refs]
        if node.kind == KIND_ARRAY:
            return children
        if node.kind == KIND_SET:
            return Bag(children)
        return Map(zip(children[:node.count], children[node.count:]))

    # ── Graph walk ───────────────────────────────────────────

    def run(self) -> Any:
        root = self._trailer.root_index
        cache: Dict[int, Any] = {}
        active: Set[int] = set()
        # (index, depth, pending): pending is None on the way down and the
        # collection header on the way back up.
        stack: List[Tuple[int, int, Optional[_Pending]]] = [(root, 1, None)]
        steps = 0

        while stack:
            index, depth, pending = stack.pop()
            if pending is not None:
                cache[index] = self._assemble(pending, cache)
                active.discard(index)
                continue
            if index in cache:
                continue

            if steps % CANCEL_CHECK_INTERVAL == 0:
                self._check_cancel()
            steps += 1
            if depth > self._max_depth:
                raise ResourceError(ERR_LIMIT_DEPTH,
                                    "nesting exceeds max depth {}".format(self._max_depth),
                                    offset=self._offsets[index], index=index)

            node = self._read_object(index)
            if not isinstance(node, _Pending):
                cache[index] = node
                continue

            active.add(index)
            stack.append((index, depth, node))
            # Reversed so children are decoded in wire order.
            for ref in reversed(node.refs):
                if ref in active:
                    raise FormatError(ERR_CYCLE,
                                      "object {} contains its ancestor {}".format(index, ref),
                                      offset=self._offsets[index], index=index)
                if ref not in cache:
                    stack.append((ref, depth + 1, None))

        return cache[root]


def decode_buffer(buf: bytes, *, strictness: str, max_bytes: int, max_depth: int,
                  timeout: Optional[float] = None, cancel: Any = None) -> Any:
    """Decode a complete binary plist held in ``buf``."""
    if strictness not in (STRICT, LENIENT):
        raise ValueError("strictness must be {!r} or {!r}, got {!r}".format(
            STRICT, LENIENT, strictness))
    if len(buf) > max_bytes:
        raise ResourceError(ERR_LIMIT_SIZE,
                            "input of {} bytes exceeds budget of {}".format(
                                len(buf), max_bytes))
    trailer = parse_trailer(buf)
    offsets = load_offset_table(buf, trailer)
    _log.debug("decoding %d objects (offset width %d, ref width %d, root %d)",
               trailer.object_count, trailer.offset_width, trailer.ref_width,
               trailer.root_index)
    decoder = _Decoder(buf, trailer, offsets, strictness=strictness,
                       max_bytes=max_bytes, max_depth=max_depth,
                       timeout=timeout, cancel=cancel)
    return decoder.run()
