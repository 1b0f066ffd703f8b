"""Value model for decoded binary plists.

Native Python types carry the variants that map onto them without loss:

    Null     -> None
    Boolean  -> bool
    Integer  -> int     (arbitrary precision)
    Data     -> bytes
    Text     -> str     (ASCII and UTF-16BE both decode to str)
    List     -> list

The remaining variants need their own small classes, because a native type
would drop information the wire format keeps: a Real remembers whether it
was a 4- or 8-byte float, a Timestamp is not a float, a UID is not bytes,
a Bag compares without order, and a Map keys on arbitrary values in
insertion order.
"""

from __future__ import annotations

import datetime
import math
import struct
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from ._constants import EPOCH_OFFSET, MAX_UID_BYTES

_REFERENCE_EPOCH = datetime.datetime(2001, 1, 1, tzinfo=datetime.timezone.utc)


class Real:
    """A floating-point value tagged with its wire width (4 or 8 bytes)."""

    __slots__ = ("value", "width")

    def __init__(self, value: float, width: int = 8) -> None:
        if width not in (4, 8):
            raise ValueError("Real width must be 4 or 8, got {}".format(width))
        value = float(value)
        if width == 4:
            # Only float32 values exist at this width.
            try:
                value = struct.unpack(">f", struct.pack(">f", value))[0]
            except OverflowError:
                raise ValueError("{!r} does not fit a 4-byte real".format(value))
        self.value = value
        self.width = width

    def __float__(self) -> float:
        return self.value

    def __eq__(self, other: Any) -> bool:
        return values_equal(self, other)

    def __hash__(self) -> int:
        # An 8-byte Real equals the plain float, so it must hash like one.
        if self.width == 8 and not math.isnan(self.value):
            return hash(self.value)
        return _float_hash((Real, self.width), self.value)

    def __repr__(self) -> str:
        return "Real({!r}, width={})".format(self.value, self.width)


class Timestamp:
    """Seconds relative to 2001-01-01T00:00:00Z."""

    __slots__ = ("seconds",)

    def __init__(self, seconds: float) -> None:
        self.seconds = float(seconds)

    @classmethod
    def from_datetime(cls, dt: datetime.datetime) -> "Timestamp":
        # Naive datetimes are taken as UTC.
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=datetime.timezone.utc)
        return cls((dt - _REFERENCE_EPOCH).total_seconds())

    @classmethod
    def from_unix(cls, seconds: float) -> "Timestamp":
        return cls(seconds - EPOCH_OFFSET)

    def to_unix(self) -> float:
        return self.seconds + EPOCH_OFFSET

    def to_datetime(self) -> datetime.datetime:
        return _REFERENCE_EPOCH + datetime.timedelta(seconds=self.seconds)

    def __eq__(self, other: Any) -> bool:
        return values_equal(self, other)

    def __hash__(self) -> int:
        return _float_hash(Timestamp, self.seconds)

    def __repr__(self) -> str:
        return "Timestamp({!r})".format(self.seconds)


class UID:
    """An opaque object identifier: 1 to 16 raw payload bytes."""

    __slots__ = ("data",)

    def __init__(self, data: Any) -> None:
        if isinstance(data, int) and not isinstance(data, bool):
            if data < 0:
                raise ValueError("UID from int must be non-negative")
            data = data.to_bytes(max(1, (data.bit_length() + 7) // 8), "big")
        data = bytes(data)
        if not 1 <= len(data) <= MAX_UID_BYTES:
            raise ValueError("UID payload must be 1..{} bytes, got {}".format(
                MAX_UID_BYTES, len(data)))
        self.data = data

    def __int__(self) -> int:
        return int.from_bytes(self.data, "big")

    def __eq__(self, other: Any) -> bool:
        return values_equal(self, other)

    def __hash__(self) -> int:
        return hash((UID, self.data))

    def __repr__(self) -> str:
        return "UID({})".format(self.data.hex())


class Bag:
    """An unordered multiset of values.

    Items are kept in wire order so re-encoding is stable, but equality
    ignores that order.
    """

    __slots__ = ("items",)

    def __init__(self, items: Iterable[Any] = ()) -> None:
        self.items: List[Any] = list(items)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __eq__(self, other: Any) -> bool:
        return values_equal(self, other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return "Bag({!r})".format(self.items)


class Map:
    """An ordered sequence of (key, value) pairs.

    Keys may be any value, not just strings, so lookups compare keys with
    values_equal() rather than hashing.  Lookups are linear; wrap the
    result in dict(m.items()) when keys are hashable and lookups are hot.
    """

    __slots__ = ("pairs",)

    def __init__(self, pairs: Iterable[Tuple[Any, Any]] = ()) -> None:
        if isinstance(pairs, dict):
            pairs = pairs.items()
        self.pairs: List[Tuple[Any, Any]] = [(k, v) for k, v in pairs]

    def __len__(self) -> int:
        return len(self.pairs)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.keys())

    def keys(self) -> List[Any]:
        return [k for k, _ in self.pairs]

    def values(self) -> List[Any]:
        return [v for _, v in self.pairs]

    def items(self) -> List[Tuple[Any, Any]]:
        return list(self.pairs)

    def _find(self, key: Any) -> Optional[int]:
        for pos, (k, _) in enumerate(self.pairs):
            if values_equal(k, key):
                return pos
        return None

    def get(self, key: Any, default: Any = None) -> Any:
        pos = self._find(key)
        return default if pos is None else self.pairs[pos][1]

    def __getitem__(self, key: Any) -> Any:
        pos = self._find(key)
        if pos is None:
            raise KeyError(key)
        return self.pairs[pos][1]

    def __contains__(self, key: Any) -> bool:
        return self._find(key) is not None

    def __eq__(self, other: Any) -> bool:
        return values_equal(self, other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return "Map({!r})".format(self.pairs)


# ── Structural equality ──────────────────────────────────────
# Both sides are reduced to class ids: scalars intern on a normalized key,
# collections on the ids of their children (sorted for a bag).  Equal ids
# mean equal values.  The walk is iterative and memoized on object
# identity, so a 1000-deep tree never touches the recursion limit and a
# diamond-shared subtree is visited once.

def _float_key(x: float) -> Any:
    # NaN equals NaN here; 0.0 and -0.0 already compare and hash alike.
    return "nan" if math.isnan(x) else x


def _float_hash(tag: Any, x: float) -> int:
    return hash((tag, "nan")) if math.isnan(x) else hash((tag, x))


def _as_real(v: Any) -> Optional[Real]:
    if isinstance(v, Real):
        return v
    if isinstance(v, float):
        return Real(v, 8)
    return None


def _scalar_key(v: Any) -> Tuple[Any, ...]:
    if v is None:
        return ("null",)
    # bool before int: isinstance(True, int) is True.
    if isinstance(v, bool):
        return ("bool", v)
    if isinstance(v, int):
        return ("int", v)
    real = _as_real(v)
    if real is not None:
        return ("real", real.width, _float_key(real.value))
    if isinstance(v, Timestamp):
        return ("date", _float_key(v.seconds))
    if isinstance(v, (bytes, bytearray)):
        return ("data", bytes(v))
    if isinstance(v, str):
        return ("text", v)
    if isinstance(v, UID):
        return ("uid", v.data)
    # Outside the value model: only equal to itself.
    return ("object", id(v))


def _shape(v: Any) -> Optional[Tuple[str, List[Any]]]:
    """(kind, children) for a collection, None for a scalar."""
    if isinstance(v, (list, tuple)):
        return "list", list(v)
    if isinstance(v, (Bag, set, frozenset)):
        return "bag", list(v)
    if isinstance(v, (Map, dict)):
        pairs = list(v.items())
        return "map", [k for k, _ in pairs] + [x for _, x in pairs]
    return None


class _Classifier:
    """Assigns class ids; one instance is shared by both sides of a comparison."""

    def __init__(self) -> None:
        self._classes: Dict[Tuple[Any, ...], int] = {}
        self._memo: Dict[int, int] = {}

    def _intern(self, key: Tuple[Any, ...]) -> int:
        return self._classes.setdefault(key, len(self._classes))

    def classify(self, root: Any) -> int:
        memo = self._memo
        stack: List[Tuple[Any, Optional[Tuple[str, List[Any]]]]] = [(root, None)]
        active: Set[int] = set()
        while stack:
            v, shape = stack.pop()
            vid = id(v)
            if shape is not None:
                kind, children = shape
                ids = [memo[id(c)] for c in children]
                if kind == "bag":
                    ids.sort()
                memo[vid] = self._intern((kind, tuple(ids)))
                active.discard(vid)
                continue
            if vid in memo:
                continue
            shape = _shape(v)
            if shape is None:
                memo[vid] = self._intern(_scalar_key(v))
                continue
            if vid in active:
                raise ValueError("cannot compare a value that contains itself")
            active.add(vid)
            stack.append((v, shape))
            for child in shape[1]:
                if id(child) not in memo:
                    stack.append((child, None))
        return memo[id(root)]


def values_equal(a: Any, b: Any) -> bool:
    """Structural equality over the value model.

    Order-sensitive for lists and maps, order-insensitive for bags.
    Booleans never equal integers, and a plain float equals an 8-byte Real.
    dict and tuple compare as Map and list; set compares as Bag.  Raises
    ValueError for a self-containing collection.
    """
    if a is b:
        return True
    classifier = _Classifier()
    return classifier.classify(a) == classifier.classify(b)


# ── Printing ─────────────────────────────────────────────────

def _scalar_repr(v: Any) -> str:
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, int):
        return str(v)
    if isinstance(v, float):
        return "real {!r}".format(v)
    if isinstance(v, Real):
        return "real{} {!r}".format(v.width * 8, v.value)
    if isinstance(v, Timestamp):
        try:
            return "date {}".format(v.to_datetime().isoformat())
        except OverflowError:
            return "date {!r}s".format(v.seconds)
    if isinstance(v, (bytes, bytearray)):
        return "data <{}>".format(bytes(v).hex())
    if isinstance(v, str):
        return '"{}"'.format(v.replace("\\", "\\\\").replace('"', '\\"'))
    if isinstance(v, UID):
        return "uid {}".format(v.data.hex())
    return repr(v)


def format_value(value: Any, indent: str = "  ") -> str:
    """Return an indented, human-readable rendering of a value tree."""
    out: List[str] = []
    # Work items are literal text or (value, level) pairs, popped in order.
    stack: List[Any] = [(value, 0)]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            out.append(item)
            continue
        v, level = item
        prefix = "\n" + indent * (level + 1)
        todo: List[Any] = []
        if isinstance(v, (Map, dict)):
            out.append("map ({})".format(len(v)))
            for k, x in v.items():
                todo += [prefix, (k, level + 1), " = ", (x, level + 1)]
        elif isinstance(v, (list, tuple, Bag, set, frozenset)):
            name = "list" if isinstance(v, (list, tuple)) else "bag"
            out.append("{} ({})".format(name, len(v)))
            for x in v:
                todo += [prefix, (x, level + 1)]
        else:
            out.append(_scalar_repr(v))
        stack.extend(reversed(todo))
    return "".join(out)
