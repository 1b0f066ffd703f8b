"""Binary property list constants: header, trailer layout, tag kinds, limits.

The layout below is the "bplist00" family.  Every multi-byte field is
big-endian.  The version digits after the magic are accepted but never
change how the fields covered here are read.
"""

from __future__ import annotations

# 6-byte magic followed by two ASCII version digits ("00" for every file
# this package writes).
MAGIC = b"bplist"
VERSION = b"00"
HEADER = MAGIC + VERSION
HEADER_LEN: int = 8

# ── Trailer (last 32 bytes) ──────────────────────────────────
# 6 reserved bytes, offset_width (u8), ref_width (u8), object_count (u64),
# root_index (u64), offset_table_position (u64).
TRAILER_LEN: int = 32
TRAILER_FORMAT = ">6xBBQQQ"
MIN_BUFFER_LEN: int = HEADER_LEN + TRAILER_LEN

# ── Tag kinds (high nibble of the tag byte) ──────────────────
KIND_SIMPLE: int = 0x0
KIND_INT: int = 0x1
KIND_REAL: int = 0x2
KIND_DATE: int = 0x3
KIND_DATA: int = 0x4
KIND_ASCII: int = 0x5
KIND_UTF16: int = 0x6
KIND_UID: int = 0x8
KIND_ARRAY: int = 0xA
KIND_SET: int = 0xC
KIND_DICT: int = 0xD

# Low-nibble values for KIND_SIMPLE.
SIMPLE_NULL: int = 0x0
SIMPLE_FALSE: int = 0x8
SIMPLE_TRUE: int = 0x9
SIMPLE_FILL: int = 0xF

# Low nibble meaning "the length follows as an embedded integer object".
EXTENDED_LENGTH: int = 0xF

# A timestamp is always an 8-byte double, tag 0x33.
DATE_INFO: int = 0x3

# ── Reference epoch ──────────────────────────────────────────
# Timestamps count seconds from 2001-01-01T00:00:00Z, not the UNIX epoch.
EPOCH_OFFSET: float = 978307200.0

# ── Decode strictness ────────────────────────────────────────
# STRICT fails on an unknown tag; LENIENT logs it and yields None.
STRICT: str = "strict"
LENIENT: str = "lenient"
STRICTNESS_MODES = (STRICT, LENIENT)

# ── Safety limits ────────────────────────────────────────────
# DEFAULT_MAX_BYTES bounds both the input buffer and every single
# allocation sized by a decoded length.  Callers may raise or lower it.
DEFAULT_MAX_BYTES: int = 64 * 1024 * 1024
MAX_DEPTH: int = 4096
MAX_UID_BYTES: int = 16

# Widths the encoder picks from for offsets and object references.
FIELD_WIDTHS = (1, 2, 4, 8)

# How many objects the decoder visits between timeout/cancel checks.
CANCEL_CHECK_INTERVAL: int = 256
