"""Error codes and the exception hierarchy for the binary plist codec.

Every failure is a PlistError carrying a stable ``.code`` string plus,
where known, the byte ``.offset`` and object ``.index`` it concerns.
Decode failures share the DecodeError base so callers can catch the whole
decode surface with one clause:

    DecodeError
        FormatError             malformed bytes (magic, trailer, offsets, tags)
        UnsupportedTagError     well-formed but unknown tag (STRICT mode only)
        ResourceError           a length or depth over the configured budget
        DanglingReferenceError  an object reference >= object_count
        DecodeCancelled         timeout elapsed or cancel token set
    EncodeError                 a value the encoder cannot represent
"""

from __future__ import annotations

from typing import Optional

# ── Error codes ──────────────────────────────────────────────
# Grep-friendly; tests and the conformance vectors compare against these.

ERR_BAD_MAGIC: str = "ERR_BAD_MAGIC"              # header is not bplistNN
ERR_TRUNCATED: str = "ERR_TRUNCATED"              # buffer or payload too short
ERR_BAD_TRAILER: str = "ERR_BAD_TRAILER"          # zero-width trailer fields
ERR_BAD_OFFSET: str = "ERR_BAD_OFFSET"            # offset outside the buffer
ERR_BAD_LENGTH: str = "ERR_BAD_LENGTH"            # malformed extended length
ERR_BAD_TAG: str = "ERR_BAD_TAG"                  # tag invalid for its payload
ERR_CYCLE: str = "ERR_CYCLE"                      # object reaches its ancestor
ERR_UNSUPPORTED_TAG: str = "ERR_UNSUPPORTED_TAG"  # unknown kind or simple value
ERR_LIMIT_SIZE: str = "ERR_LIMIT_SIZE"            # exceeds max_bytes
ERR_LIMIT_DEPTH: str = "ERR_LIMIT_DEPTH"          # exceeds max_depth
ERR_REFERENCE: str = "ERR_REFERENCE"              # index >= object_count
ERR_CANCELLED: str = "ERR_CANCELLED"              # timeout or cancel token
ERR_ENCODE: str = "ERR_ENCODE"                    # value not encodable


class PlistError(Exception):
    """Base exception for binary plist processing errors.

    ``code`` is one of the ERR_* strings above.  ``offset`` and ``index``
    are the byte offset and object index the error concerns, or None.
    """

    default_code: str = ERR_BAD_TAG

    def __init__(self, code: Optional[str] = None, msg: str = "", *,
                 offset: Optional[int] = None,
                 index: Optional[int] = None) -> None:
        self.code = code or self.default_code
        self.offset = offset
        self.index = index
        super().__init__(self._describe(msg or self.code))

    def _describe(self, msg: str) -> str:
        where = []
        if self.index is not None:
            where.append("object {}".format(self.index))
        if self.offset is not None:
            where.append("offset {}".format(self.offset))
        if where:
            return "{} ({})".format(msg, ", ".join(where))
        return msg


class DecodeError(PlistError):
    """Any failure while decoding a binary plist."""


class FormatError(DecodeError):
    """The bytes are not a well-formed binary plist."""

    default_code = ERR_BAD_TAG


class UnsupportedTagError(DecodeError):
    """A syntactically valid tag byte with no known meaning."""

    default_code = ERR_UNSUPPORTED_TAG


class ResourceError(DecodeError):
    """Decoding would exceed the configured size or depth budget."""

    default_code = ERR_LIMIT_SIZE


class DanglingReferenceError(DecodeError):
    """An object or collection reference points past the offset table."""

    default_code = ERR_REFERENCE


class DecodeCancelled(DecodeError):
    """The timeout elapsed or the cancel token was set mid-decode."""

    default_code = ERR_CANCELLED


class EncodeError(PlistError):
    """The value tree cannot be written as a binary plist."""

    default_code = ERR_ENCODE
