"""
Errors raised while decoding RDB data.

Every error carries the byte offset where decoding stopped (when known) so
callers can report a precise location instead of a bare traceback.
"""


class RDBError(Exception):
    """Base class for every decoding failure"""

    def __init__(self, message, offset=None):
        super().__init__(message)
        self.message = message
        self.offset = offset

    def __str__(self):
        if self.offset is None:
            return self.message
        return f"{self.message} (at byte {self.offset})"


class RDBIOError(RDBError):
    """The underlying byte source failed to read"""


class FormatError(RDBError):
    """Bad magic string or unsupported RDB version"""


class ParseError(RDBError):
    """Malformed length, opcode or structure"""


class UnexpectedEOF(ParseError, EOFError):
    """The source ended before a read could be satisfied"""


class UnsupportedEncodingError(RDBError):
    """The value uses a type or encoding this decoder does not implement"""

    def __init__(self, type_id, encoding, offset=None, message=None):
        if message is None:
            message = f"Unsupported encoding {encoding!r} for type {type_id}"
        super().__init__(message, offset)
        self.type_id = type_id
        self.encoding = encoding


class DecompressionError(RDBError):
    """An LZF payload could not be expanded to its declared length"""


class ChecksumError(RDBError):
    """The CRC64 footer does not match the data"""

    def __init__(self, expected, actual, offset=None):
        super().__init__(
            f"Checksum mismatch: footer 0x{expected:016x}, computed 0x{actual:016x}",
            offset,
        )
        self.expected = expected
        self.actual = actual


class ResourceLimitExceeded(RDBError):
    """A configured size or entry limit would be exceeded"""


class Cancelled(RDBError):
    """The parse was cancelled by the caller"""
