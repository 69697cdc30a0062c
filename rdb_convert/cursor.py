"""Forward-only byte reader used by every decoder"""

import io
import os
import struct

from .errors import ParseError, RDBIOError, UnexpectedEOF


class ByteCursor:
    """
    Sequential reader over bytes or a binary file object.

    Every byte handed out is first passed to ``observer`` (the running
    checksum), so the checksum covers exactly what the decoders consumed.
    """

    CHUNK_SIZE = 64 * 1024

    def __init__(self, source, observer=None):
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = io.BytesIO(bytes(source))
        elif not hasattr(source, "read"):
            raise TypeError(f"Expected bytes or a readable binary object, got {type(source).__name__}")
        self.file = source
        self.observer = observer
        self._position = 0
        self._peeked = b""
        self._size = self._detect_size(source)

    @staticmethod
    def _detect_size(source):
        """Return the number of unread bytes in a seekable source, else None"""
        if isinstance(source, io.BytesIO):
            return source.getbuffer().nbytes - source.tell()
        try:
            if not source.seekable():
                return None
            return os.fstat(source.fileno()).st_size - source.tell()
        except (AttributeError, OSError, ValueError, io.UnsupportedOperation):
            return None

    @property
    def position(self):
        return self._position

    def remaining(self):
        """Bytes left in the source, or None when the source size is unknown"""
        if self._size is None:
            return None
        return self._size - self._position

    def _read_source(self, n):
        try:
            return self.file.read(n)
        except OSError as e:
            raise RDBIOError(f"Read failed: {e}", self._position) from e

    def peek_byte(self):
        if not self._peeked:
            self._peeked = self._read_source(1)
            if not self._peeked:
                raise UnexpectedEOF("Unexpected end of file", self._position)
        return self._peeked[0]

    def read_exact(self, n):
        if n < 0:
            raise ParseError(f"Negative read length {n}", self._position)
        remaining = self.remaining()
        if remaining is not None and n > remaining:
            raise UnexpectedEOF(f"Expected {n} bytes, only {remaining} left", self._position)

        chunks = []
        needed = n
        if needed and self._peeked:
            chunks.append(self._peeked)
            self._peeked = b""
            needed -= 1
        while needed:
            chunk = self._read_source(min(needed, self.CHUNK_SIZE))
            if not chunk:
                raise UnexpectedEOF(f"Expected {n} bytes, got {n - needed}", self._position)
            chunks.append(chunk)
            needed -= len(chunk)

        data = b"".join(chunks)
        self._position += n
        if self.observer is not None:
            self.observer(data)
        return data

    def read_byte(self):
        return self.read_exact(1)[0]

    def read_signed_byte(self):
        return struct.unpack('b', self.read_exact(1))[0]

    def read_signed_short(self):
        return struct.unpack('<h', self.read_exact(2))[0]

    def read_signed_int(self):
        return struct.unpack('<i', self.read_exact(4))[0]

    def read_unsigned_int(self):
        return struct.unpack('<I', self.read_exact(4))[0]

    def read_unsigned_int_be(self):
        return struct.unpack('>I', self.read_exact(4))[0]

    def read_signed_long(self):
        return struct.unpack('<q', self.read_exact(8))[0]

    def read_unsigned_long(self):
        return struct.unpack('<Q', self.read_exact(8))[0]

    def read_unsigned_long_be(self):
        return struct.unpack('>Q', self.read_exact(8))[0]

    def read_binary_float(self):
        return struct.unpack('<f', self.read_exact(4))[0]

    def read_binary_double(self):
        return struct.unpack('<d', self.read_exact(8))[0]
