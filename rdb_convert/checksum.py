"""
CRC64 checksum as written at the end of RDB files and DUMP payloads.

Redis uses the Jones polynomial in its reflected form with a zero initial
value and no final XOR, so ``crc64(b"123456789") == 0xe9c6d914c4b8d9ca``.
"""

import logging

import crcmod

from .errors import ChecksumError

logger = logging.getLogger(__name__)

CRC64_JONES_POLY = 0x1AD93D23594C935A9

_crc64 = crcmod.mkCrcFun(CRC64_JONES_POLY, initCrc=0, rev=True, xorOut=0)


def crc64(data, crc=0):
    """CRC64 of a whole buffer, optionally continuing from a previous value"""
    return _crc64(data, crc)


class ChecksumValidator:
    """Running CRC64 over every byte consumed by a ByteCursor"""

    def __init__(self):
        self._crc = crcmod.Crc(CRC64_JONES_POLY, initCrc=0, rev=True, xorOut=0)

    def update(self, data):
        self._crc.update(data)

    @property
    def value(self):
        return self._crc.crcValue

    def verify(self, footer, computed=None, strict=True, offset=None):
        """
        Compare an 8-byte little-endian footer with the running value.

        Returns None when the footer is zero (the writer had checksums
        disabled), True on a match, False on a mismatch in lenient mode.
        """
        if computed is None:
            computed = self.value
        expected = int.from_bytes(footer, 'little')
        if expected == 0:
            logger.debug("Checksum disabled in file")
            return None
        if expected == computed:
            logger.debug("Checksum: %016x (valid)", computed)
            return True
        if strict:
            raise ChecksumError(expected, computed, offset)
        logger.warning("Checksum mismatch: footer %016x, computed %016x", expected, computed)
        return False
