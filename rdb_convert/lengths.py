"""
Length prefixes and the strings and doubles built on them.

The first byte of a length prefix selects its shape by its two top bits::

    00xxxxxx             6-bit length
    01xxxxxx xxxxxxxx    14-bit length
    10000000 + 4 bytes   32-bit length (big-endian)
    10000001 + 8 bytes   64-bit length (big-endian)
    11xxxxxx             special encoding, low 6 bits select it
"""

from . import compression
from .errors import ParseError

RDB_6BITLEN = 0
RDB_14BITLEN = 1
RDB_32BITLEN = 0x80
RDB_64BITLEN = 0x81
RDB_ENCVAL = 3

# Special encodings (11xxxxxx)
RDB_ENC_INT8 = 0
RDB_ENC_INT16 = 1
RDB_ENC_INT32 = 2
RDB_ENC_LZF = 3

# Legacy ASCII doubles use these lengths as markers
R_NAN = 253
R_POS_INF = 254
R_NEG_INF = 255


def read_length_with_encoding(cursor):
    """Read a length prefix and return (value, is_encoded)"""
    offset = cursor.position
    byte = cursor.read_byte()
    enc_type = (byte & 0xC0) >> 6

    if enc_type == RDB_ENCVAL:
        return byte & 0x3F, True
    elif enc_type == RDB_6BITLEN:
        return byte & 0x3F, False
    elif enc_type == RDB_14BITLEN:
        return ((byte & 0x3F) << 8) | cursor.read_byte(), False
    elif byte == RDB_32BITLEN:
        return cursor.read_unsigned_int_be(), False
    elif byte == RDB_64BITLEN:
        return cursor.read_unsigned_long_be(), False
    raise ParseError(f"Unknown length encoding: 0x{byte:02x}", offset)


def read_length(cursor):
    """Read a plain length, rejecting special encodings"""
    offset = cursor.position
    length, is_encoded = read_length_with_encoding(cursor)
    if is_encoded:
        raise ParseError(f"Unexpected encoded value {length} in length", offset)
    return length


def read_string_encoded(cursor, budget=None):
    """Read a string and return (bytes, encoding name)"""
    offset = cursor.position
    length, is_encoded = read_length_with_encoding(cursor)

    if not is_encoded:
        if budget is not None:
            budget.charge(length, offset)
        return cursor.read_exact(length), "raw"

    if length == RDB_ENC_INT8:
        value = cursor.read_signed_byte()
    elif length == RDB_ENC_INT16:
        value = cursor.read_signed_short()
    elif length == RDB_ENC_INT32:
        value = cursor.read_signed_int()
    elif length == RDB_ENC_LZF:
        return _read_lzf_string(cursor, budget, offset), "lzf"
    else:
        raise ParseError(f"Unknown string encoding {length}", offset)

    data = str(value).encode('ascii')
    if budget is not None:
        budget.charge(len(data), offset)
    return data, "int"


def _read_lzf_string(cursor, budget, offset):
    compressed_len = read_length(cursor)
    uncompressed_len = read_length(cursor)
    if budget is not None:
        budget.check(compressed_len, offset)
        budget.charge(uncompressed_len, offset)
    compressed = cursor.read_exact(compressed_len)
    return compression.decompress(compressed, uncompressed_len, offset)


def read_string(cursor, budget=None):
    return read_string_encoded(cursor, budget)[0]


def read_double_string(cursor):
    """Read a legacy double stored as a one-byte length and ASCII digits"""
    offset = cursor.position
    length = cursor.read_byte()
    if length == R_NEG_INF:
        return float('-inf')
    elif length == R_POS_INF:
        return float('inf')
    elif length == R_NAN:
        return float('nan')
    data = cursor.read_exact(length)
    try:
        return float(data.decode('ascii'))
    except (UnicodeDecodeError, ValueError):
        raise ParseError(f"Invalid double {data!r}", offset) from None
