"""
Compact encodings stored as a single string inside the RDB stream.

Ziplists, listpacks, intsets and zipmaps are read from the file as one blob,
then walked here. Entries come back as Python ints (integer encodings) or
bytes (string encodings). ``offset`` is the file position of the blob and is
only used to report where a malformed entry sits.
"""

import struct

from .errors import ParseError

ZIPLIST_HEADER_SIZE = 10
ZIPLIST_END = 0xFF
ZIP_BIG_PREVLEN = 0xFE

# encoding byte -> (struct format, size)
ZIPLIST_INT_ENCODINGS = {
    0xC0: ('<h', 2),
    0xD0: ('<i', 4),
    0xE0: ('<q', 8),
    0xFE: ('<b', 1),
}
ZIP_INT_24B = 0xF0
ZIP_INT_IMM_MIN = 0xF1
ZIP_INT_IMM_MAX = 0xFD

LISTPACK_HEADER_SIZE = 6
LP_EOF = 0xFF
LP_HDR_NUMELE_UNKNOWN = 0xFFFF
LP_ENCODING_32BIT_STR = 0xF0
LP_ENCODING_24BIT_INT = 0xF2
LISTPACK_INT_ENCODINGS = {
    0xF1: ('<h', 2),
    0xF3: ('<i', 4),
    0xF4: ('<q', 8),
}

INTSET_ENCODINGS = {2: '<h', 4: '<i', 8: '<q'}

ZIPMAP_BIGLEN = 254
ZIPMAP_END = 255


def _need(data, pos, n, what, offset):
    if pos + n > len(data):
        raise ParseError(
            f"Truncated {what}: need {n} bytes at {pos}, blob has {len(data)}", offset + pos
        )


def entry_bytes(value):
    """Normalize a packed entry to a byte string"""
    if isinstance(value, int):
        return str(value).encode('ascii')
    return value


def entry_int(value, what, offset):
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except ValueError:
        raise ParseError(f"Expected integer {what}, got {value!r}", offset) from None


def entry_float(value, offset):
    if isinstance(value, int):
        return float(value)
    try:
        return float(value)
    except ValueError:
        raise ParseError(f"Invalid score {value!r}", offset) from None


def pairs(entries, what, offset):
    """Split a flat [k1, v1, k2, v2, ...] sequence into pairs"""
    if len(entries) % 2:
        raise ParseError(f"Odd number of entries ({len(entries)}) in {what}", offset)
    return list(zip(entries[0::2], entries[1::2]))


def parse_ziplist(data, offset=0):
    """Parse ziplist format"""
    _need(data, 0, ZIPLIST_HEADER_SIZE + 1, "ziplist header", offset)
    # zlbytes (4), zltail (4), zllen (2)
    zlbytes, _zltail, zllen = struct.unpack_from('<IIH', data, 0)
    if zlbytes != len(data):
        raise ParseError(f"Ziplist claims {zlbytes} bytes, blob has {len(data)}", offset)

    result = []
    pos = ZIPLIST_HEADER_SIZE
    while True:
        _need(data, pos, 1, "ziplist", offset)
        if data[pos] == ZIPLIST_END:
            break
        value, pos = _parse_ziplist_entry(data, pos, offset)
        result.append(value)

    if pos != len(data) - 1:
        raise ParseError("Ziplist end marker before end of blob", offset + pos)
    # zllen saturates at 65535, in which case the list has to be traversed
    if zllen != 0xFFFF and zllen != len(result):
        raise ParseError(f"Ziplist header says {zllen} entries, found {len(result)}", offset)
    return result


def _parse_ziplist_entry(data, pos, offset):
    """Parse a single ziplist entry, return (value, next position)"""
    # Previous entry length (1 or 5 bytes)
    if data[pos] == ZIP_BIG_PREVLEN:
        _need(data, pos, 5, "ziplist prevlen", offset)
        pos += 5
    else:
        pos += 1

    _need(data, pos, 1, "ziplist entry", offset)
    encoding = data[pos]
    pos += 1

    # String encodings (00, 01, 10 prefix)
    kind = encoding >> 6
    if kind < 3:
        if kind == 0:
            length = encoding & 0x3F
        elif kind == 1:
            _need(data, pos, 1, "ziplist string length", offset)
            length = ((encoding & 0x3F) << 8) | data[pos]
            pos += 1
        else:
            _need(data, pos, 4, "ziplist string length", offset)
            length = struct.unpack_from('>I', data, pos)[0]
            pos += 4
        _need(data, pos, length, "ziplist string", offset)
        return bytes(data[pos:pos + length]), pos + length

    # Integer encodings
    if encoding in ZIPLIST_INT_ENCODINGS:
        fmt, size = ZIPLIST_INT_ENCODINGS[encoding]
        _need(data, pos, size, "ziplist integer", offset)
        return struct.unpack_from(fmt, data, pos)[0], pos + size
    if encoding == ZIP_INT_24B:
        _need(data, pos, 3, "ziplist integer", offset)
        return int.from_bytes(data[pos:pos + 3], 'little', signed=True), pos + 3
    if ZIP_INT_IMM_MIN <= encoding <= ZIP_INT_IMM_MAX:
        # 4-bit immediate integer (1111xxxx), 0001 stands for 0
        return (encoding & 0x0F) - 1, pos

    raise ParseError(f"Unknown ziplist encoding: 0x{encoding:02x}", offset + pos - 1)


def parse_listpack(data, offset=0):
    """Parse listpack binary format"""
    _need(data, 0, LISTPACK_HEADER_SIZE + 1, "listpack header", offset)
    # Listpack header: total bytes (4), num elements (2)
    total_bytes, num_elements = struct.unpack_from('<IH', data, 0)
    if total_bytes != len(data):
        raise ParseError(f"Listpack claims {total_bytes} bytes, blob has {len(data)}", offset)

    result = []
    pos = LISTPACK_HEADER_SIZE
    while True:
        _need(data, pos, 1, "listpack", offset)
        if data[pos] == LP_EOF:
            break
        value, pos = _parse_listpack_entry(data, pos, offset)
        result.append(value)

    if pos != len(data) - 1:
        raise ParseError("Listpack end marker before end of blob", offset + pos)
    if num_elements != LP_HDR_NUMELE_UNKNOWN and num_elements != len(result):
        raise ParseError(
            f"Listpack header says {num_elements} entries, found {len(result)}", offset
        )
    return result


def _parse_listpack_entry(data, pos, offset):
    """
    Parse a single listpack entry: <encoding-type><element-data><element-tot-len>

    The trailing backlen is not needed for forward iteration, only its size.
    """
    start = pos
    byte = data[pos]

    if byte & 0x80 == 0:
        # 7-bit unsigned integer (0xxxxxxx)
        value = byte & 0x7F
        pos += 1
    elif byte & 0xC0 == 0x80:
        # 6-bit string length (10xxxxxx)
        length = byte & 0x3F
        pos += 1
        _need(data, pos, length, "listpack string", offset)
        value = bytes(data[pos:pos + length])
        pos += length
    elif byte & 0xE0 == 0xC0:
        # 13-bit signed integer (110xxxxx yyyyyyyy)
        _need(data, pos, 2, "listpack integer", offset)
        value = ((byte & 0x1F) << 8) | data[pos + 1]
        if value & 0x1000:
            value -= 0x2000
        pos += 2
    elif byte & 0xF0 == 0xE0:
        # 12-bit string length (1110xxxx yyyyyyyy)
        _need(data, pos, 2, "listpack string length", offset)
        length = ((byte & 0x0F) << 8) | data[pos + 1]
        pos += 2
        _need(data, pos, length, "listpack string", offset)
        value = bytes(data[pos:pos + length])
        pos += length
    elif byte == LP_ENCODING_32BIT_STR:
        _need(data, pos, 5, "listpack string length", offset)
        length = struct.unpack_from('<I', data, pos + 1)[0]
        pos += 5
        _need(data, pos, length, "listpack string", offset)
        value = bytes(data[pos:pos + length])
        pos += length
    elif byte in LISTPACK_INT_ENCODINGS:
        fmt, size = LISTPACK_INT_ENCODINGS[byte]
        _need(data, pos, 1 + size, "listpack integer", offset)
        value = struct.unpack_from(fmt, data, pos + 1)[0]
        pos += 1 + size
    elif byte == LP_ENCODING_24BIT_INT:
        _need(data, pos, 4, "listpack integer", offset)
        value = int.from_bytes(data[pos + 1:pos + 4], 'little', signed=True)
        pos += 4
    else:
        raise ParseError(f"Unknown listpack encoding byte: 0x{byte:02x}", offset + pos)

    backlen = backlen_size(pos - start)
    _need(data, pos, backlen, "listpack backlen", offset)
    return value, pos + backlen


def backlen_size(entry_len):
    """Bytes used by the reverse-traversal length of a listpack entry"""
    if entry_len <= 127:
        return 1
    elif entry_len < 16383:
        return 2
    elif entry_len < 2097151:
        return 3
    elif entry_len < 268435455:
        return 4
    return 5


def parse_intset(data, offset=0):
    """Parse intset: encoding width (4), count (4), sorted little-endian integers"""
    _need(data, 0, 8, "intset header", offset)
    encoding, length = struct.unpack_from('<II', data, 0)
    fmt = INTSET_ENCODINGS.get(encoding)
    if fmt is None:
        raise ParseError(f"Invalid intset encoding {encoding}", offset)
    if len(data) != 8 + encoding * length:
        raise ParseError(
            f"Intset of {length} x {encoding} bytes does not fit blob of {len(data)}", offset
        )
    return [value for (value,) in struct.iter_unpack(fmt, data[8:])]


def parse_zipmap(data, offset=0):
    """Parse the pre-2.6 zipmap hash encoding into a flat [field, value, ...] list"""
    # zmlen (1) is only a hint and saturates at 254
    _need(data, 0, 1, "zipmap header", offset)
    result = []
    pos = 1
    while True:
        length, pos = _zipmap_length(data, pos, offset)
        if length is None:
            break
        _need(data, pos, length, "zipmap field", offset)
        field = bytes(data[pos:pos + length])
        pos += length

        length, pos = _zipmap_length(data, pos, offset)
        if length is None:
            raise ParseError("Unexpected end of zipmap", offset + pos)
        _need(data, pos, 1, "zipmap free byte", offset)
        free = data[pos]
        pos += 1
        _need(data, pos, length + free, "zipmap value", offset)
        value = bytes(data[pos:pos + length])
        pos += length + free
        result.extend((field, value))
    return result


def _zipmap_length(data, pos, offset):
    _need(data, pos, 1, "zipmap length", offset)
    num = data[pos]
    if num < ZIPMAP_BIGLEN:
        return num, pos + 1
    elif num == ZIPMAP_BIGLEN:
        _need(data, pos + 1, 4, "zipmap length", offset)
        return struct.unpack_from('<I', data, pos + 1)[0], pos + 5
    return None, pos + 1
