"""
Single values serialized by the DUMP command.

A payload is ``<type><value><rdb version: 2 bytes LE><crc64: 8 bytes LE>``,
with the checksum taken over everything before it.
"""

import struct
from typing import NamedTuple, Optional

from .checksum import crc64
from .cursor import ByteCursor
from .errors import ChecksumError, FormatError, ParseError, UnsupportedEncodingError
from .options import UnsupportedEncodingPolicy, ValueBudget
from .parser import RDBParser
from .values import ValueDecoder, skip_reason

FOOTER_SIZE = 10


class DumpPayload(NamedTuple):
    type_id: int
    rdb_version: int
    value: object
    # Set when the value was stepped over instead of decoded
    skipped_encoding: Optional[str] = None
    skipped_reason: Optional[str] = None


def read_dump_payload(payload, max_value_bytes=None,
                      unsupported_encoding_policy=UnsupportedEncodingPolicy.FAIL):
    """
    Verify and decode a DUMP payload.

    Under the skip policy an unsupported value is consumed and returned with
    ``value=None`` and the skipped encoding filled in.
    """
    payload = bytes(payload)
    if len(payload) < FOOTER_SIZE + 1:
        raise ParseError(f"DUMP payload too short ({len(payload)} bytes)", 0)

    body_end = len(payload) - FOOTER_SIZE
    version, expected = struct.unpack_from('<HQ', payload, body_end)
    computed = crc64(payload[:-8])
    if expected != computed:
        raise ChecksumError(expected, computed, len(payload) - 8)
    if version > RDBParser.MAX_VERSION:
        raise FormatError(f"Unsupported DUMP payload RDB version {version}", body_end)

    cursor = ByteCursor(payload[:body_end])
    type_id = cursor.read_byte()
    decoder = ValueDecoder(cursor)
    budget = ValueBudget(max_value_bytes)
    skipped = reason = None
    try:
        value = decoder.decode(type_id, budget)
    except UnsupportedEncodingError as e:
        if unsupported_encoding_policy is not UnsupportedEncodingPolicy.SKIP:
            raise
        skipped = decoder.skip(type_id, e, budget)
        reason = skip_reason(e, skipped)
        value = None
    if cursor.remaining():
        raise ParseError(f"{cursor.remaining()} trailing bytes after DUMP value", cursor.position)
    return DumpPayload(type_id, version, value, skipped, reason)


def decode_dump_payload(payload, max_value_bytes=None):
    return read_dump_payload(payload, max_value_bytes).value
