"""LZF decompression of compressed string payloads"""

import lzf

from .errors import DecompressionError


def decompress(data, expected_length, offset=None):
    """
    Expand an LZF payload to exactly ``expected_length`` bytes.

    lzf reports a back-reference before the start of the output and a
    truncated control stream as corrupt data (ValueError), and returns None
    when the output does not fit in ``expected_length``.
    """
    if expected_length == 0:
        if data:
            raise DecompressionError(f"{len(data)} compressed bytes for an empty string", offset)
        return b""
    if not data:
        raise DecompressionError(f"No compressed data for {expected_length} bytes", offset)

    try:
        result = lzf.decompress(data, expected_length)
    except ValueError as e:
        raise DecompressionError(f"Corrupt LZF data: {e}", offset) from e
    if result is None:
        raise DecompressionError(f"LZF data expands beyond {expected_length} bytes", offset)
    if len(result) != expected_length:
        raise DecompressionError(
            f"Expected lengths do not match {len(result)} != {expected_length}", offset
        )
    return result
