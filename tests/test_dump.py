import pytest

from rdb_convert.dump import decode_dump_payload, read_dump_payload
from rdb_convert.errors import (
    ChecksumError,
    FormatError,
    ParseError,
    ResourceLimitExceeded,
    UnsupportedEncodingError,
)
from rdb_convert.model import ValueType
from rdb_convert.options import UnsupportedEncodingPolicy
from tests.rdb_builder import dump_payload, encode_length, encode_string, listpack, module_id


def test_string_payload():
    decoded = read_dump_payload(dump_payload(0, encode_string(b"hello"), version=10))
    assert decoded.type_id == 0
    assert decoded.rdb_version == 10
    assert decoded.value.data == b"hello"


def test_hash_listpack_payload():
    value = decode_dump_payload(dump_payload(16, encode_string(listpack([b"f", 1]))))
    assert value.value_type is ValueType.HASH
    assert dict(value.fields) == {b"f": b"1"}


def test_list_payload():
    body = encode_length(2) + encode_string(b"a") + encode_string(b"b")
    assert decode_dump_payload(dump_payload(1, body)).items == (b"a", b"b")


def test_bad_checksum():
    payload = bytearray(dump_payload(0, encode_string(b"hello")))
    payload[2] ^= 0xFF
    with pytest.raises(ChecksumError):
        read_dump_payload(bytes(payload))


def test_version_too_new():
    with pytest.raises(FormatError):
        read_dump_payload(dump_payload(0, encode_string(b"x"), version=99))


def test_trailing_bytes():
    with pytest.raises(ParseError):
        read_dump_payload(dump_payload(0, encode_string(b"x") + b"junk"))


def test_too_short():
    with pytest.raises(ParseError):
        read_dump_payload(b"\x00" * 5)


def test_value_limit():
    with pytest.raises(ResourceLimitExceeded):
        read_dump_payload(dump_payload(0, encode_string(b"x" * 100)), max_value_bytes=10)


class TestUnsupportedPolicy:
    def module_payload(self):
        body = encode_length(module_id("ReJSON-RL", 3)) + encode_length(5) \
            + encode_string(b'{"a":1}') + encode_length(0)
        return dump_payload(7, body)

    def test_fail_by_default(self):
        with pytest.raises(UnsupportedEncodingError):
            read_dump_payload(self.module_payload())

    def test_skip(self):
        decoded = read_dump_payload(
            self.module_payload(), unsupported_encoding_policy=UnsupportedEncodingPolicy.SKIP
        )
        assert decoded.type_id == 7
        assert decoded.value is None
        assert decoded.skipped_encoding == "module:ReJSON-RL"
        assert decoded.skipped_reason

    def test_skip_unknown_type(self):
        decoded = read_dump_payload(
            dump_payload(30, encode_string(b"opaque")),
            unsupported_encoding_policy=UnsupportedEncodingPolicy.SKIP,
        )
        assert decoded.skipped_encoding == "opaque-string"
        assert "assumed" in decoded.skipped_reason

    def test_skip_still_checks_trailing_bytes(self):
        with pytest.raises(ParseError):
            read_dump_payload(
                dump_payload(30, encode_string(b"opaque") + b"junk"),
                unsupported_encoding_policy=UnsupportedEncodingPolicy.SKIP,
            )
