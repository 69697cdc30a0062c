import math
import struct

import pytest

from rdb_convert.cursor import ByteCursor
from rdb_convert.errors import ParseError, ResourceLimitExceeded, UnsupportedEncodingError
from rdb_convert.model import ScoredMember, ValueType
from rdb_convert.options import ValueBudget
from rdb_convert import values
from rdb_convert.values import ValueDecoder, get_type_name, module_type_name, skip_reason
from tests.rdb_builder import (
    encode_double_string,
    encode_int_string,
    encode_length,
    encode_lzf_string,
    encode_string,
    intset,
    listpack,
    module_id,
    ziplist,
    zipmap,
)


def decode(type_id, payload, budget=None):
    cursor = ByteCursor(payload)
    value = ValueDecoder(cursor).decode(type_id, budget)
    assert cursor.remaining() == 0
    return value


def strings(*items):
    return encode_length(len(items)) + b"".join(encode_string(i) for i in items)


class TestStrings:
    def test_raw(self):
        value = decode(values.TYPE_STRING, encode_string(b"bar"))
        assert value.data == b"bar"
        assert value.encoding == "raw"
        assert value.value_type is ValueType.STRING
        assert value.length() == 3

    def test_int(self):
        value = decode(values.TYPE_STRING, encode_int_string(-42))
        assert value.data == b"-42"
        assert value.encoding == "int"

    def test_lzf(self):
        value = decode(values.TYPE_STRING, encode_lzf_string(b"ab" * 200))
        assert value.data == b"ab" * 200
        assert value.encoding == "lzf"


class TestLists:
    def test_linkedlist(self):
        value = decode(values.TYPE_LIST, strings(b"a", b"b", b"c"))
        assert value.items == (b"a", b"b", b"c")
        assert value.encoding == "linkedlist"

    def test_ziplist(self):
        value = decode(values.TYPE_LIST_ZIPLIST, encode_string(ziplist([b"x", 3, -500])))
        assert value.items == (b"x", b"3", b"-500")
        assert value.encoding == "ziplist"

    def test_quicklist(self):
        payload = (
            encode_length(2)
            + encode_string(ziplist([b"a", b"b"]))
            + encode_string(ziplist([7]))
        )
        value = decode(values.TYPE_LIST_QUICKLIST, payload)
        assert value.items == (b"a", b"b", b"7")
        assert value.encoding == "quicklist"

    def test_quicklist2_plain_and_packed(self):
        payload = (
            encode_length(2)
            + encode_length(values.QUICKLIST_NODE_CONTAINER_PACKED)
            + encode_string(listpack([b"one", 2]))
            + encode_length(values.QUICKLIST_NODE_CONTAINER_PLAIN)
            + encode_string(b"P" * 100)
        )
        value = decode(values.TYPE_LIST_QUICKLIST_2, payload)
        assert value.items == (b"one", b"2", b"P" * 100)
        assert value.encoding == "quicklist2"

    def test_quicklist2_unknown_container(self):
        payload = encode_length(1) + encode_length(9) + encode_string(b"x")
        with pytest.raises(ParseError):
            decode(values.TYPE_LIST_QUICKLIST_2, payload)

    def test_quicklist2_empty_listpack(self):
        payload = (
            encode_length(1)
            + encode_length(values.QUICKLIST_NODE_CONTAINER_PACKED)
            + encode_string(listpack([]))
        )
        with pytest.raises(ParseError):
            decode(values.TYPE_LIST_QUICKLIST_2, payload)


class TestSets:
    def test_hashtable_dedupes_in_order(self):
        value = decode(values.TYPE_SET, strings(b"b", b"a", b"b"))
        assert value.members == (b"b", b"a")
        assert b"a" in value
        assert value.length() == 2

    def test_intset(self):
        value = decode(values.TYPE_SET_INTSET, encode_string(intset([1, 2, 300], 2)))
        assert value.members == (b"1", b"2", b"300")
        assert value.encoding == "intset"

    def test_listpack(self):
        value = decode(values.TYPE_SET_LISTPACK, encode_string(listpack([b"m1", 5])))
        assert value.members == (b"m1", b"5")
        assert value.encoding == "listpack"


class TestSortedSets:
    def test_ascii_scores(self):
        payload = (
            encode_length(3)
            + encode_string(b"a") + encode_double_string(1.5)
            + encode_string(b"b") + encode_double_string(float("inf"))
            + encode_string(b"c") + encode_double_string(float("-inf"))
        )
        value = decode(values.TYPE_ZSET, payload)
        assert value.members == (
            ScoredMember(b"a", 1.5),
            ScoredMember(b"b", math.inf),
            ScoredMember(b"c", -math.inf),
        )
        assert value.encoding == "skiplist"

    def test_binary_scores(self):
        payload = (
            encode_length(2)
            + encode_string(b"x") + struct.pack("<d", 0.25)
            + encode_string(b"y") + struct.pack("<d", -3.0)
        )
        value = decode(values.TYPE_ZSET_2, payload)
        assert value.members == (ScoredMember(b"x", 0.25), ScoredMember(b"y", -3.0))

    def test_ziplist(self):
        blob = ziplist([b"a", 1, b"b", b"2.5"])
        value = decode(values.TYPE_ZSET_ZIPLIST, encode_string(blob))
        assert value.members == (ScoredMember(b"a", 1.0), ScoredMember(b"b", 2.5))
        assert value.encoding == "ziplist"

    def test_listpack(self):
        blob = listpack([b"a", 10, b"b", b"-1.5"])
        value = decode(values.TYPE_ZSET_LISTPACK, encode_string(blob))
        assert value.members == (ScoredMember(b"a", 10.0), ScoredMember(b"b", -1.5))
        assert value.encoding == "listpack"

    def test_odd_entry_count(self):
        with pytest.raises(ParseError):
            decode(values.TYPE_ZSET_LISTPACK, encode_string(listpack([b"a", 1, b"b"])))


class TestHashes:
    def test_hashtable(self):
        payload = encode_length(2) + encode_string(b"f1") + encode_string(b"v1") \
            + encode_string(b"f2") + encode_string(b"v2")
        value = decode(values.TYPE_HASH, payload)
        assert dict(value.fields) == {b"f1": b"v1", b"f2": b"v2"}
        assert value.length() == 2

    def test_zipmap(self):
        blob = zipmap([(b"name", b"redis"), (b"ver", b"2.4")])
        value = decode(values.TYPE_HASH_ZIPMAP, encode_string(blob))
        assert dict(value.fields) == {b"name": b"redis", b"ver": b"2.4"}
        assert value.encoding == "zipmap"

    def test_ziplist(self):
        blob = ziplist([b"a", 1, b"b", b"two"])
        value = decode(values.TYPE_HASH_ZIPLIST, encode_string(blob))
        assert dict(value.fields) == {b"a": b"1", b"b": b"two"}
        assert value.encoding == "ziplist"

    def test_listpack(self):
        blob = listpack([b"a", 1, b"b", b"two"])
        value = decode(values.TYPE_HASH_LISTPACK, encode_string(blob))
        assert dict(value.fields) == {b"a": b"1", b"b": b"two"}
        assert value.encoding == "listpack"
        assert dict(value.field_expires) == {}

    def test_metadata_pre_ga_absolute_ttls(self):
        payload = (
            encode_length(2)
            + encode_length(1800000000000) + encode_string(b"a") + encode_string(b"1")
            + encode_length(0) + encode_string(b"b") + encode_string(b"2")
        )
        value = decode(values.TYPE_HASH_METADATA_PRE_GA, payload)
        assert value.value_type is ValueType.HASH
        assert dict(value.fields) == {b"a": b"1", b"b": b"2"}
        assert dict(value.field_expires) == {b"a": 1800000000000}

    def test_metadata_ttls_relative_to_minimum(self):
        payload = (
            struct.pack("<q", 1800000000000)
            + encode_length(3)
            + encode_length(1) + encode_string(b"a") + encode_string(b"1")
            + encode_length(501) + encode_string(b"b") + encode_string(b"2")
            + encode_length(0) + encode_string(b"c") + encode_string(b"3")
        )
        value = decode(values.TYPE_HASH_METADATA, payload)
        assert dict(value.fields) == {b"a": b"1", b"b": b"2", b"c": b"3"}
        assert dict(value.field_expires) == {b"a": 1800000000000, b"b": 1800000000500}
        assert value.encoding == "hash-metadata"

    def test_listpack_ex(self):
        blob = listpack([b"a", 1, 1800000000000, b"b", b"two", 0])
        payload = struct.pack("<q", 1800000000000) + encode_string(blob)
        value = decode(values.TYPE_HASH_LISTPACK_EX, payload)
        assert dict(value.fields) == {b"a": b"1", b"b": b"two"}
        assert dict(value.field_expires) == {b"a": 1800000000000}
        assert value.encoding == "listpack-ex"

    def test_listpack_ex_pre_ga_has_no_minimum(self):
        blob = listpack([b"f", b"v", 0])
        value = decode(values.TYPE_HASH_LISTPACK_EX_PRE_GA, encode_string(blob))
        assert dict(value.fields) == {b"f": b"v"}
        assert dict(value.field_expires) == {}

    def test_listpack_ex_needs_triplets(self):
        blob = listpack([b"a", 1, 0, b"b"])
        with pytest.raises(ParseError):
            decode(values.TYPE_HASH_LISTPACK_EX_PRE_GA, encode_string(blob))


class TestUnsupported:
    @pytest.mark.parametrize("type_id", [6, 7, 30, 200])
    def test_raises_before_consuming(self, type_id):
        cursor = ByteCursor(b"\x01\x02\x03")
        with pytest.raises(UnsupportedEncodingError) as excinfo:
            ValueDecoder(cursor).decode(type_id)
        assert cursor.position == 0
        assert excinfo.value.type_id == type_id

    def test_skip_unknown_type_reads_one_string(self):
        cursor = ByteCursor(encode_string(b"opaque") + b"rest")
        decoder = ValueDecoder(cursor)
        with pytest.raises(UnsupportedEncodingError) as excinfo:
            decoder.decode(30)
        assert decoder.skip(30, excinfo.value) == "opaque-string"
        assert cursor.read_exact(4) == b"rest"

    def test_skip_module2_walks_opcodes(self):
        payload = (
            encode_length(module_id("ReJSON-RL", 3))
            + encode_length(values.MODULE_OPCODE_UINT) + encode_length(5)
            + encode_length(values.MODULE_OPCODE_STRING) + encode_string(b"abc")
            + encode_length(values.MODULE_OPCODE_DOUBLE) + struct.pack("<d", 1.5)
            + encode_length(values.MODULE_OPCODE_FLOAT) + struct.pack("<f", 0.5)
            + encode_length(values.MODULE_OPCODE_EOF)
        )
        cursor = ByteCursor(payload + b"!")
        decoder = ValueDecoder(cursor)
        with pytest.raises(UnsupportedEncodingError) as excinfo:
            decoder.decode(values.TYPE_MODULE_2)
        assert decoder.skip(values.TYPE_MODULE_2, excinfo.value) == "module:ReJSON-RL"
        assert cursor.read_byte() == ord("!")

    def test_skip_refuses_module_pre_ga(self):
        decoder = ValueDecoder(ByteCursor(encode_string(b"x")))
        with pytest.raises(UnsupportedEncodingError) as excinfo:
            decoder.decode(values.TYPE_MODULE_PRE_GA)
        with pytest.raises(UnsupportedEncodingError):
            decoder.skip(values.TYPE_MODULE_PRE_GA, excinfo.value)

    def test_skip_reason_names_the_assumed_layout(self):
        decoder = ValueDecoder(ByteCursor(encode_string(b"opaque")))
        with pytest.raises(UnsupportedEncodingError) as excinfo:
            decoder.decode(30)
        skipped = decoder.skip(30, excinfo.value)
        reason = skip_reason(excinfo.value, skipped)
        assert reason.startswith(excinfo.value.message)
        assert "assumed to be one length-prefixed string" in reason
        assert skip_reason(excinfo.value, "module:ReJSON-RL") == excinfo.value.message


def test_every_named_type_has_a_decoder():
    decoder = ValueDecoder(ByteCursor(b""))
    assert set(values.TYPE_NAMES) == set(decoder._decoders)


def test_type_names():
    assert get_type_name(values.TYPE_ZSET_LISTPACK) == "zset"
    assert get_type_name(values.TYPE_MODULE_2) == "module"
    assert get_type_name(values.TYPE_HASH_LISTPACK_EX) == "hash"
    assert get_type_name(99) == "unknown_type_99"


def test_module_type_name():
    assert module_type_name(module_id("ReJSON-RL", 3)) == "ReJSON-RL"


def test_budget_applies_across_a_value():
    with pytest.raises(ResourceLimitExceeded):
        decode(values.TYPE_LIST, strings(b"aaaa", b"bbbb", b"cccc"), ValueBudget(10))
