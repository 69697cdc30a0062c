import pytest

from rdb_convert.cursor import ByteCursor
from rdb_convert.errors import ParseError, UnsupportedEncodingError
from rdb_convert.model import StreamID, ValueType
from rdb_convert import values
from rdb_convert.values import ValueDecoder
from tests.rdb_builder import (
    encode_length,
    encode_string,
    listpack,
    stream_group,
    stream_id,
    stream_node_listpack,
    stream_payload,
)

TYPE_BY_VERSION = {
    1: values.TYPE_STREAM_LISTPACKS,
    2: values.TYPE_STREAM_LISTPACKS_2,
    3: values.TYPE_STREAM_LISTPACKS_3,
}


def decode(version, payload):
    cursor = ByteCursor(payload)
    value = ValueDecoder(cursor).decode(TYPE_BY_VERSION[version])
    assert cursor.remaining() == 0
    return value


@pytest.mark.parametrize("version", [1, 2, 3])
def test_entries_are_expanded_from_master(version):
    value = decode(version, stream_payload(version))
    assert value.value_type is ValueType.STREAM
    assert [e.id for e in value.entries] == [StreamID(1000, 0), StreamID(1001, 0)]
    assert dict(value.entries[0].fields) == {b"name": b"alice", b"temp": b"20"}
    assert dict(value.entries[1].fields) == {b"other": b"x"}
    assert value.length() == 2
    assert value.length_hint == 2
    assert value.last_id == StreamID(1002, 0)


def test_v1_has_no_extended_metadata():
    value = decode(1, stream_payload(1))
    assert value.first_id is None
    assert value.entries_added is None
    assert value.encoding == "listpacks"


def test_v2_metadata():
    value = decode(2, stream_payload(2))
    assert value.first_id == StreamID(1000, 0)
    assert value.max_deleted_entry_id == StreamID(1002, 0)
    assert value.entries_added == 3
    assert value.encoding == "listpacks2"


def test_consumer_groups():
    value = decode(3, stream_payload(3, groups=[stream_group()]))
    (g,) = value.groups
    assert g["name"] == b"g1"
    assert g["last_id"] == StreamID(1000, 0)
    assert g["entries_read"] == 1
    assert g["pending"] == ({
        "id": StreamID(1000, 0),
        "delivery_time": 1700000000000,
        "delivery_count": 2,
    },)
    (consumer,) = g["consumers"]
    assert consumer["name"] == b"c1"
    assert consumer["seen_time"] == 1700000000500
    assert consumer["active_time"] == 1700000000400
    assert consumer["pending"] == (StreamID(1000, 0),)


def test_v2_groups_have_no_active_time():
    value = decode(2, stream_payload(2, groups=[stream_group(version=2)]))
    assert value.groups[0]["consumers"][0]["active_time"] is None


def test_consumer_owning_unknown_pending_entry():
    payload = stream_payload(3, groups=[stream_group(consumer_pending=stream_id(5, 5))])
    with pytest.raises(UnsupportedEncodingError) as excinfo:
        decode(3, payload)
    assert excinfo.value.encoding == "stream-consumer-groups"
    # The whole value was consumed before the error
    assert excinfo.value.offset == len(payload)


def test_repeated_field_names_are_kept():
    lp = listpack([1, 0, 1, b"a", 0, 0, 0, 0, 2, b"a", 1, b"a", 2, 8])
    value = decode(3, stream_payload(3, lp=lp))
    (entry,) = value.entries
    assert entry.fields == ((b"a", b"1"), (b"a", b"2"))


def test_master_counts_must_match():
    # Deleted entry flagged as live breaks the live/deleted counts
    with pytest.raises(ParseError):
        decode(3, stream_payload(3, lp=stream_node_listpack(deleted_flag=0)))


def test_master_entry_terminator():
    lp = listpack([1, 0, 1, b"f", 9, 2, 0, 0, b"v", 4])
    with pytest.raises(ParseError):
        decode(3, stream_payload(3, lp=lp))


def test_truncated_entry():
    lp = listpack([1, 0, 1, b"f", 0, 2, 0, 0])
    with pytest.raises(ParseError):
        decode(3, stream_payload(3, lp=lp))


def test_bad_node_key():
    payload = encode_length(1) + encode_string(b"short") + encode_string(stream_node_listpack())
    with pytest.raises(ParseError):
        ValueDecoder(ByteCursor(payload)).decode(values.TYPE_STREAM_LISTPACKS_3)
