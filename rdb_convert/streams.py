"""
Stream values.

A stream is a radix tree whose nodes are keyed by a 128-bit master ID and
hold a listpack. Each listpack starts with a master entry::

    count | deleted | num-fields | field_1 ... field_N | 0

followed by entries, each stored relative to the master ID::

    flags | ms-diff | seq-diff | num-fields | field_1 | value_1 ... | lp-count
    flags | ms-diff | seq-diff | value_1 ... value_N | lp-count     (SAMEFIELDS)
"""

from .errors import ParseError, UnsupportedEncodingError
from .lengths import read_length, read_string
from .model import StreamEntry, StreamID, StreamValue
from .packed import entry_bytes, entry_int, parse_listpack

STREAM_ITEM_FLAG_DELETED = 1
STREAM_ITEM_FLAG_SAMEFIELDS = 2

STREAM_ID_SIZE = 16

# Encoding reported for consumer groups whose PELs disagree
STREAM_GROUPS_ENCODING = "stream-consumer-groups"


class _ListpackEntries:
    """Sequential access to decoded listpack entries with bounds checks"""

    def __init__(self, items, offset):
        self.items = items
        self.offset = offset
        self.pos = 0

    def done(self):
        return self.pos >= len(self.items)

    def next(self, what):
        if self.done():
            raise ParseError(f"Stream listpack ends inside {what}", self.offset)
        value = self.items[self.pos]
        self.pos += 1
        return value

    def next_int(self, what):
        return entry_int(self.next(what), what, self.offset)


def read_stream(cursor, type_id, version, budget=None):
    """
    Read a stream value.

    ``version`` follows the type id: 2 adds first/max-deleted IDs, the
    entries-added counter and per-group read counters, 3 adds consumer
    active times.
    """
    entries = []
    for _ in range(read_length(cursor)):
        offset = cursor.position
        node_key = read_string(cursor, budget)
        if len(node_key) != STREAM_ID_SIZE:
            raise ParseError(f"Stream node key has {len(node_key)} bytes, expected 16", offset)
        master_id = StreamID.from_bytes(node_key)

        offset = cursor.position
        items = parse_listpack(read_string(cursor, budget), offset)
        if not items:
            raise ParseError("Empty listpack inside stream", offset)
        entries.extend(_node_entries(master_id, items, offset))

    length = read_length(cursor)
    last_id = _read_id(cursor)
    first_id = max_deleted_entry_id = entries_added = None
    if version >= 2:
        first_id = _read_id(cursor)
        max_deleted_entry_id = _read_id(cursor)
        entries_added = read_length(cursor)

    group_count = read_length(cursor)
    orphans = []
    groups = tuple(_read_group(cursor, version, budget, orphans) for _ in range(group_count))
    if orphans:
        # Raised only once the whole value is consumed so callers can skip the key
        consumer, entry_id, group_name, offset = orphans[0]
        raise UnsupportedEncodingError(
            type_id,
            STREAM_GROUPS_ENCODING,
            cursor.position,
            f"Consumer {consumer!r} at byte {offset} owns {entry_id}, "
            f"which is not pending in group {group_name!r}",
        )

    return StreamValue(
        entries=tuple(entries),
        length_hint=length,
        last_id=last_id,
        first_id=first_id,
        max_deleted_entry_id=max_deleted_entry_id,
        entries_added=entries_added,
        groups=groups,
        encoding=f"listpacks{version}" if version > 1 else "listpacks",
    )


def _read_id(cursor):
    return StreamID(read_length(cursor), read_length(cursor))


def _read_raw_id(cursor):
    return StreamID.from_bytes(cursor.read_exact(STREAM_ID_SIZE))


def _node_entries(master_id, items, offset):
    reader = _ListpackEntries(items, offset)
    count = reader.next_int("master entry count")
    deleted = reader.next_int("master entry deleted count")
    num_fields = reader.next_int("master field count")
    master_fields = [entry_bytes(reader.next("master field")) for _ in range(num_fields)]
    if reader.next_int("master entry terminator") != 0:
        raise ParseError("Stream master entry is not terminated by 0", offset)

    live = []
    deleted_seen = 0
    while not reader.done():
        flags = reader.next_int("entry flags")
        entry_id = StreamID(
            master_id.ms + reader.next_int("entry ms delta"),
            master_id.seq + reader.next_int("entry seq delta"),
        )
        if flags & STREAM_ITEM_FLAG_SAMEFIELDS:
            fields = [
                (field, entry_bytes(reader.next("entry value")))
                for field in master_fields
            ]
        else:
            fields = [
                (entry_bytes(reader.next("entry field")), entry_bytes(reader.next("entry value")))
                for _ in range(reader.next_int("entry field count"))
            ]
        reader.next_int("entry lp-count")

        if flags & STREAM_ITEM_FLAG_DELETED:
            deleted_seen += 1
        else:
            live.append(StreamEntry(entry_id, tuple(fields)))

    if count != len(live) or deleted != deleted_seen:
        raise ParseError(
            f"Stream node counts {count}/{deleted} do not match entries {len(live)}/{deleted_seen}",
            offset,
        )
    return live


def _read_group(cursor, version, budget, orphans):
    name = read_string(cursor, budget)
    last_id = _read_id(cursor)
    entries_read = read_length(cursor) if version >= 2 else None

    pending = {}
    for _ in range(read_length(cursor)):
        entry_id = _read_raw_id(cursor)
        pending[entry_id] = {
            "id": entry_id,
            "delivery_time": cursor.read_signed_long(),
            "delivery_count": read_length(cursor),
        }

    consumers = []
    for _ in range(read_length(cursor)):
        consumer_name = read_string(cursor, budget)
        seen_time = cursor.read_signed_long()
        active_time = cursor.read_signed_long() if version >= 3 else None
        offset = cursor.position
        consumer_pending = tuple(_read_raw_id(cursor) for _ in range(read_length(cursor)))
        orphans.extend(
            (consumer_name, entry_id, name, offset)
            for entry_id in consumer_pending if entry_id not in pending
        )
        consumers.append({
            "name": consumer_name,
            "seen_time": seen_time,
            "active_time": active_time,
            "pending": consumer_pending,
        })

    return {
        "name": name,
        "last_id": last_id,
        "entries_read": entries_read,
        "pending": tuple(pending.values()),
        "consumers": tuple(consumers),
    }
