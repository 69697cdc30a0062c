"""
Decoded RDB structures.

Everything here is immutable once built: sequences are tuples and mappings
are read-only views. Each value variant knows its own type tag and length,
so consumers never have to guess a value's shape.
"""

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple, Optional, Tuple


def _empty_mapping():
    return MappingProxyType({})


class ValueType(enum.Enum):
    STRING = "string"
    LIST = "list"
    SET = "set"
    ZSET = "zset"
    HASH = "hash"
    STREAM = "stream"


class StreamID(NamedTuple):
    ms: int
    seq: int

    @classmethod
    def from_bytes(cls, raw):
        """Decode a 128-bit big-endian stream ID"""
        return cls(int.from_bytes(raw[:8], 'big'), int.from_bytes(raw[8:16], 'big'))

    def __str__(self):
        return f"{self.ms}-{self.seq}"


class ScoredMember(NamedTuple):
    member: bytes
    score: float


@dataclass(frozen=True)
class StringValue:
    data: bytes
    encoding: str = "raw"
    value_type = ValueType.STRING

    def length(self):
        return len(self.data)


@dataclass(frozen=True)
class ListValue:
    items: Tuple[bytes, ...]
    encoding: str = "linkedlist"
    value_type = ValueType.LIST

    def length(self):
        return len(self.items)


@dataclass(frozen=True)
class SetValue:
    """Set members, deduplicated, in the order they appear in the file"""

    members: Tuple[bytes, ...]
    encoding: str = "hashtable"
    value_type = ValueType.SET

    def length(self):
        return len(self.members)

    def __contains__(self, member):
        return member in self.members


@dataclass(frozen=True)
class HashValue:
    fields: Mapping[bytes, bytes]
    encoding: str = "hashtable"
    # Absolute unix time in ms for fields that carry their own TTL
    field_expires: Mapping[bytes, int] = field(default_factory=_empty_mapping)
    value_type = ValueType.HASH

    def length(self):
        return len(self.fields)


@dataclass(frozen=True)
class SortedSetValue:
    """Members in encounter order; callers sort by score when they need to"""

    members: Tuple[ScoredMember, ...]
    encoding: str = "skiplist"
    value_type = ValueType.ZSET

    def length(self):
        return len(self.members)


@dataclass(frozen=True)
class StreamEntry:
    """Field/value pairs in stored order; a field name may repeat"""

    id: StreamID
    fields: Tuple[Tuple[bytes, bytes], ...]


@dataclass(frozen=True)
class StreamValue:
    entries: Tuple[StreamEntry, ...]
    length_hint: int
    last_id: StreamID
    first_id: Optional[StreamID] = None
    max_deleted_entry_id: Optional[StreamID] = None
    entries_added: Optional[int] = None
    # Consumer groups as plain dictionaries, not modelled further
    groups: Tuple[Mapping[str, Any], ...] = ()
    encoding: str = "listpacks"
    value_type = ValueType.STREAM

    def length(self):
        return len(self.entries)


@dataclass(frozen=True)
class KeyEntry:
    key: bytes
    value: Any
    expire_at_millis: Optional[int] = None
    lru_idle: Optional[int] = None
    lfu_freq: Optional[int] = None

    @property
    def value_type(self):
        return self.value.value_type

    def length(self):
        return self.value.length()


class ResizeHint(NamedTuple):
    hash_size: int
    expires_size: int


@dataclass(frozen=True)
class DatabaseSection:
    index: int
    resize_hint: Optional[ResizeHint] = None
    entries: Mapping[bytes, KeyEntry] = field(default_factory=_empty_mapping)


@dataclass(frozen=True)
class SkippedKey:
    key: bytes
    database: int
    type_id: int
    encoding: str
    offset: int
    reason: str


@dataclass(frozen=True)
class RDBDocument:
    version: int
    databases: Mapping[int, DatabaseSection] = field(default_factory=_empty_mapping)
    aux_fields: Mapping[str, str] = field(default_factory=_empty_mapping)
    checksum_valid: Optional[bool] = None
    skipped: Tuple[SkippedKey, ...] = field(default_factory=tuple)

    @property
    def meta(self):
        return {
            "version": self.version,
            "checksum_valid": self.checksum_valid,
            "skipped": self.skipped,
        }

    def total_entries(self):
        return sum(len(db.entries) for db in self.databases.values())
