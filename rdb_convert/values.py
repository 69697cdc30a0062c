"""
Per-type value decoders.

A value is introduced by a one-byte type id; ``ValueDecoder.decode`` looks the
id up in a table of decode functions. Ids that are recognized but not
decoded, and ids nobody knows about, raise ``UnsupportedEncodingError``
before any byte of the value is consumed, so ``skip`` can still step over
them when the caller allows it. Streams whose consumer groups disagree are
the exception: they raise after the whole value was read.
"""

from types import MappingProxyType

from . import packed
from .errors import ParseError, UnsupportedEncodingError
from .lengths import read_double_string, read_length, read_string, read_string_encoded
from .model import (
    HashValue,
    ListValue,
    ScoredMember,
    SetValue,
    SortedSetValue,
    StringValue,
    ValueType,
)
from .streams import STREAM_GROUPS_ENCODING, read_stream

# Value types
TYPE_STRING = 0
TYPE_LIST = 1
TYPE_SET = 2
TYPE_ZSET = 3
TYPE_HASH = 4
TYPE_ZSET_2 = 5
TYPE_MODULE_PRE_GA = 6
TYPE_MODULE_2 = 7
TYPE_HASH_ZIPMAP = 9
TYPE_LIST_ZIPLIST = 10
TYPE_SET_INTSET = 11
TYPE_ZSET_ZIPLIST = 12
TYPE_HASH_ZIPLIST = 13
TYPE_LIST_QUICKLIST = 14
TYPE_STREAM_LISTPACKS = 15
TYPE_HASH_LISTPACK = 16
TYPE_ZSET_LISTPACK = 17
TYPE_LIST_QUICKLIST_2 = 18
TYPE_STREAM_LISTPACKS_2 = 19
TYPE_SET_LISTPACK = 20
TYPE_STREAM_LISTPACKS_3 = 21
TYPE_HASH_METADATA_PRE_GA = 22
TYPE_HASH_LISTPACK_EX_PRE_GA = 23
TYPE_HASH_METADATA = 24
TYPE_HASH_LISTPACK_EX = 25

# Quicklist 2 node containers
QUICKLIST_NODE_CONTAINER_PLAIN = 1
QUICKLIST_NODE_CONTAINER_PACKED = 2

# Module serialization opcodes
MODULE_OPCODE_EOF = 0
MODULE_OPCODE_SINT = 1
MODULE_OPCODE_UINT = 2
MODULE_OPCODE_FLOAT = 3
MODULE_OPCODE_DOUBLE = 4
MODULE_OPCODE_STRING = 5

MODULE_NAME_CHARSET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_'

# Skip description for unknown type ids
OPAQUE_STRING = "opaque-string"

TYPE_NAMES = MappingProxyType({
    TYPE_STRING: ValueType.STRING,
    TYPE_LIST: ValueType.LIST,
    TYPE_SET: ValueType.SET,
    TYPE_ZSET: ValueType.ZSET,
    TYPE_HASH: ValueType.HASH,
    TYPE_ZSET_2: ValueType.ZSET,
    TYPE_HASH_ZIPMAP: ValueType.HASH,
    TYPE_LIST_ZIPLIST: ValueType.LIST,
    TYPE_SET_INTSET: ValueType.SET,
    TYPE_ZSET_ZIPLIST: ValueType.ZSET,
    TYPE_HASH_ZIPLIST: ValueType.HASH,
    TYPE_LIST_QUICKLIST: ValueType.LIST,
    TYPE_STREAM_LISTPACKS: ValueType.STREAM,
    TYPE_HASH_LISTPACK: ValueType.HASH,
    TYPE_ZSET_LISTPACK: ValueType.ZSET,
    TYPE_LIST_QUICKLIST_2: ValueType.LIST,
    TYPE_STREAM_LISTPACKS_2: ValueType.STREAM,
    TYPE_SET_LISTPACK: ValueType.SET,
    TYPE_STREAM_LISTPACKS_3: ValueType.STREAM,
    TYPE_HASH_METADATA_PRE_GA: ValueType.HASH,
    TYPE_HASH_LISTPACK_EX_PRE_GA: ValueType.HASH,
    TYPE_HASH_METADATA: ValueType.HASH,
    TYPE_HASH_LISTPACK_EX: ValueType.HASH,
})

ENCODING_NAMES = MappingProxyType({
    TYPE_STRING: "string",
    TYPE_LIST: "linkedlist",
    TYPE_SET: "hashtable",
    TYPE_ZSET: "skiplist",
    TYPE_HASH: "hashtable",
    TYPE_ZSET_2: "skiplist2",
    TYPE_MODULE_PRE_GA: "module-pre-ga",
    TYPE_MODULE_2: "module2",
    TYPE_HASH_ZIPMAP: "zipmap",
    TYPE_LIST_ZIPLIST: "ziplist",
    TYPE_SET_INTSET: "intset",
    TYPE_ZSET_ZIPLIST: "ziplist",
    TYPE_HASH_ZIPLIST: "ziplist",
    TYPE_LIST_QUICKLIST: "quicklist",
    TYPE_STREAM_LISTPACKS: "listpacks",
    TYPE_HASH_LISTPACK: "listpack",
    TYPE_ZSET_LISTPACK: "listpack",
    TYPE_LIST_QUICKLIST_2: "quicklist2",
    TYPE_STREAM_LISTPACKS_2: "listpacks2",
    TYPE_SET_LISTPACK: "listpack",
    TYPE_STREAM_LISTPACKS_3: "listpacks3",
    TYPE_HASH_METADATA_PRE_GA: "hash-metadata-pre-ga",
    TYPE_HASH_LISTPACK_EX_PRE_GA: "listpack-ex-pre-ga",
    TYPE_HASH_METADATA: "hash-metadata",
    TYPE_HASH_LISTPACK_EX: "listpack-ex",
})


def get_type_name(type_id):
    """Get human-readable type name"""
    value_type = TYPE_NAMES.get(type_id)
    if value_type is not None:
        return value_type.value
    if type_id in (TYPE_MODULE_PRE_GA, TYPE_MODULE_2):
        return "module"
    if TYPE_HASH_METADATA_PRE_GA <= type_id <= TYPE_HASH_LISTPACK_EX:
        return "hash"
    return f"unknown_type_{type_id}"


def skip_reason(error, skipped):
    """Describe why a value was skipped, including any guess about its layout"""
    if skipped == OPAQUE_STRING:
        return f"{error.message}; payload assumed to be one length-prefixed string"
    return error.message


def module_type_name(module_id):
    """Decode the 9-character module type name packed into a 64-bit module id"""
    name = [''] * 9
    module_id >>= 10
    for i in reversed(range(9)):
        name[i] = MODULE_NAME_CHARSET[module_id & 63]
        module_id >>= 6
    return ''.join(name)


def skip_module_data(cursor):
    """Consume module-serialized data up to and including its EOF opcode"""
    while True:
        offset = cursor.position
        opcode = read_length(cursor)
        if opcode == MODULE_OPCODE_EOF:
            return
        elif opcode in (MODULE_OPCODE_SINT, MODULE_OPCODE_UINT):
            read_length(cursor)
        elif opcode == MODULE_OPCODE_FLOAT:
            cursor.read_binary_float()
        elif opcode == MODULE_OPCODE_DOUBLE:
            cursor.read_binary_double()
        elif opcode == MODULE_OPCODE_STRING:
            read_string(cursor)
        else:
            raise ParseError(f"Unknown module opcode {opcode}", offset)


class ValueDecoder:
    def __init__(self, cursor):
        self.cursor = cursor
        self._decoders = {
            TYPE_STRING: self.read_string_value,
            TYPE_LIST: self.read_list,
            TYPE_SET: self.read_set,
            TYPE_ZSET: self.read_zset,
            TYPE_ZSET_2: self.read_zset,
            TYPE_HASH: self.read_hash,
            TYPE_HASH_ZIPMAP: self.read_hash_zipmap,
            TYPE_LIST_ZIPLIST: self.read_list_ziplist,
            TYPE_SET_INTSET: self.read_set_intset,
            TYPE_ZSET_ZIPLIST: self.read_zset_packed,
            TYPE_HASH_ZIPLIST: self.read_hash_packed,
            TYPE_LIST_QUICKLIST: self.read_quicklist,
            TYPE_LIST_QUICKLIST_2: self.read_quicklist,
            TYPE_HASH_LISTPACK: self.read_hash_packed,
            TYPE_ZSET_LISTPACK: self.read_zset_packed,
            TYPE_SET_LISTPACK: self.read_set_listpack,
            TYPE_STREAM_LISTPACKS: self.read_stream,
            TYPE_STREAM_LISTPACKS_2: self.read_stream,
            TYPE_STREAM_LISTPACKS_3: self.read_stream,
            TYPE_HASH_METADATA_PRE_GA: self.read_hash_metadata,
            TYPE_HASH_METADATA: self.read_hash_metadata,
            TYPE_HASH_LISTPACK_EX_PRE_GA: self.read_hash_listpack_ex,
            TYPE_HASH_LISTPACK_EX: self.read_hash_listpack_ex,
        }

    def decode(self, type_id, budget=None):
        """Read value based on type"""
        decoder = self._decoders.get(type_id)
        if decoder is None:
            raise UnsupportedEncodingError(
                type_id, ENCODING_NAMES.get(type_id, "unknown"), self.cursor.position
            )
        return decoder(type_id, budget)

    def skip(self, type_id, error, budget=None):
        """
        Consume the payload of a value that ``decode`` refused.

        Returns a description of what was skipped. Re-raises ``error`` for module
        pre-GA values, and whenever the cursor is not where the error was raised.
        """
        if error.offset != self.cursor.position:
            raise error
        if error.encoding == STREAM_GROUPS_ENCODING:
            # The stream was read in full before the error was raised
            return error.encoding
        if type_id == TYPE_MODULE_2:
            name = module_type_name(read_length(self.cursor))
            skip_module_data(self.cursor)
            return f"module:{name}"
        if type_id in ENCODING_NAMES:
            # Module pre-GA values carry no length we could step over
            raise error
        # Unknown type, read as one opaque string
        read_string(self.cursor, budget)
        return OPAQUE_STRING

    def _packed_blob(self, budget):
        offset = self.cursor.position
        return read_string(self.cursor, budget), offset

    def read_string_value(self, type_id, budget):
        data, encoding = read_string_encoded(self.cursor, budget)
        return StringValue(data, encoding)

    def read_list(self, type_id, budget):
        size = read_length(self.cursor)
        items = tuple(read_string(self.cursor, budget) for _ in range(size))
        return ListValue(items, ENCODING_NAMES[type_id])

    def read_set(self, type_id, budget):
        size = read_length(self.cursor)
        members = dict.fromkeys(read_string(self.cursor, budget) for _ in range(size))
        return SetValue(tuple(members), ENCODING_NAMES[type_id])

    def read_zset(self, type_id, budget):
        size = read_length(self.cursor)
        members = []
        for _ in range(size):
            member = read_string(self.cursor, budget)
            if type_id == TYPE_ZSET:
                score = read_double_string(self.cursor)
            else:
                score = self.cursor.read_binary_double()
            members.append(ScoredMember(member, score))
        return SortedSetValue(tuple(members), ENCODING_NAMES[type_id])

    def read_hash(self, type_id, budget):
        size = read_length(self.cursor)
        fields = {}
        for _ in range(size):
            field = read_string(self.cursor, budget)
            fields[field] = read_string(self.cursor, budget)
        return HashValue(MappingProxyType(fields), ENCODING_NAMES[type_id])

    def read_hash_zipmap(self, type_id, budget):
        blob, offset = self._packed_blob(budget)
        entries = packed.parse_zipmap(blob, offset)
        return HashValue(MappingProxyType(dict(packed.pairs(entries, "zipmap", offset))), "zipmap")

    def read_list_ziplist(self, type_id, budget):
        blob, offset = self._packed_blob(budget)
        items = tuple(packed.entry_bytes(e) for e in packed.parse_ziplist(blob, offset))
        return ListValue(items, "ziplist")

    def read_set_intset(self, type_id, budget):
        blob, offset = self._packed_blob(budget)
        members = dict.fromkeys(packed.entry_bytes(e) for e in packed.parse_intset(blob, offset))
        return SetValue(tuple(members), "intset")

    def read_set_listpack(self, type_id, budget):
        blob, offset = self._packed_blob(budget)
        members = dict.fromkeys(packed.entry_bytes(e) for e in packed.parse_listpack(blob, offset))
        return SetValue(tuple(members), "listpack")

    def _parse_packed(self, type_id, blob, offset):
        if ENCODING_NAMES[type_id] == "ziplist":
            return packed.parse_ziplist(blob, offset)
        return packed.parse_listpack(blob, offset)

    def read_hash_packed(self, type_id, budget):
        """Read ziplist or listpack encoded hash"""
        blob, offset = self._packed_blob(budget)
        entries = self._parse_packed(type_id, blob, offset)
        fields = {
            packed.entry_bytes(k): packed.entry_bytes(v)
            for k, v in packed.pairs(entries, "hash", offset)
        }
        return HashValue(MappingProxyType(fields), ENCODING_NAMES[type_id])

    def read_zset_packed(self, type_id, budget):
        """Read ziplist or listpack encoded sorted set"""
        blob, offset = self._packed_blob(budget)
        entries = self._parse_packed(type_id, blob, offset)
        members = tuple(
            ScoredMember(packed.entry_bytes(member), packed.entry_float(score, offset))
            for member, score in packed.pairs(entries, "sorted set", offset)
        )
        return SortedSetValue(members, ENCODING_NAMES[type_id])

    def read_quicklist(self, type_id, budget):
        """Read quicklist (ziplist nodes) or quicklist 2 (plain or listpack nodes)"""
        size = read_length(self.cursor)
        items = []
        for _ in range(size):
            if type_id == TYPE_LIST_QUICKLIST:
                blob, offset = self._packed_blob(budget)
                items.extend(packed.parse_ziplist(blob, offset))
                continue

            offset = self.cursor.position
            container = read_length(self.cursor)
            if container == QUICKLIST_NODE_CONTAINER_PLAIN:
                items.append(read_string(self.cursor, budget))
            elif container == QUICKLIST_NODE_CONTAINER_PACKED:
                blob, offset = self._packed_blob(budget)
                entries = packed.parse_listpack(blob, offset)
                if not entries:
                    raise ParseError("Empty listpack in quicklist node", offset)
                items.extend(entries)
            else:
                raise ParseError(f"Unknown quicklist node container {container}", offset)
        return ListValue(tuple(packed.entry_bytes(e) for e in items), ENCODING_NAMES[type_id])

    def read_stream(self, type_id, budget):
        version = {
            TYPE_STREAM_LISTPACKS: 1,
            TYPE_STREAM_LISTPACKS_2: 2,
            TYPE_STREAM_LISTPACKS_3: 3,
        }[type_id]
        return read_stream(self.cursor, type_id, version, budget)

    def read_hash_metadata(self, type_id, budget):
        """Read a hash whose fields carry their own TTLs"""
        min_expire = None
        if type_id == TYPE_HASH_METADATA:
            min_expire = self.cursor.read_signed_long()
        size = read_length(self.cursor)
        fields = {}
        expires = {}
        for _ in range(size):
            ttl = read_length(self.cursor)
            field = read_string(self.cursor, budget)
            fields[field] = read_string(self.cursor, budget)
            if ttl == 0:
                continue
            if min_expire is None:
                expires[field] = ttl
            else:
                # Stored relative to the minimum, plus one so 0 still means no TTL
                expires[field] = min_expire + ttl - 1
        return HashValue(MappingProxyType(fields), ENCODING_NAMES[type_id], MappingProxyType(expires))

    def read_hash_listpack_ex(self, type_id, budget):
        """Read a listpack hash stored as field, value, TTL triplets"""
        if type_id == TYPE_HASH_LISTPACK_EX:
            # Minimum field expire time; each triplet has its own absolute TTL
            self.cursor.read_signed_long()
        blob, offset = self._packed_blob(budget)
        entries = packed.parse_listpack(blob, offset)
        if len(entries) % 3:
            raise ParseError(f"Entry count {len(entries)} in listpack-ex hash is not a multiple of 3", offset)
        fields = {}
        expires = {}
        for i in range(0, len(entries), 3):
            field = packed.entry_bytes(entries[i])
            fields[field] = packed.entry_bytes(entries[i + 1])
            ttl = packed.entry_int(entries[i + 2], "field TTL", offset)
            if ttl:
                expires[field] = ttl
        return HashValue(MappingProxyType(fields), ENCODING_NAMES[type_id], MappingProxyType(expires))
