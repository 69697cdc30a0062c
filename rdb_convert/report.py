"""
Presentation of decoded documents: JSON conversion and the key length report.
"""

import json
from datetime import datetime, timezone
from typing import NamedTuple

from .model import ValueType


def _text(data):
    return data.decode('utf-8', errors='replace')


def value_to_json(value):
    """Serializes a decoded value to a JSON-friendly Python object"""
    value_type = value.value_type
    if value_type is ValueType.STRING:
        return _text(value.data)
    elif value_type is ValueType.LIST:
        return [_text(item) for item in value.items]
    elif value_type is ValueType.SET:
        return [_text(member) for member in value.members]
    elif value_type is ValueType.HASH:
        return {_text(k): _text(v) for k, v in value.fields.items()}
    elif value_type is ValueType.ZSET:
        return [{"member": _text(m.member), "score": m.score} for m in value.members]
    elif value_type is ValueType.STREAM:
        return {
            "entries": [
                [str(entry.id), [[_text(k), _text(v)] for k, v in entry.fields]]
                for entry in value.entries
            ],
            "length": value.length_hint,
            "last_id": str(value.last_id),
            "groups": [_group_to_json(group) for group in value.groups],
        }
    raise TypeError(f"Unknown value type {value_type!r}")


def _group_to_json(group):
    return {
        "name": _text(group["name"]),
        "last_id": str(group["last_id"]),
        "entries_read": group["entries_read"],
        "pending": [
            {
                "id": str(p["id"]),
                "delivery_time": p["delivery_time"],
                "delivery_count": p["delivery_count"],
            }
            for p in group["pending"]
        ],
        "consumers": [
            {
                "name": _text(c["name"]),
                "seen_time": c["seen_time"],
                "active_time": c["active_time"],
                "pending": [str(entry_id) for entry_id in c["pending"]],
            }
            for c in group["consumers"]
        ],
    }


def expiry_date(expire_at_millis):
    try:
        return datetime.fromtimestamp(expire_at_millis / 1000, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        # Outside the range datetime can represent
        return None


def entry_to_json(entry):
    result = {
        "value": value_to_json(entry.value),
        "type": entry.value_type.value,
    }
    if entry.expire_at_millis is not None:
        result["expiry_ms"] = entry.expire_at_millis
        result["expiry_date"] = expiry_date(entry.expire_at_millis)
    if entry.lru_idle is not None:
        result["idle"] = entry.lru_idle
    if entry.lfu_freq is not None:
        result["freq"] = entry.lfu_freq
    if entry.value_type is ValueType.HASH and entry.value.field_expires:
        result["field_expiry_ms"] = {
            _text(k): ms for k, ms in entry.value.field_expires.items()
        }
    return result


def document_to_dict(document, simple=False):
    """
    Convert a document to plain Python data.

    The simple format keeps only ``{db: {key: value}}``.
    """
    if simple:
        return {
            str(db.index): {
                _text(key): value_to_json(entry.value) for key, entry in db.entries.items()
            }
            for db in document.databases.values()
        }

    databases = {}
    for db in document.databases.values():
        hint = db.resize_hint
        databases[str(db.index)] = {
            "resize_hint": hint._asdict() if hint is not None else None,
            "keys": {_text(key): entry_to_json(entry) for key, entry in db.entries.items()},
        }
    return {
        "rdb_version": document.version,
        "aux": dict(document.aux_fields),
        "databases": databases,
        "meta": {
            "version": document.version,
            "checksum_valid": document.checksum_valid,
            "skipped": [
                {
                    "key": _text(s.key),
                    "database": s.database,
                    "type_id": s.type_id,
                    "encoding": s.encoding,
                    "offset": s.offset,
                    "reason": s.reason,
                }
                for s in document.skipped
            ],
        },
    }


def document_to_json(document, pretty=False, simple=False):
    return json.dumps(
        document_to_dict(document, simple=simple),
        indent=2 if pretty else None,
        ensure_ascii=False,
    )


class KeyLength(NamedTuple):
    key: str
    database: int
    type: str
    length: int


def key_lengths(document):
    """Every key with its type and length, longest first"""
    lengths = [
        KeyLength(_text(key), db.index, entry.value_type.value, entry.length())
        for db in document.databases.values()
        for key, entry in db.entries.items()
    ]
    return sorted(lengths, key=lambda info: info.length, reverse=True)


def format_report(document):
    db_details = {
        str(db.index): (db.resize_hint._asdict() if db.resize_hint else None)
        for db in document.databases.values()
    }
    lines = [
        f"DB details: {json.dumps(db_details)}",
        f"AUX details: {json.dumps(dict(document.aux_fields), ensure_ascii=False)}",
    ]
    for info in key_lengths(document):
        lines.append(f"{info.key}:")
        lines.append(f"    Type: {info.type}")
        lines.append(f"    Length: {info.length}")
    return "\n".join(lines)
