"""
Export a live Redis database into the same document a snapshot parse gives.

Keys are walked with SCAN, serialized by the server with DUMP and decoded
with the snapshot value decoders, so both paths share one representation.
"""

import logging
import time

import redis

from .builder import ResultBuilder
from .dump import read_dump_payload
from .model import KeyEntry, SkippedKey
from .options import UnsupportedEncodingPolicy
from .parser import RDBParser
from .values import get_type_name

logger = logging.getLogger(__name__)

# PTTL replies
PTTL_NO_EXPIRE = -1
PTTL_MISSING = -2


def connect(host='localhost', port=6379, db=0, password=None):
    # DUMP payloads are binary, so responses are left undecoded
    return redis.Redis(host=host, port=port, db=db, password=password, decode_responses=False)


def export_database(client, db=0, count=100, max_value_bytes=None,
                    unsupported_encoding_policy=UnsupportedEncodingPolicy.FAIL):
    """Exports all keys of the selected database as an RDBDocument."""
    entries = []
    skipped = []
    seen = set()
    versions = set()
    cursor = 0
    processed = 0
    while True:
        cursor, keys = client.scan(cursor=cursor, count=count)
        for key in keys:
            if isinstance(key, str):
                key = key.encode('utf-8')
            # SCAN may return a key more than once
            if key in seen:
                continue
            seen.add(key)

            payload = client.dump(key)
            ttl = client.pttl(key)
            if payload is None or ttl == PTTL_MISSING:
                # Expired or deleted since SCAN returned it
                continue

            decoded = read_dump_payload(payload, max_value_bytes, unsupported_encoding_policy)
            versions.add(decoded.rdb_version)
            if decoded.skipped_encoding is not None:
                logger.warning(
                    "Skipping key %r with unsupported %s value (%s): %s",
                    key, get_type_name(decoded.type_id), decoded.skipped_encoding,
                    decoded.skipped_reason,
                )
                # Offset of the type byte within the DUMP payload
                skipped.append(SkippedKey(
                    key, db, decoded.type_id, decoded.skipped_encoding, 0, decoded.skipped_reason
                ))
                continue
            expire_at = None
            if ttl != PTTL_NO_EXPIRE:
                expire_at = int(time.time() * 1000) + ttl
            entries.append(KeyEntry(key, decoded.value, expire_at))

            processed += 1
            if processed % 1000 == 0:
                logger.info("Processed keys: %d", processed)

        if cursor == 0:
            break

    builder = ResultBuilder(max(versions, default=RDBParser.MAX_VERSION))
    info = client.info("server")
    redis_version = info.get("redis_version")
    if redis_version is not None:
        builder.add_aux("redis-ver", str(redis_version))
    builder.begin_database(db)
    for entry in entries:
        builder.add_entry(entry)
    for skipped_key in skipped:
        builder.add_skipped(skipped_key)

    logger.info("Export completed. Processed %d keys", processed)
    # Every payload passed its own CRC64 check in read_dump_payload
    return builder.finish(checksum_valid=True)
