"""
RDB (Redis Database) file parser.

Supports RDB versions 1 through 12 (Redis 7.4).
"""

import logging

from .builder import ResultBuilder
from .checksum import ChecksumValidator
from .cursor import ByteCursor
from .errors import Cancelled, FormatError, ParseError, UnsupportedEncodingError
from .lengths import read_length, read_string
from .model import KeyEntry, SkippedKey
from .options import ParseOptions, UnsupportedEncodingPolicy, ValueBudget
from .values import MODULE_OPCODE_UINT, ValueDecoder, get_type_name, skip_module_data, skip_reason

logger = logging.getLogger(__name__)


class RDBParser:
    # RDB opcodes
    OPCODE_SLOT_INFO = 0xF4
    OPCODE_FUNCTION2 = 0xF5
    OPCODE_FUNCTION_PRE_GA = 0xF6
    OPCODE_MODULE_AUX = 0xF7
    OPCODE_IDLE = 0xF8
    OPCODE_FREQ = 0xF9
    OPCODE_AUX = 0xFA
    OPCODE_RESIZEDB = 0xFB
    OPCODE_EXPIRETIME_MS = 0xFC
    OPCODE_EXPIRETIME = 0xFD
    OPCODE_SELECTDB = 0xFE
    OPCODE_EOF = 0xFF

    MAGIC = b'REDIS'
    MIN_VERSION = 1
    MAX_VERSION = 12
    # Files from version 5 on end with a CRC64 footer
    CHECKSUM_VERSION = 5

    def __init__(self, source, options=None):
        self.options = options or ParseOptions()
        self.checksum = ChecksumValidator()
        self.cursor = ByteCursor(source, observer=self.checksum.update)
        self.values = ValueDecoder(self.cursor)
        self.builder = None
        self.version = None
        self._parsed = False
        self._reset_pending()

    def _reset_pending(self):
        self.expiry = None
        self.idle = None
        self.freq = None

    def read_header(self):
        magic = self.cursor.read_exact(5)
        if magic != self.MAGIC:
            raise FormatError(f"Not a valid RDB file. Magic: {magic!r}", 0)

        version = self.cursor.read_exact(4)
        if not version.isdigit():
            raise FormatError(f"Invalid RDB version {version!r}", 5)
        version = int(version)
        if not self.MIN_VERSION <= version <= self.MAX_VERSION:
            raise FormatError(f"Unsupported RDB version {version}", 5)
        logger.debug("RDB Version: %d", version)
        return version

    def _check_cancelled(self):
        event = self.options.cancel_event
        if event is not None and event.is_set():
            raise Cancelled("Parse cancelled", self.cursor.position)

    def _budget(self):
        return ValueBudget(self.options.max_value_bytes)

    def parse(self):
        """Parse RDB file"""
        if self._parsed:
            raise RuntimeError("RDBParser instances parse a single source")
        self._parsed = True

        self.version = self.read_header()
        self.builder = ResultBuilder(self.version, self.options.max_total_entries)

        handlers = {
            self.OPCODE_SELECTDB: self._select_db,
            self.OPCODE_AUX: self._aux,
            self.OPCODE_RESIZEDB: self._resize_db,
            self.OPCODE_EXPIRETIME_MS: self._expire_ms,
            self.OPCODE_EXPIRETIME: self._expire_seconds,
            self.OPCODE_IDLE: self._idle,
            self.OPCODE_FREQ: self._freq,
            self.OPCODE_MODULE_AUX: self._module_aux,
            self.OPCODE_FUNCTION2: self._function,
            self.OPCODE_FUNCTION_PRE_GA: self._function_pre_ga,
            self.OPCODE_SLOT_INFO: self._slot_info,
        }

        while True:
            self._check_cancelled()
            offset = self.cursor.position
            opcode = self.cursor.read_byte()

            if opcode == self.OPCODE_EOF:
                break
            handler = handlers.get(opcode)
            if handler is not None:
                handler(offset)
            else:
                # It's a value type opcode
                self._key_value(opcode, offset)

        checksum_valid = self._read_footer()
        document = self.builder.finish(checksum_valid)
        logger.debug("Parsed %d keys", self.builder.total_entries)
        return document

    def _read_footer(self):
        if self.version < self.CHECKSUM_VERSION:
            return None
        computed = self.checksum.value
        offset = self.cursor.position
        footer = self.cursor.read_exact(8)
        checksum_valid = self.checksum.verify(
            footer, computed, strict=self.options.strict_checksum, offset=offset
        )
        if self.cursor.remaining():
            logger.debug("Ignoring %d bytes after the checksum", self.cursor.remaining())
        return checksum_valid

    def _select_db(self, offset):
        index = read_length(self.cursor)
        self.builder.begin_database(index)
        logger.debug("Selected DB: %d", index)

    def _aux(self, offset):
        budget = self._budget()
        key = read_string(self.cursor, budget).decode('utf-8', errors='replace')
        value = read_string(self.cursor, budget).decode('utf-8', errors='replace')
        self.builder.add_aux(key, value)
        logger.debug("AUX: %s = %s", key, value)

    def _resize_db(self, offset):
        db_size = read_length(self.cursor)
        expires_size = read_length(self.cursor)
        self.builder.set_resize_hint(db_size, expires_size)
        logger.debug("DB size: %d, Expires: %d", db_size, expires_size)

    def _expire_ms(self, offset):
        self.expiry = self.cursor.read_signed_long()

    def _expire_seconds(self, offset):
        self.expiry = self.cursor.read_signed_int() * 1000

    def _idle(self, offset):
        self.idle = read_length(self.cursor)

    def _freq(self, offset):
        self.freq = self.cursor.read_byte()

    def _module_aux(self, offset):
        module_id = read_length(self.cursor)
        when_opcode = read_length(self.cursor)
        read_length(self.cursor)
        if when_opcode != MODULE_OPCODE_UINT:
            raise ParseError(f"Bad module aux when-opcode {when_opcode}", offset)
        skip_module_data(self.cursor)
        logger.debug("Skipped module aux data for module id %d", module_id)

    def _function(self, offset):
        read_string(self.cursor, self._budget())
        logger.debug("Skipped function library")

    def _function_pre_ga(self, offset):
        raise UnsupportedEncodingError(
            self.OPCODE_FUNCTION_PRE_GA, "function-pre-ga", offset,
            "Pre-GA function payloads are not supported",
        )

    def _slot_info(self, offset):
        for _ in range(3):
            read_length(self.cursor)

    def _key_value(self, value_type, offset):
        budget = self._budget()
        key = read_string(self.cursor, budget)
        try:
            value = self.values.decode(value_type, budget)
        except UnsupportedEncodingError as e:
            if self.options.unsupported_encoding_policy is not UnsupportedEncodingPolicy.SKIP:
                raise
            encoding = self.values.skip(value_type, e, budget)
            reason = skip_reason(e, encoding)
            logger.warning(
                "Skipping key %r with unsupported %s value (%s): %s",
                key, get_type_name(value_type), encoding, reason,
            )
            self.builder.add_skipped(SkippedKey(
                key=key,
                database=self.builder.current_db,
                type_id=value_type,
                encoding=encoding,
                offset=offset,
                reason=reason,
            ))
        else:
            self.builder.add_entry(
                KeyEntry(key, value, self.expiry, self.idle, self.freq), offset
            )
        self._reset_pending()


def parse(source, options=None):
    """Decode an RDB snapshot from bytes or a binary file object"""
    return RDBParser(source, options).parse()


def parse_file(path, options=None):
    with open(path, 'rb') as f:
        return parse(f, options)
