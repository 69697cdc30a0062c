"""Accumulates decoded pieces into an immutable RDBDocument"""

from types import MappingProxyType

from .errors import ParseError, ResourceLimitExceeded
from .model import DatabaseSection, RDBDocument, ResizeHint


class _Database:
    def __init__(self, index):
        self.index = index
        self.resize_hint = None
        self.entries = {}

    def freeze(self):
        return DatabaseSection(self.index, self.resize_hint, MappingProxyType(self.entries))


class ResultBuilder:
    """
    Collects aux fields, database sections and entries for one parse.

    Not safe for concurrent writers; each parse owns its own builder.
    """

    def __init__(self, version, max_total_entries=None):
        self.version = version
        self.max_total_entries = max_total_entries
        self.aux_fields = {}
        self.skipped = []
        self.total_entries = 0
        self._databases = {}
        self._current = None
        self._finished = False

    def _database(self):
        if self._current is None:
            # No SELECTDB seen yet, everything goes to database 0
            self.begin_database(0)
        return self._current

    @property
    def current_db(self):
        return self._database().index

    def add_aux(self, key, value):
        # Repeated keys keep their first position and their last value
        self.aux_fields[key] = value

    def begin_database(self, index):
        db = self._databases.get(index)
        if db is None:
            db = self._databases[index] = _Database(index)
        self._current = db

    def set_resize_hint(self, hash_size, expires_size):
        self._database().resize_hint = ResizeHint(hash_size, expires_size)

    def add_entry(self, entry, offset=None):
        db = self._database()
        if entry.key in db.entries:
            raise ParseError(f"Duplicate key {entry.key!r} in database {db.index}", offset)
        if self.max_total_entries is not None and self.total_entries >= self.max_total_entries:
            raise ResourceLimitExceeded(
                f"More than {self.max_total_entries} entries in file", offset
            )
        db.entries[entry.key] = entry
        self.total_entries += 1

    def add_skipped(self, skipped):
        self.skipped.append(skipped)

    def finish(self, checksum_valid=None):
        if self._finished:
            raise RuntimeError("finish() called twice")
        self._finished = True
        return RDBDocument(
            version=self.version,
            databases=MappingProxyType(
                {index: db.freeze() for index, db in self._databases.items()}
            ),
            aux_fields=MappingProxyType(dict(self.aux_fields)),
            checksum_valid=checksum_valid,
            skipped=tuple(self.skipped),
        )
