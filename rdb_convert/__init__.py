"""Decoder for Redis RDB snapshot files"""

from .errors import (
    Cancelled,
    ChecksumError,
    DecompressionError,
    FormatError,
    ParseError,
    RDBError,
    RDBIOError,
    ResourceLimitExceeded,
    UnexpectedEOF,
    UnsupportedEncodingError,
)
from .model import (
    DatabaseSection,
    HashValue,
    KeyEntry,
    ListValue,
    RDBDocument,
    ResizeHint,
    ScoredMember,
    SetValue,
    SkippedKey,
    SortedSetValue,
    StreamEntry,
    StreamID,
    StreamValue,
    StringValue,
    ValueType,
)
from .options import ParseOptions, UnsupportedEncodingPolicy
from .parser import RDBParser, parse, parse_file

__version__ = "0.1.0"
