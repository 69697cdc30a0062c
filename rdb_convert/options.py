"""Parse options and per-value resource accounting"""

import enum
from dataclasses import dataclass
from typing import Any, Optional

from .errors import ResourceLimitExceeded


class UnsupportedEncodingPolicy(enum.Enum):
    FAIL = "fail"
    SKIP = "skip"


@dataclass(frozen=True)
class ParseOptions:
    strict_checksum: bool = True
    max_value_bytes: Optional[int] = None
    max_total_entries: Optional[int] = None
    unsupported_encoding_policy: UnsupportedEncodingPolicy = UnsupportedEncodingPolicy.FAIL
    # Anything with is_set(), e.g. threading.Event
    cancel_event: Optional[Any] = None

    def __post_init__(self):
        for name in ("max_value_bytes", "max_total_entries"):
            limit = getattr(self, name)
            if limit is not None and limit < 0:
                raise ValueError(f"{name} must be non-negative, got {limit}")
        if not isinstance(self.unsupported_encoding_policy, UnsupportedEncodingPolicy):
            object.__setattr__(
                self,
                "unsupported_encoding_policy",
                UnsupportedEncodingPolicy(self.unsupported_encoding_policy),
            )


class ValueBudget:
    """Bytes a single key/value pair may materialize before the parse fails"""

    def __init__(self, limit=None):
        self.limit = limit
        self.used = 0

    def check(self, n, offset=None):
        """Fail if ``n`` more bytes would go over the limit, without charging them"""
        if self.limit is not None and self.used + n > self.limit:
            raise ResourceLimitExceeded(
                f"Value needs {self.used + n} bytes, limit is {self.limit}", offset
            )

    def charge(self, n, offset=None):
        self.check(n, offset)
        self.used += n
