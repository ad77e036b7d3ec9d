"""
CacheKeyBuilder - deterministic cache keys from an operation and its arguments.

Key layout: ``v1:<operation>:<arg>:<arg>...``. Subject-scoped operations put
the subject id first so every facet of one subject shares a prefix.

Integers and plain strings appear as themselves. None, booleans, floats and
hashed strings carry a ``~`` tag, and a string that itself starts with ``~``
is always hashed, so no two distinct arguments share a segment.
"""

import hashlib
from enum import Enum
from typing import Any

# Bump to orphan every existing entry when the layout changes
KEY_VERSION = "v1"
SEPARATOR = ":"
TAG = "~"

_MAX_PLAIN_LENGTH = 64


class CacheKeyBuilder:
    """
    Builds cache keys.

    Usage:
        keys = CacheKeyBuilder()
        keys.build_key("person", [287, "credits"])     # v1:person:287:credits
        keys.build_pair_key("comparison", 819, 287)    # v1:comparison:287:819
        keys.prefix("person", 287)                     # v1:person:287:
    """

    def __init__(self, version: str = KEY_VERSION):
        self.version = version

    def build_key(self, operation: str, args: list[Any] | tuple[Any, ...] = ()) -> str:
        """Build the key for ``operation`` called with ``args``."""
        parts = [self.version, self._normalize(operation)]
        parts.extend(self._normalize(arg) for arg in args)
        return SEPARATOR.join(parts)

    def build_pair_key(self, operation: str, first: Any, second: Any, *extra: Any) -> str:
        """Build a key for a two-subject operation, independent of argument order."""
        low, high = sorted((first, second), key=_pair_sort_key)
        return self.build_key(operation, [low, high, *extra])

    def prefix(self, operation: str, *args: Any) -> str:
        """Prefix shared by every key built from ``operation`` and leading ``args``."""
        return self.build_key(operation, args) + SEPARATOR

    def pair_key_mentions(self, key: str, operation: str, member: Any, *extra: Any) -> bool:
        """
        Whether ``key`` is a pair key of ``operation`` with ``member`` on
        either side and ``extra`` as its trailing arguments.
        """
        head = self.prefix(operation)
        if not key.startswith(head):
            return False
        parts = key[len(head):].split(SEPARATOR)
        tail = [self._normalize(arg) for arg in extra]
        return self._normalize(member) in parts[:2] and parts[2:] == tail

    @staticmethod
    def _normalize(value: Any) -> str:
        # bool first: it is also an int
        if isinstance(value, bool):
            return f"{TAG}true" if value else f"{TAG}false"
        if value is None:
            return f"{TAG}none"
        if isinstance(value, Enum):
            return CacheKeyBuilder._normalize(value.value)
        if isinstance(value, int):
            return str(value)
        if isinstance(value, float):
            return f"{TAG}f{value!r}"
        if isinstance(value, str):
            text = value.strip().lower()
            if (
                not text
                or text.startswith(TAG)
                or SEPARATOR in text
                or any(ch.isspace() for ch in text)
                or len(text) > _MAX_PLAIN_LENGTH
            ):
                digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]
                return f"{TAG}h{digest}"
            return text
        raise TypeError(f"Unsupported cache key argument: {type(value).__name__}")


def _pair_sort_key(value: Any) -> tuple[int, Any]:
    """Numeric ids sort numerically, anything else by its normalized text."""
    if isinstance(value, int) and not isinstance(value, bool):
        return (0, value)
    if isinstance(value, str) and value.strip().isdigit():
        return (0, int(value.strip()))
    return (1, CacheKeyBuilder._normalize(value))
