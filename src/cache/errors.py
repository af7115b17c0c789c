"""Exception types for the cache layer.

Backend failures are never raised to callers; these cover programming
errors and payloads the cache cannot use.
"""


class CacheError(Exception):
    """Base class for cache layer errors."""


class CacheDecodeError(CacheError):
    """Cached payload could not be decoded.

    Callers treat this exactly like a cache miss.
    """


class InvalidKeyPartError(CacheError, ValueError):
    """A key part would make the key ambiguous or act as a glob."""

    def __init__(self, part: object, reason: str) -> None:
        self.part = part
        self.reason = reason
        super().__init__(f"Invalid cache key part {part!r}: {reason}")


class UnsafePatternError(CacheError, ValueError):
    """An invalidation pattern does not start with a known key prefix."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        super().__init__(f"Refusing to invalidate unsafe pattern: {pattern!r}")
