from typing import Any, Hashable


class CacheError(Exception):
    """Base class for every error raised by the cache."""


class KeyNotFoundError(CacheError, KeyError):
    """The key was never added, or has already been removed."""

    def __init__(self, key: Hashable):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Key not found: {self.key!r}"


class InvalidTTLError(CacheError, ValueError):
    """A TTL that is negative, NaN, infinite or not a number."""

    def __init__(self, ttl: Any):
        super().__init__(f"Invalid TTL: {ttl!r}")
        self.ttl = ttl


class RefreshCallbackError(CacheError):
    """The refresh callback raised while refreshing a stale entry.

    Parameters
    ----------
    key : Hashable
        Key whose refresh failed.
    stale_value : Any
        Value held by the entry when the refresh was attempted. Callers may
        serve it deliberately as a degraded response.

    Notes
    -----
    - The original exception is available as `__cause__`.
    """

    def __init__(self, key: Hashable, stale_value: Any):
        super().__init__(f"Refresh callback failed for key {key!r}")
        self.key = key
        self.stale_value = stale_value


class RefreshTimeoutError(CacheError, TimeoutError):
    """Waiting for another thread's in-flight refresh took too long."""

    def __init__(self, key: Hashable, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting to refresh key {key!r}")
        self.key = key
        self.timeout = timeout
