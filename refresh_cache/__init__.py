from .cache import CacheEntry, LazyRefreshCache
from .errors import CacheError, InvalidTTLError, KeyNotFoundError, RefreshCallbackError, RefreshTimeoutError

__all__ = [
    "CacheEntry",
    "LazyRefreshCache",
    "CacheError",
    "InvalidTTLError",
    "KeyNotFoundError",
    "RefreshCallbackError",
    "RefreshTimeoutError",
]
