"""In-memory cache with lazy, callback-driven refresh.

Staleness is only detected on `get`; there is no background reaper. When a
read finds an entry past its expiry, the owner's refresh callback is invoked
on the calling thread so it can repopulate the entry (normally through `set`)
before the value is returned.

The cache is process-local and safe for concurrent access from threads of the
same process. Refreshes are single-flight per key: while one thread runs the
callback for a key, other readers of that key wait and then see the refreshed
value.
"""

import math
import threading
import time
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import InvalidTTLError, KeyNotFoundError, RefreshCallbackError, RefreshTimeoutError
from .log import get_logger
from .settings import settings

logger = get_logger(__name__)

RefreshCallback = Callable[[str], None]
TTL = Union[int, float, timedelta]


@dataclass(frozen=True)
class CacheEntry:
    """Snapshot of one cached item.

    `created_at` is the instant the entry was last considered fresh and
    `ttl` how long after that it stays fresh. A `ttl` of 0 means always stale.
    """

    value: Any
    created_at: float
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl

    def is_stale(self, now: float) -> bool:
        return now >= self.expires_at


def _validate_ttl(ttl: TTL) -> float:
    if isinstance(ttl, timedelta):
        ttl = ttl.total_seconds()
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise InvalidTTLError(ttl)
    if math.isnan(ttl) or math.isinf(ttl) or ttl < 0:
        raise InvalidTTLError(ttl)
    return float(ttl)


class _KeyLock:
    """Per-key refresh lock plus the number of readers holding a reference to it."""

    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class LazyRefreshCache:
    """Key-value cache whose stale entries are refreshed on read.

    Parameters
    ----------
    refresh_callback : Optional[Callable[[str], None]]
        Called with the stale key from inside `get`. Expected to call `set` on
        this cache for that key. `None` makes refreshes a no-op.
    never_ttl : int | float | timedelta
        TTL given to entries inserted with `add_once`.
    lock_timeout : Optional[float]
        Seconds a reader waits for another thread's in-flight refresh of the
        same key before `RefreshTimeoutError` is raised. `None` waits forever.
    advance_on_stale_check : bool
        When true, `created_at` is reset after every successful staleness
        check even if the callback declined to `set`, so a no-op callback is
        retried at most once per TTL. When false, such an entry stays stale
        and the callback runs again on the next read.
    time_func : Callable[[], float]
        Clock returning seconds. Injectable for tests.

    Notes
    -----
    - The callback may call `set`, `remove` or any `add*` method of this
      cache, but must not call `get` for the key it is refreshing.
    - A failing callback leaves `created_at` untouched, so the next read
      retries the refresh.
    - `lock_timeout` only bounds readers waiting on another thread's refresh.
      The thread running the callback waits as long as the callback does, so
      callbacks doing I/O must bound their own run time (see
      `SourceRefresher`, which uses a request timeout).
    - A per-key lock lives only while some reader holds it; removing or
      re-adding a key never swaps the lock under an in-flight refresh.
    """

    def __init__(
        self,
        refresh_callback: Optional[RefreshCallback] = None,
        *,
        never_ttl: TTL = settings.never_ttl_seconds,
        lock_timeout: Optional[float] = settings.lock_timeout_seconds,
        advance_on_stale_check: bool = settings.advance_on_stale_check,
        time_func: Callable[[], float] = time.time,
    ):
        self._refresh_callback = refresh_callback
        self._never_ttl = _validate_ttl(never_ttl)
        self._lock_timeout = lock_timeout
        self._advance_on_stale_check = advance_on_stale_check
        self._time_func = time_func

        self._entries: Dict[str, CacheEntry] = {}
        self._key_locks: Dict[str, _KeyLock] = {}
        self._lock = threading.Lock()

    @property
    def never_ttl(self) -> float:
        return self._never_ttl

    # insertion

    def _insert(self, key: str, value: Any, ttl: float, is_value_initialized: bool) -> None:
        now = self._time_func()
        created_at = now if is_value_initialized else now - ttl
        with self._lock:
            self._entries[key] = CacheEntry(value=value, created_at=created_at, ttl=ttl)

    def add(self, key: str, value: Any, ttl_seconds: TTL, is_value_initialized: bool = False) -> None:
        """Insert or replace an entry that expires `ttl_seconds` after it is fresh.

        Parameters
        ----------
        key : str
            Cache key.
        value : Any
            Initial value, stored immediately.
        ttl_seconds : int | float | timedelta
            Time-to-live. Must be finite and non-negative.
        is_value_initialized : bool
            True when `value` is already correct: the first `get` will not
            refresh. False when it is a placeholder: `created_at` is backdated
            by exactly the TTL so the first `get` refreshes.

        Raises
        ------
        InvalidTTLError
            If `ttl_seconds` is negative, NaN, infinite or not a number.
        """

        ttl = _validate_ttl(ttl_seconds)
        self._insert(key, value, ttl, is_value_initialized)

    def add_immediate(self, key: str, value: Any) -> None:
        """Insert an entry with a TTL of 0: every `get` refreshes it."""

        self._insert(key, value, 0.0, True)

    def add_once(self, key: str, value: Any, is_value_initialized: bool = True) -> None:
        """Insert an entry that effectively never expires (see `never_ttl`).

        With `is_value_initialized=False` the first `get` still refreshes it
        once; after that it stays fresh for the whole `never_ttl` horizon.
        """

        self._insert(key, value, self._never_ttl, is_value_initialized)

    # read / write

    def _checkout_lock(self, key: str) -> _KeyLock:
        with self._lock:
            if key not in self._entries:
                raise KeyNotFoundError(key)
            holder = self._key_locks.get(key)
            if holder is None:
                holder = self._key_locks[key] = _KeyLock()
            holder.refs += 1
            return holder

    def _checkin_lock(self, key: str, holder: _KeyLock) -> None:
        with self._lock:
            holder.refs -= 1
            if holder.refs == 0 and self._key_locks.get(key) is holder:
                del self._key_locks[key]

    def get(self, key: str) -> Any:
        """Return the value for `key`, refreshing it first if it is stale.

        Parameters
        ----------
        key : str
            Cache key previously inserted with one of the `add*` methods.

        Returns
        -------
        Any
            The current value, post-refresh if a refresh happened in this call.

        Raises
        ------
        KeyNotFoundError
            If `key` was never added, was removed, or was removed by the callback.
        RefreshCallbackError
            If the refresh callback raised. Carries the stale value.
        RefreshTimeoutError
            If another thread's refresh of `key` did not finish within `lock_timeout`.
        """

        holder = self._checkout_lock(key)
        try:
            timeout = -1 if self._lock_timeout is None else self._lock_timeout
            if not holder.lock.acquire(timeout=timeout):
                logger.warning("Timed out waiting for in-flight refresh of key %r", key)
                raise RefreshTimeoutError(key, self._lock_timeout)
            try:
                return self._read(key)
            finally:
                holder.lock.release()
        finally:
            self._checkin_lock(key, holder)

    def _read(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            raise KeyNotFoundError(key)

        now = self._time_func()
        if not entry.is_stale(now):
            return entry.value

        self._refresh(key, entry, now)
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            raise KeyNotFoundError(key)
        return entry.value

    def _refresh(self, key: str, stale: CacheEntry, now: float) -> None:
        logger.debug("Refreshing stale key %r (expired at %s)", key, stale.expires_at)
        if self._refresh_callback is not None:
            try:
                self._refresh_callback(key)
            except Exception as exc:
                logger.warning("Refresh callback failed for key %r", key, exc_info=True)
                raise RefreshCallbackError(key, stale.value) from exc

        if self._advance_on_stale_check:
            with self._lock:
                current = self._entries.get(key)
                if current is not None:
                    self._entries[key] = replace(current, created_at=now)

    def set(self, key: str, value: Any) -> None:
        """Replace the value for `key` and mark it fresh. The TTL is kept.

        Raises
        ------
        KeyNotFoundError
            If `key` was never added or has been removed.
        """

        now = self._time_func()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise KeyNotFoundError(key)
            self._entries[key] = CacheEntry(value=value, created_at=now, ttl=entry.ttl)

    def remove(self, key: str) -> bool:
        """Drop `key`. Returns False when it was not present; never raises."""

        with self._lock:
            existed = self._entries.pop(key, None) is not None
        return existed

    # inspection

    def peek(self, key: str) -> CacheEntry:
        """Return the entry for `key` without checking staleness or refreshing."""

        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            raise KeyNotFoundError(key)
        return entry

    def now(self) -> float:
        """Current time on the clock this cache uses for staleness checks."""

        return self._time_func()

    def is_stale(self, key: str) -> bool:
        return self.peek(key).is_stale(self._time_func())

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        """Remove all entries from the cache."""

        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
