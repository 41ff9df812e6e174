"""Demo driver: seeds three keys under the three expiration modes and polls them.

- "A" is added with `add_immediate`; every read toggles a boolean.
- "B" is added with `add` and a short TTL, uninitialized; each refresh
  increments a counter.
- "C" is added with `add_once`; it is never refreshed.

Run with ``python -m refresh_cache.demo`` and press Enter to stop.
"""

import threading
import time
from typing import Callable, Iterable, Optional

from .cache import LazyRefreshCache
from .log import get_logger, setup_logging
from .settings import settings

logger = get_logger(__name__)

DEMO_KEYS = ("A", "B", "C")


class DemoRefresher:
    """Refresh callback owning the state of the demo keys.

    The toggle flag and counter live on the instance, so every cache built
    with its own refresher starts from the same state.
    """

    def __init__(self) -> None:
        self.cache: Optional[LazyRefreshCache] = None
        self.flag = False
        self.counter = 0

    def bind(self, cache: LazyRefreshCache) -> "DemoRefresher":
        self.cache = cache
        return self

    def __call__(self, key: str) -> None:
        if self.cache is None:
            raise RuntimeError("DemoRefresher is not bound to a cache")
        if key == "A":
            self.flag = not self.flag
            self.cache.set(key, self.flag)
        elif key == "B":
            self.counter += 1
            self.cache.set(key, self.counter)
        elif key == "C":
            pass
        else:
            logger.info("No refresh rule for key %r", key)


def build_demo_cache(ttl_seconds: float = settings.demo_ttl_seconds, **cache_kwargs) -> LazyRefreshCache:
    """Create a cache seeded with the demo keys "A", "B" and "C"."""

    refresher = DemoRefresher()
    cache = LazyRefreshCache(refresher, **cache_kwargs)
    refresher.bind(cache)

    cache.add("B", 0, ttl_seconds, is_value_initialized=False)
    cache.add_immediate("A", False)
    cache.add_once("C", "INITIAL_VALUE")
    return cache


def read_all(cache: LazyRefreshCache, keys: Iterable[str] = DEMO_KEYS, label: str = "GET",
             emit: Callable[[str], None] = print) -> None:
    for key in keys:
        emit(f"{label} {key}={cache.get(key)}")


def poll(cache: LazyRefreshCache, cycles: int = settings.poll_cycles,
         interval: float = settings.poll_interval_seconds,
         stop_event: Optional[threading.Event] = None,
         emit: Callable[[str], None] = print) -> int:
    """Read every demo key once per cycle, sleeping `interval` between cycles.

    Returns the number of completed cycles. Stops early when `stop_event` is set.
    """

    stop_event = stop_event or threading.Event()
    done = 0
    while done < cycles and not stop_event.is_set():
        read_all(cache, emit=emit)
        done += 1
        if interval > 0:
            stop_event.wait(interval)
    return done


def start_polling(cache: LazyRefreshCache, stop_event: threading.Event, **poll_kwargs) -> threading.Thread:
    thread = threading.Thread(target=poll, args=(cache,), kwargs={"stop_event": stop_event, **poll_kwargs},
                              name="refresh-cache-poller", daemon=True)
    thread.start()
    return thread


def main() -> None:
    setup_logging(settings.log_level)
    cache = build_demo_cache()
    read_all(cache, label="INIT")

    stop_event = threading.Event()
    thread = start_polling(cache, stop_event)
    started = time.monotonic()
    try:
        input()
    except (EOFError, KeyboardInterrupt):
        pass
    stop_event.set()
    thread.join()
    logger.info("Demo stopped after %.1fs", time.monotonic() - started)


if __name__ == "__main__":
    main()
