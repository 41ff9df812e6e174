from typing import Any, Optional

import httpx

from .cache import LazyRefreshCache
from .log import get_logger
from .settings import settings

logger = get_logger(__name__)


class SourceRefresher:
    """Refresh callback that pulls fresh values from an HTTP source of truth.

    Parameters
    ----------
    base_url : Optional[str]
        Base URL of the source. Defaults to `settings.source_base_url`.
    timeout : Optional[float]
        Per-request timeout in seconds, bounding how long a `get` can spend
        inside the callback. Defaults to `settings.source_timeout_seconds`.
    transport : Optional[httpx.BaseTransport]
        Custom transport, mainly for tests.

    Notes
    -----
    - Source: `{base_url}/values/{key}`, expected to answer `{"value": ...}`.
    - HTTP and transport errors propagate, so the reading `get` raises
      `RefreshCallbackError` and the entry is retried on the next read.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        base_url = base_url or settings.source_base_url
        if not base_url:
            raise ValueError("SourceRefresher needs a base_url")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.source_timeout_seconds
        self.transport = transport
        self.cache: Optional[LazyRefreshCache] = None

    def bind(self, cache: LazyRefreshCache) -> "SourceRefresher":
        self.cache = cache
        return self

    def _get_json(self, url: str) -> Any:
        """Perform a GET request and return the parsed JSON payload.

        Raises
        ------
        httpx.HTTPStatusError
            If the response has a 4xx/5xx status code.
        httpx.RequestError
            For transport-level errors (DNS, timeouts, etc.).
        """

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            r = client.get(url)
            r.raise_for_status()
            return r.json()

    def fetch(self, key: str) -> Any:
        data = self._get_json(f"{self.base_url}/values/{key}")
        if not isinstance(data, dict) or "value" not in data:
            raise ValueError(f"Source returned no value for key {key!r}")
        return data["value"]

    def __call__(self, key: str) -> None:
        if self.cache is None:
            raise RuntimeError("SourceRefresher is not bound to a cache")
        value = self.fetch(key)
        logger.debug("Fetched fresh value for key %r from %s", key, self.base_url)
        self.cache.set(key, value)
