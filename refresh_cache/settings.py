from typing import Optional

from pydantic import BaseModel, ConfigDict


class Settings(BaseModel):
    """Immutable runtime configuration for the cache, the demo and the API.

    Notes
    -----
    - Values here are not read from environment variables. Build a new
      `Settings(...)` and pass its values explicitly to override them.
    - Durations are expressed in seconds.
    """

    model_config = ConfigDict(frozen=True)

    # TTL used by `add_once`; treated as "never" for practical polling horizons
    never_ttl_seconds: int = 24 * 60 * 60
    # How long a reader waits for another thread's refresh of the same key
    lock_timeout_seconds: Optional[float] = 30.0
    # Reset created_at after a staleness check even if the callback did not `set`
    advance_on_stale_check: bool = True

    # demo driver
    poll_interval_seconds: float = 1.0
    poll_cycles: int = 99
    demo_ttl_seconds: int = 2

    # upstream source used by SourceRefresher
    source_base_url: Optional[str] = None
    source_timeout_seconds: float = 10.0

    log_level: str = "INFO"


settings = Settings()
