from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field


class EntrySnapshot(BaseModel):
    """State of one entry as seen by `peek` (no refresh triggered).

    Notes
    -----
    - `created_at` and `expires_at` are epoch seconds.
    - `stale` is true when the next read will invoke the refresh callback.
    """

    key: str
    value: Any
    created_at: float
    ttl: float
    expires_at: float
    stale: bool


class EntriesResponse(BaseModel):
    count: int
    data: List[EntrySnapshot]


class EntryResponse(BaseModel):
    key: str
    value: Any


class EntryCreate(BaseModel):
    value: Any = None
    mode: Literal["ttl", "immediate", "once"] = "ttl"
    ttl_seconds: Optional[float] = Field(None, description="Required when mode is 'ttl'")
    is_value_initialized: bool = False


class EntryUpdate(BaseModel):
    value: Any = None


class RefreshFailedResponse(BaseModel):
    detail: str
    key: str
    stale_value: Any
