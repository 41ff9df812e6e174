from fastapi import Depends, FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .cache import LazyRefreshCache
from .demo import build_demo_cache
from .errors import InvalidTTLError, KeyNotFoundError, RefreshCallbackError, RefreshTimeoutError
from .log import get_logger
from .schemas import EntriesResponse, EntryCreate, EntryResponse, EntrySnapshot, EntryUpdate, RefreshFailedResponse

logger = get_logger(__name__)

app = FastAPI(title="Refresh Cache API", version="1.0.0")
cache = build_demo_cache()


def get_cache() -> LazyRefreshCache:
    return cache


@app.get("/health")
async def health():
    """Liveness probe for the service.

    Returns
    -------
    dict
        A fixed payload `{"status": "ok"}` used by orchestrators and uptime checks.
    """

    return {"status": "ok"}


@app.get("/v1/entries", response_model=EntriesResponse)
def list_entries(c: LazyRefreshCache = Depends(get_cache)):
    """List every entry without refreshing anything.

    Notes
    -----
    - Uses `peek`, so stale entries are reported with `stale: true` and keep
      their stale value. Keys removed concurrently are skipped.
    """

    now = c.now()
    items = []
    for key in c.keys():
        try:
            entry = c.peek(key)
        except KeyNotFoundError:
            continue
        items.append(EntrySnapshot(key=key, value=entry.value, created_at=entry.created_at, ttl=entry.ttl,
                                   expires_at=entry.expires_at, stale=entry.is_stale(now)))
    return {"count": len(items), "data": items}


@app.get("/v1/entries/{key}", response_model=EntryResponse,
         responses={502: {"model": RefreshFailedResponse}})
def read_entry(key: str, c: LazyRefreshCache = Depends(get_cache)):
    """Read an entry through the cache, refreshing it first when stale.

    Raises
    ------
    HTTPException
        404 if the key is unknown.
        503 if another refresh of the same key did not finish in time.

    Notes
    -----
    - A failing refresh callback answers 502 and includes the stale value so
      clients can decide whether to use it.
    """

    try:
        value = c.get(key)
    except KeyNotFoundError:
        raise HTTPException(status_code=404, detail="Key not found")
    except RefreshTimeoutError:
        raise HTTPException(status_code=503, detail="Refresh in progress, try again")
    except RefreshCallbackError as exc:
        payload = {"detail": "Refresh failed", "key": key, "stale_value": exc.stale_value}
        return JSONResponse(status_code=502, content=jsonable_encoder(payload))
    return {"key": key, "value": value}


@app.post("/v1/entries/{key}", response_model=EntryResponse, status_code=201)
def create_entry(key: str, body: EntryCreate, c: LazyRefreshCache = Depends(get_cache)):
    """Insert or replace an entry using one of the three expiration modes.

    Raises
    ------
    HTTPException
        422 if `mode` is "ttl" and `ttl_seconds` is missing or invalid.
    """

    if body.mode == "immediate":
        c.add_immediate(key, body.value)
    elif body.mode == "once":
        c.add_once(key, body.value, body.is_value_initialized)
    else:
        if body.ttl_seconds is None:
            raise HTTPException(status_code=422, detail="ttl_seconds is required for mode 'ttl'")
        try:
            c.add(key, body.value, body.ttl_seconds, body.is_value_initialized)
        except InvalidTTLError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
    logger.info("Added key %r with mode %s", key, body.mode)
    return {"key": key, "value": body.value}


@app.put("/v1/entries/{key}", response_model=EntryResponse)
def update_entry(key: str, body: EntryUpdate, c: LazyRefreshCache = Depends(get_cache)):
    try:
        c.set(key, body.value)
    except KeyNotFoundError:
        raise HTTPException(status_code=404, detail="Key not found")
    return {"key": key, "value": body.value}


@app.delete("/v1/entries/{key}", status_code=204)
def delete_entry(key: str, c: LazyRefreshCache = Depends(get_cache)):
    c.remove(key)
