"""Redis store for chunked-upload buffering.

Handles:
- Connection lifecycle
- Per-upload chunk buffers keyed by chunk index (HSETNX: first write wins)
- TTL on every buffer key so abandoned uploads are cleaned up

Key layout (one upload session):
- chunks:{upload_id}:meta  hash {total_chunks, started_at}
- chunks:{upload_id}:data  hash {chunk_index: content}
- chunks:{upload_id}:size  int  (bytes received)
- chunks:{upload_id}:done  str  ("importing", then the import id; outlives the session)
"""

import logging

import redis.asyncio as redis

from salecompass.settings import get_settings

# Key prefixes
PREFIX_CHUNKS = "chunks:"

# Redis client (initialized on startup)
_redis: redis.Redis | None = None
logger = logging.getLogger("uvicorn.error")


async def init_redis() -> None:
    """Initialize Redis connection."""
    global _redis
    settings = get_settings()
    client = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
    )
    # Validate connectivity early (especially for `rediss://` in production).
    await client.ping()
    _redis = client
    logger.info("Redis connected")


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def is_redis_initialized() -> bool:
    """True once init_redis() succeeded."""
    return _redis is not None


def _get_redis() -> redis.Redis:
    """Get Redis client instance."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def _keys(upload_id: str) -> tuple[str, str, str]:
    base = f"{PREFIX_CHUNKS}{upload_id}"
    return f"{base}:meta", f"{base}:data", f"{base}:size"


# ============================================================
# Chunk buffer operations
# ============================================================


async def chunk_session_open(
    upload_id: str,
    total_chunks: int,
    started_at: float,
    ttl: int,
) -> dict[str, str]:
    """Create session metadata if absent and return the stored metadata.

    Args:
        upload_id: Upload session key.
        total_chunks: Declared number of chunks.
        started_at: Epoch seconds of the first chunk.
        ttl: Key time-to-live in seconds.

    Returns:
        Stored metadata ({"total_chunks", "started_at"}) as strings.
    """
    meta_key, _, _ = _keys(upload_id)
    client = _get_redis()
    await client.hsetnx(meta_key, "total_chunks", str(total_chunks))
    await client.hsetnx(meta_key, "started_at", repr(started_at))
    await client.expire(meta_key, ttl)
    return await client.hgetall(meta_key)


async def chunk_put(upload_id: str, chunk_index: int, content: str, ttl: int) -> bool:
    """Store one chunk unless that index was already received.

    Returns:
        True if stored, False if the index was a duplicate.
    """
    _, data_key, _ = _keys(upload_id)
    client = _get_redis()
    stored = await client.hsetnx(data_key, str(chunk_index), content)
    await client.expire(data_key, ttl)
    return bool(stored)


async def chunk_add_size(upload_id: str, size: int, ttl: int) -> int:
    """Add to the received-bytes counter and return the new total."""
    _, _, size_key = _keys(upload_id)
    client = _get_redis()
    total = await client.incrby(size_key, size)
    await client.expire(size_key, ttl)
    return int(total)


async def chunk_count(upload_id: str) -> int:
    """Number of distinct chunk indices received."""
    _, data_key, _ = _keys(upload_id)
    return int(await _get_redis().hlen(data_key))


async def chunk_get_all(upload_id: str) -> dict[int, str]:
    """All buffered chunks keyed by index."""
    _, data_key, _ = _keys(upload_id)
    raw = await _get_redis().hgetall(data_key)
    return {int(k): v for k, v in raw.items()}


async def chunk_session_delete(upload_id: str) -> bool:
    """Delete the session.

    Returns:
        True if this call removed the session, False if it was already gone.
        Used as an atomic claim so only one request assembles an upload.
    """
    meta_key, data_key, size_key = _keys(upload_id)
    deleted = await _get_redis().delete(meta_key, data_key, size_key)
    return int(deleted) > 0


def _done_key(upload_id: str) -> str:
    return f"{PREFIX_CHUNKS}{upload_id}:done"


async def chunk_claim_completion(upload_id: str, marker: str, ttl: int) -> bool:
    """Mark an upload as completed unless it already is (SET NX).

    Returns:
        True if this call claimed the upload.
    """
    claimed = await _get_redis().set(_done_key(upload_id), marker, nx=True, ex=ttl)
    return bool(claimed)


async def chunk_get_completion(upload_id: str) -> str | None:
    """Completion marker of an upload, or None if it never completed."""
    return await _get_redis().get(_done_key(upload_id))


async def chunk_set_completion(upload_id: str, marker: str, ttl: int) -> None:
    await _get_redis().set(_done_key(upload_id), marker, ex=ttl)


async def chunk_release_completion(upload_id: str) -> None:
    await _get_redis().delete(_done_key(upload_id))
