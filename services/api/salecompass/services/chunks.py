"""Chunked upload splitting and server-side reassembly.

Clients split large sheets into ~50,000 character chunks and post them as
separate JSON requests, possibly concurrently. The server buffers chunks by
explicit index and only concatenates once every index 0..total-1 is present,
so arrival order never matters.

Guarantees:
- Each (upload_id, chunk_index) is applied at most once (first write wins),
  so a client retry after a false-negative timeout cannot double a chunk.
- An upload that does not complete within the TTL is rejected, never
  processed truncated.
- Only one request assembles a completed upload. A client-supplied upload id
  is remembered after completion (a `done` marker with its own TTL), so
  re-sending any chunk of it never imports the sheet a second time.

Buffers live in Redis when it is available and in process memory otherwise
(single-process dev, tests).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from salecompass.services.csv_parser import CsvImportError
from salecompass.settings import get_settings
from salecompass.stores import redis as redis_store

logger = logging.getLogger("uvicorn.error")

DEFAULT_CHUNK_SIZE = 50_000

# Completion marker value while the import of an assembled upload is running
IMPORT_IN_PROGRESS = "importing"


class InvalidChunkError(CsvImportError):
    """Chunk metadata is inconsistent (bad index, changing totalChunks)."""

    code = "INVALID_CHUNK"


class ChunkUploadExpiredError(CsvImportError):
    """Upload session did not complete within the allowed time."""

    code = "CHUNK_UPLOAD_EXPIRED"
    status_code = 410


class UploadTooLargeError(CsvImportError):
    """Assembled upload exceeds the configured size limit."""

    code = "UPLOAD_TOO_LARGE"
    status_code = 413


def split_into_chunks(content: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[str]:
    """Split text into consecutive chunks of at most `chunk_size` characters.

    `"".join(split_into_chunks(c, n)) == c` for every n >= 1. Empty content
    yields a single empty chunk so that an upload always has one request.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    if not content:
        return [""]
    return [content[i : i + chunk_size] for i in range(0, len(content), chunk_size)]


# ============================================================
# Chunk stores
# ============================================================


@dataclass(frozen=True)
class ChunkSessionMeta:
    total_chunks: int
    started_at: float


class ChunkStore(Protocol):
    """Storage backend for upload sessions."""

    async def open_session(
        self, upload_id: str, total_chunks: int, started_at: float, ttl: int
    ) -> ChunkSessionMeta: ...

    async def put_chunk(self, upload_id: str, chunk_index: int, content: str, ttl: int) -> bool: ...

    async def add_size(self, upload_id: str, size: int, ttl: int) -> int: ...

    async def count_chunks(self, upload_id: str) -> int: ...

    async def get_chunks(self, upload_id: str) -> dict[int, str]: ...

    async def delete_session(self, upload_id: str) -> bool: ...

    async def claim_completion(self, upload_id: str, ttl: int) -> bool: ...

    async def get_completion(self, upload_id: str) -> str | None: ...

    async def record_import(self, upload_id: str, import_id: int, ttl: int) -> None: ...

    async def release_completion(self, upload_id: str) -> None: ...

@dataclass
class _MemorySession:
    meta: ChunkSessionMeta
    expires_at: float
    chunks: dict[int, str] = field(default_factory=dict)
    size: int = 0


class MemoryChunkStore:
    """Process-local chunk store.

    Abandoned sessions are purged lazily whenever a new session is opened.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._sessions: dict[str, _MemorySession] = {}
        self._completed: dict[str, tuple[str, float]] = {}  # upload_id -> (marker, expires_at)
        self._clock = clock

    def _purge_expired(self) -> None:
        now = self._clock()
        for key in [k for k, s in self._sessions.items() if s.expires_at <= now]:
            del self._sessions[key]
        for key in [k for k, (_, expires_at) in self._completed.items() if expires_at <= now]:
            del self._completed[key]

    async def open_session(
        self, upload_id: str, total_chunks: int, started_at: float, ttl: int
    ) -> ChunkSessionMeta:
        self._purge_expired()
        session = self._sessions.get(upload_id)
        if session is None:
            session = _MemorySession(
                meta=ChunkSessionMeta(total_chunks=total_chunks, started_at=started_at),
                expires_at=started_at + ttl,
            )
            self._sessions[upload_id] = session
        return session.meta

    async def put_chunk(self, upload_id: str, chunk_index: int, content: str, ttl: int) -> bool:
        session = self._sessions[upload_id]
        if chunk_index in session.chunks:
            return False
        session.chunks[chunk_index] = content
        return True

    async def add_size(self, upload_id: str, size: int, ttl: int) -> int:
        session = self._sessions[upload_id]
        session.size += size
        return session.size

    async def count_chunks(self, upload_id: str) -> int:
        session = self._sessions.get(upload_id)
        return len(session.chunks) if session else 0

    async def get_chunks(self, upload_id: str) -> dict[int, str]:
        session = self._sessions.get(upload_id)
        return dict(session.chunks) if session else {}

    async def delete_session(self, upload_id: str) -> bool:
        return self._sessions.pop(upload_id, None) is not None

    async def claim_completion(self, upload_id: str, ttl: int) -> bool:
        self._purge_expired()
        if upload_id in self._completed:
            return False
        self._completed[upload_id] = (IMPORT_IN_PROGRESS, self._clock() + ttl)
        return True

    async def get_completion(self, upload_id: str) -> str | None:
        self._purge_expired()
        entry = self._completed.get(upload_id)
        return entry[0] if entry else None

    async def record_import(self, upload_id: str, import_id: int, ttl: int) -> None:
        self._completed[upload_id] = (str(import_id), self._clock() + ttl)

    async def release_completion(self, upload_id: str) -> None:
        self._completed.pop(upload_id, None)


class RedisChunkStore:
    """Chunk store shared by all API workers."""

    async def open_session(
        self, upload_id: str, total_chunks: int, started_at: float, ttl: int
    ) -> ChunkSessionMeta:
        raw = await redis_store.chunk_session_open(upload_id, total_chunks, started_at, ttl)
        return ChunkSessionMeta(
            total_chunks=int(raw.get("total_chunks", total_chunks)),
            started_at=float(raw.get("started_at", started_at)),
        )

    async def put_chunk(self, upload_id: str, chunk_index: int, content: str, ttl: int) -> bool:
        return await redis_store.chunk_put(upload_id, chunk_index, content, ttl)

    async def add_size(self, upload_id: str, size: int, ttl: int) -> int:
        return await redis_store.chunk_add_size(upload_id, size, ttl)

    async def count_chunks(self, upload_id: str) -> int:
        return await redis_store.chunk_count(upload_id)

    async def get_chunks(self, upload_id: str) -> dict[int, str]:
        return await redis_store.chunk_get_all(upload_id)

    async def delete_session(self, upload_id: str) -> bool:
        return await redis_store.chunk_session_delete(upload_id)

    async def claim_completion(self, upload_id: str, ttl: int) -> bool:
        return await redis_store.chunk_claim_completion(upload_id, IMPORT_IN_PROGRESS, ttl)

    async def get_completion(self, upload_id: str) -> str | None:
        return await redis_store.chunk_get_completion(upload_id)

    async def record_import(self, upload_id: str, import_id: int, ttl: int) -> None:
        await redis_store.chunk_set_completion(upload_id, str(import_id), ttl)

    async def release_completion(self, upload_id: str) -> None:
        await redis_store.chunk_release_completion(upload_id)


# ============================================================
# Assembler
# ============================================================


@dataclass
class ChunkProgress:
    """Outcome of receiving one chunk.

    `content` is set only on the request that completed (and claimed) the
    upload. `already_imported` is set when the upload id was assembled
    before; `import_id` then carries the earlier import when it is known.
    """

    upload_id: str
    received_chunks: int
    total_chunks: int
    duplicate: bool = False
    content: str | None = None
    already_imported: bool = False
    import_id: int | None = None

    @property
    def is_complete(self) -> bool:
        return self.content is not None


class ChunkAssembler:
    """Buffers chunks per upload session and reassembles them by index.

    With `remember_completion`, a completed upload id is kept for
    `completed_ttl_seconds`: chunks re-sent after completion are answered as
    already imported instead of starting a new session.
    """

    def __init__(
        self,
        store: ChunkStore,
        *,
        ttl_seconds: int,
        max_upload_bytes: int,
        completed_ttl_seconds: int = 86_400,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._ttl = ttl_seconds
        self._max_bytes = max_upload_bytes
        self._completed_ttl = completed_ttl_seconds
        self._clock = clock

    async def add_chunk(
        self,
        *,
        upload_id: str,
        chunk_index: int,
        total_chunks: int,
        content: str,
        remember_completion: bool = True,
    ) -> ChunkProgress:
        """Buffer one chunk and assemble the upload when all indices are present.

        Raises:
            InvalidChunkError: Bad index or totalChunks differing from the session.
            ChunkUploadExpiredError: Session older than the TTL.
            UploadTooLargeError: Received bytes exceed the limit.
        """
        if total_chunks < 1:
            raise InvalidChunkError(f"totalChunks must be >= 1, got {total_chunks}")
        if not 0 <= chunk_index < total_chunks:
            raise InvalidChunkError(
                f"chunkIndex {chunk_index} out of range for totalChunks={total_chunks}",
                detail={"chunk_index": chunk_index, "total_chunks": total_chunks},
            )

        if remember_completion:
            marker = await self._store.get_completion(upload_id)
            if marker is not None:
                logger.info(f"[chunks] chunk for completed upload ignored upload_id={upload_id} index={chunk_index}")
                return self._already_imported(upload_id, total_chunks, marker)

        now = self._clock()
        # Keys outlive the TTL so a late chunk is reported as expired instead
        # of silently opening a new session.
        key_ttl = self._ttl * 2
        meta = await self._store.open_session(upload_id, total_chunks, now, key_ttl)

        if now - meta.started_at > self._ttl:
            await self._store.delete_session(upload_id)
            logger.warning(f"[chunks] upload expired upload_id={upload_id}")
            raise ChunkUploadExpiredError(
                f"Upload {upload_id} did not complete within {self._ttl}s; restart the upload",
                detail={"upload_id": upload_id},
            )

        if meta.total_chunks != total_chunks:
            raise InvalidChunkError(
                f"totalChunks changed for upload {upload_id}: {meta.total_chunks} -> {total_chunks}",
                detail={"upload_id": upload_id, "expected": meta.total_chunks, "got": total_chunks},
            )

        stored = await self._store.put_chunk(upload_id, chunk_index, content, key_ttl)
        if stored:
            size = await self._store.add_size(upload_id, len(content.encode("utf-8")), key_ttl)
            if size > self._max_bytes:
                await self._store.delete_session(upload_id)
                raise UploadTooLargeError(
                    f"Upload exceeds the {self._max_bytes} byte limit",
                    detail={"upload_id": upload_id, "max_bytes": self._max_bytes},
                )
        else:
            logger.info(f"[chunks] duplicate chunk ignored upload_id={upload_id} index={chunk_index}")

        received = await self._store.count_chunks(upload_id)
        progress = ChunkProgress(
            upload_id=upload_id,
            received_chunks=received,
            total_chunks=total_chunks,
            duplicate=not stored,
        )
        if received < total_chunks:
            return progress

        # Claim the upload: only one request assembles and imports it.
        if remember_completion:
            if not await self._store.claim_completion(upload_id, self._completed_ttl):
                marker = await self._store.get_completion(upload_id)
                return self._already_imported(upload_id, total_chunks, marker or IMPORT_IN_PROGRESS)
            chunks = await self._store.get_chunks(upload_id)
            await self._store.delete_session(upload_id)
        else:
            chunks = await self._store.get_chunks(upload_id)
            if not await self._store.delete_session(upload_id):
                # Another request completed the same upload concurrently.
                return progress

        progress.content = "".join(chunks[i] for i in range(total_chunks))
        logger.info(
            f"[chunks] assembled upload_id={upload_id} chunks={total_chunks} chars={len(progress.content)}"
        )
        return progress

    async def record_import(self, upload_id: str, import_id: int) -> None:
        """Remember which import a completed upload produced."""
        await self._store.record_import(upload_id, import_id, self._completed_ttl)

    async def release_completion(self, upload_id: str) -> None:
        """Forget a completed upload whose import failed, so a retry can run it again."""
        await self._store.release_completion(upload_id)

    def _already_imported(self, upload_id: str, total_chunks: int, marker: str) -> ChunkProgress:
        return ChunkProgress(
            upload_id=upload_id,
            received_chunks=total_chunks,
            total_chunks=total_chunks,
            duplicate=True,
            already_imported=True,
            import_id=int(marker) if marker.isdigit() else None,
        )


_memory_store: MemoryChunkStore | None = None


def get_chunk_assembler() -> ChunkAssembler:
    """Assembler backed by Redis when connected, process memory otherwise."""
    global _memory_store
    settings = get_settings()

    store: ChunkStore
    if redis_store.is_redis_initialized():
        store = RedisChunkStore()
    else:
        if _memory_store is None:
            _memory_store = MemoryChunkStore()
        store = _memory_store

    return ChunkAssembler(
        store,
        ttl_seconds=settings.chunk_upload_ttl_seconds,
        max_upload_bytes=settings.max_upload_bytes,
        completed_ttl_seconds=settings.completed_upload_ttl_seconds,
    )
