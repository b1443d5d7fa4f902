"""Durable memoization of transcription results.

Backed by a SQLite file in the cache root. A cache that fails to open is
disabled rather than fatal: transcription keeps working, only without
memoization. Lookup and write failures are logged and treated as a miss or
a no-op.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from persistence import (
    TranscriptCacheEntry,
    create_cache_engine,
    create_session_factory,
    init_db,
    make_cache_key,
)

logger = logging.getLogger(__name__)


@dataclass
class CachedTranscript:
    """Read-only view of one cache row."""

    session_id: str
    create_time: int
    transcript: str
    created_at: int


class TranscriptCache:
    """Keyed (session_id, create_time) → transcript store."""

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def enabled(self) -> bool:
        return self._session_factory is not None

    async def initialize(self) -> bool:
        """Open the database and create the schema. Returns False when disabled."""
        if self.enabled:
            return True

        engine = None
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            engine = create_cache_engine(self._db_path)
            await init_db(engine)
        except Exception:
            logger.exception("Transcript cache initialization failed at %s, caching disabled", self._db_path)
            if engine is not None:
                await engine.dispose()
            return False

        self._engine = engine
        self._session_factory = create_session_factory(engine)
        logger.info("Transcript cache ready: %s", self._db_path)
        return True

    async def get(self, session_id: str, create_time: int) -> str | None:
        """Point lookup. None on miss, when disabled, or on any store error."""
        if self._session_factory is None:
            return None

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TranscriptCacheEntry.transcript).where(
                        TranscriptCacheEntry.cache_key == make_cache_key(session_id, create_time)
                    )
                )
                return result.scalar_one_or_none()
        except Exception:
            logger.warning("Transcript cache lookup failed for %s:%s", session_id, create_time, exc_info=True)
            return None

    async def put(self, session_id: str, create_time: int, transcript: str) -> None:
        """Upsert a transcript, replacing any prior row for the same key."""
        if self._session_factory is None or not transcript:
            return

        values = {
            "cache_key": make_cache_key(session_id, create_time),
            "session_id": session_id,
            "create_time": create_time,
            "transcript": transcript,
            "created_at": int(time.time() * 1000),
        }
        stmt = insert(TranscriptCacheEntry).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[TranscriptCacheEntry.cache_key],
            set_={
                "transcript": stmt.excluded.transcript,
                "created_at": stmt.excluded.created_at,
            },
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except Exception:
            logger.warning("Transcript cache write failed for %s:%s", session_id, create_time, exc_info=True)

    async def list_session(
        self,
        session_id: str,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> list[CachedTranscript]:
        """Cached transcripts of one session, ordered by create_time.

        Bounds are inclusive. Errors degrade to an empty list.
        """
        if self._session_factory is None:
            return []

        query = select(TranscriptCacheEntry).where(TranscriptCacheEntry.session_id == session_id)
        if start_time is not None:
            query = query.where(TranscriptCacheEntry.create_time >= start_time)
        if end_time is not None:
            query = query.where(TranscriptCacheEntry.create_time <= end_time)
        query = query.order_by(TranscriptCacheEntry.create_time)

        try:
            async with self._session_factory() as session:
                rows = (await session.execute(query)).scalars().all()
        except Exception:
            logger.warning("Transcript cache range lookup failed for %s", session_id, exc_info=True)
            return []

        return [
            CachedTranscript(
                session_id=row.session_id,
                create_time=row.create_time,
                transcript=row.transcript,
                created_at=row.created_at,
            )
            for row in rows
        ]

    async def count(self) -> int:
        """Number of cached transcripts (0 when disabled)."""
        if self._session_factory is None:
            return 0
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(func.count()).select_from(TranscriptCacheEntry))
                return result.scalar_one()
        except Exception:
            logger.warning("Transcript cache count failed", exc_info=True)
            return 0

    async def close(self) -> None:
        """Dispose the engine. The cache is disabled afterwards."""
        engine = self._engine
        self._engine = None
        self._session_factory = None
        if engine is not None:
            await engine.dispose()
