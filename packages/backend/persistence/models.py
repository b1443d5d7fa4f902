"""SQLAlchemy models."""

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def make_cache_key(session_id: str, create_time: int) -> str:
    """Derive the transcript cache key for a voice message."""
    return f"{session_id}:{create_time}"


class TranscriptCacheEntry(Base):
    """Memoized transcript of one voice message.

    One row per (session_id, create_time); rewritten only after a successful
    transcription.
    """

    __tablename__ = "transcript_cache"
    __table_args__ = (Index("idx_session_time", "session_id", "create_time"),)

    cache_key: Mapped[str] = mapped_column(String(512), primary_key=True)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    create_time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transcript: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch milliseconds
