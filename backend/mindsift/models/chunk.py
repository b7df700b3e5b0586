"""
Transcript Chunk Model

One row per semantically coherent span of a video transcript. Rows are
written in one batch per ingestion run, deleted wholesale when a video is
reprocessed, and otherwise immutable except for the lazily backfilled
embedding.
"""

from typing import TYPE_CHECKING, List, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import Boolean, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mindsift.core.config import settings
from mindsift.db.base import BaseModel, String64

if TYPE_CHECKING:
    from mindsift.models.video import Video


class TranscriptChunk(BaseModel):
    """
    Indexed transcript chunk.

    Time ranges of one video's chunks never overlap and increase with
    chunk_index, which is dense and zero-based.
    """

    __tablename__ = "transcript_chunks"

    video_id: Mapped[int] = mapped_column(
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Foreign key to videos table"
    )

    chunk_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Position of the chunk within the video (0-indexed)"
    )

    start_time: Mapped[float] = mapped_column(Float, nullable=False)
    end_time: Mapped[float] = mapped_column(Float, nullable=False)

    text: Mapped[str] = mapped_column(Text, nullable=False)

    text_hash: Mapped[str] = mapped_column(
        String64,
        nullable=False,
        comment="sha256 hex digest of text"
    )

    keywords: Mapped[List[str]] = mapped_column(
        ARRAY(Text),
        nullable=False,
        default=list,
    )

    entities: Mapped[List[str]] = mapped_column(
        ARRAY(Text),
        nullable=False,
        default=list,
    )

    has_complete_thought: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Overlap with neighbouring chunks, stored rather than duplicated into text
    context_before: Mapped[str] = mapped_column(Text, nullable=False, default="")
    context_after: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # NULL until embedded; the backfill task picks these rows up
    embedding: Mapped[Optional[List[float]]] = mapped_column(
        Vector(settings.EMBEDDING_DIMENSION),
        nullable=True,
    )

    video: Mapped["Video"] = relationship(
        "Video",
        back_populates="chunks",
    )

    __table_args__ = (
        UniqueConstraint(
            "video_id",
            "chunk_index",
            name="uq_transcript_chunk_video_index"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"TranscriptChunk(id={self.id}, video_id={self.video_id}, "
            f"index={self.chunk_index}, {self.start_time:.1f}-{self.end_time:.1f}s)"
        )
