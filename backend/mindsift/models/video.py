"""
Video Models

Models Included:
----------------
1. Channel - YouTube channel a video belongs to (read-only for the core)
2. Video - a YouTube video and its ingestion state
3. ProcessingStatus (Enum) - where a video is in the ingestion pipeline

Relationships:
--------------
- Channel (1) ←→ (Many) Video
- Video (1) ←→ (Many) TranscriptChunk
"""

import enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mindsift.db.base import BaseModel, String20, String32, String64, String500

if TYPE_CHECKING:
    from mindsift.models.chunk import TranscriptChunk


# ================================
# Enums
# ================================

class ProcessingStatus(str, enum.Enum):
    """
    Ingestion status of a video.

    Status Flow:
    ------------
    PENDING → PROCESSING → PROCESSED (success path)
                    ↓
                 FAILED (error recorded in last_error, may be retried)
    """

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


# ================================
# Channel Model
# ================================

class Channel(BaseModel):
    """
    A YouTube channel. Rows are created by the channel crawler; the core only
    reads them to resolve a channel-scoped chat into its videos.
    """

    __tablename__ = "channels"

    youtube_channel_id: Mapped[str] = mapped_column(
        String64,
        nullable=False,
        unique=True,
        index=True,
        comment="YouTube channel id (UC...)"
    )

    title: Mapped[str] = mapped_column(
        String500,
        nullable=False,
        comment="Channel display title"
    )

    videos: Mapped[List["Video"]] = relationship(
        "Video",
        back_populates="channel",
    )


# ================================
# Video Model
# ================================

class Video(BaseModel):
    """
    A YouTube video known to MindSift.

    Created on first metadata lookup, outside the ingestion core. The core
    flips transcript_cached / chunks_processed when ingestion succeeds and
    records the failure in last_error otherwise. Videos are never hard-deleted.
    """

    __tablename__ = "videos"

    youtube_id: Mapped[str] = mapped_column(
        String32,
        nullable=False,
        unique=True,
        index=True,
        comment="11-character YouTube video id"
    )

    channel_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("channels.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Owning channel"
    )

    title: Mapped[str] = mapped_column(
        String500,
        nullable=False,
        default="",
        comment="Video title, used by the title ranking bonus"
    )

    duration_seconds: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Video duration in seconds"
    )

    # ================================
    # Ingestion State
    # ================================

    transcript_cached: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Captions were downloaded successfully"
    )

    chunks_processed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        index=True,
        comment="Chunks are stored and the video is searchable"
    )

    processing_status: Mapped[ProcessingStatus] = mapped_column(
        String20,
        nullable=False,
        default=ProcessingStatus.PENDING,
        comment="pending, processing, processed, failed"
    )

    last_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Message of the last failed ingestion"
    )

    # ================================
    # Relationships
    # ================================

    channel: Mapped[Optional["Channel"]] = relationship(
        "Channel",
        back_populates="videos",
    )

    chunks: Mapped[List["TranscriptChunk"]] = relationship(
        "TranscriptChunk",
        back_populates="video",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"Video(id={self.id}, youtube_id={self.youtube_id!r}, status={self.processing_status})"
