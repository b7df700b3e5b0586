"""
Video storage.

Video and channel rows are created or refreshed by ``upsert`` from YouTube
metadata; the ingestion core otherwise only reads videos and updates their
ingestion flags.
"""

import itertools
from typing import Dict, List, Optional, Protocol

from sqlalchemy import Insert, Select, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mindsift.models.video import Channel, ProcessingStatus, Video
from mindsift.schemas.transcript import VideoMetadata, VideoRecord


class VideoRepository(Protocol):
    """Creation, read and flag-update operations on videos."""

    async def upsert(self, metadata: VideoMetadata) -> VideoRecord:
        """Create the video (and its channel) or refresh their metadata."""
        ...

    async def get_by_youtube_id(self, youtube_id: str) -> Optional[VideoRecord]:
        ...

    async def list_processed_by_channel(self, youtube_channel_id: str) -> List[VideoRecord]:
        ...

    async def mark_processing(self, video_id: int) -> None:
        ...

    async def mark_processed(self, video_id: int) -> None:
        ...

    async def mark_failed(self, video_id: int, error: str) -> None:
        ...


def _to_record(row: Video) -> VideoRecord:
    return VideoRecord(
        id=row.id,
        youtube_id=row.youtube_id,
        channel_id=row.channel_id,
        title=row.title or "",
        duration_seconds=row.duration_seconds,
        transcript_cached=row.transcript_cached,
        chunks_processed=row.chunks_processed,
        processing_status=ProcessingStatus(row.processing_status),
        last_error=row.last_error,
    )


# ========================================
# SQL Implementation
# ========================================

class SqlVideoRepository:
    """SQLAlchemy-backed video repository; one session per operation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_by_youtube_id(self, youtube_id: str) -> Optional[VideoRecord]:
        async with self.session_factory() as session:
            result = await session.execute(select(Video).where(Video.youtube_id == youtube_id))
            row = result.scalar_one_or_none()
            return _to_record(row) if row else None

    @staticmethod
    def upsert_channel_statement(youtube_channel_id: str, title: str) -> Insert:
        stmt = pg_insert(Channel).values(youtube_channel_id=youtube_channel_id, title=title)
        return stmt.on_conflict_do_update(
            index_elements=[Channel.youtube_channel_id],
            set_={"title": stmt.excluded.title},
        ).returning(Channel.id)

    @staticmethod
    def upsert_video_statement(metadata: VideoMetadata, channel_id: Optional[int]) -> Insert:
        """INSERT ... ON CONFLICT (youtube_id) DO UPDATE; ingestion flags are left untouched."""
        stmt = pg_insert(Video).values(
            youtube_id=metadata.youtube_id,
            title=metadata.title,
            duration_seconds=metadata.duration_seconds,
            channel_id=channel_id,
        )
        return stmt.on_conflict_do_update(
            index_elements=[Video.youtube_id],
            set_={
                "title": stmt.excluded.title,
                "duration_seconds": stmt.excluded.duration_seconds,
                "channel_id": stmt.excluded.channel_id,
            },
        ).returning(Video)

    async def upsert(self, metadata: VideoMetadata) -> VideoRecord:
        async with self.session_factory() as session:
            channel_id = None
            if metadata.youtube_channel_id:
                result = await session.execute(
                    self.upsert_channel_statement(metadata.youtube_channel_id, metadata.channel_title)
                )
                channel_id = result.scalar_one()

            result = await session.execute(
                self.upsert_video_statement(metadata, channel_id),
                execution_options={"populate_existing": True},
            )
            record = _to_record(result.scalar_one())
            await session.commit()
            return record

    @staticmethod
    def processed_by_channel_statement(youtube_channel_id: str) -> Select:
        return (
            select(Video)
            .join(Channel, Video.channel_id == Channel.id)
            .where(Channel.youtube_channel_id == youtube_channel_id)
            .where(Video.chunks_processed.is_(True))
            .order_by(Video.id)
        )

    async def list_processed_by_channel(self, youtube_channel_id: str) -> List[VideoRecord]:
        async with self.session_factory() as session:
            result = await session.execute(self.processed_by_channel_statement(youtube_channel_id))
            return [_to_record(row) for row in result.scalars().all()]

    async def _update(self, video_id: int, **values) -> None:
        async with self.session_factory() as session:
            await session.execute(update(Video).where(Video.id == video_id).values(**values))
            await session.commit()

    async def mark_processing(self, video_id: int) -> None:
        await self._update(
            video_id,
            processing_status=ProcessingStatus.PROCESSING.value,
            chunks_processed=False,
            last_error=None,
        )

    async def mark_processed(self, video_id: int) -> None:
        await self._update(
            video_id,
            processing_status=ProcessingStatus.PROCESSED.value,
            transcript_cached=True,
            chunks_processed=True,
            last_error=None,
        )

    async def mark_failed(self, video_id: int, error: str) -> None:
        await self._update(
            video_id,
            processing_status=ProcessingStatus.FAILED.value,
            chunks_processed=False,
            last_error=error,
        )


# ========================================
# In-Memory Implementation
# ========================================

class InMemoryVideoRepository:
    """Dictionary-backed video repository."""

    def __init__(self):
        self.videos: Dict[int, VideoRecord] = {}
        # youtube channel id -> internal channel id
        self.channels: Dict[str, int] = {}
        self._ids = itertools.count(1)

    def add_channel(self, youtube_channel_id: str) -> int:
        """Register a channel and return its internal id."""
        if youtube_channel_id not in self.channels:
            self.channels[youtube_channel_id] = len(self.channels) + 1
        return self.channels[youtube_channel_id]

    def add(
        self,
        youtube_id: str,
        title: str = "",
        channel: Optional[str] = None,
        **fields,
    ) -> VideoRecord:
        """Seed a video, as the metadata lookup would."""
        video_id = next(self._ids)
        record = VideoRecord(
            id=video_id,
            youtube_id=youtube_id,
            title=title,
            channel_id=self.add_channel(channel) if channel else None,
            **fields,
        )
        self.videos[video_id] = record
        return record

    async def upsert(self, metadata: VideoMetadata) -> VideoRecord:
        channel_id = (
            self.add_channel(metadata.youtube_channel_id) if metadata.youtube_channel_id else None
        )
        existing = await self.get_by_youtube_id(metadata.youtube_id)
        if existing is None:
            return self.add(
                metadata.youtube_id,
                title=metadata.title,
                channel=metadata.youtube_channel_id,
                duration_seconds=metadata.duration_seconds,
            )

        self._update(
            existing.id,
            title=metadata.title,
            duration_seconds=metadata.duration_seconds,
            channel_id=channel_id,
        )
        return self.videos[existing.id]

    async def get_by_youtube_id(self, youtube_id: str) -> Optional[VideoRecord]:
        for record in self.videos.values():
            if record.youtube_id == youtube_id:
                return record
        return None

    async def list_processed_by_channel(self, youtube_channel_id: str) -> List[VideoRecord]:
        channel_id = self.channels.get(youtube_channel_id)
        if channel_id is None:
            return []
        return [
            record for record in sorted(self.videos.values(), key=lambda r: r.id)
            if record.channel_id == channel_id and record.chunks_processed
        ]

    def _update(self, video_id: int, **values) -> None:
        record = self.videos[video_id]
        self.videos[video_id] = record.model_copy(update=values)

    async def mark_processing(self, video_id: int) -> None:
        self._update(
            video_id,
            processing_status=ProcessingStatus.PROCESSING,
            chunks_processed=False,
            last_error=None,
        )

    async def mark_processed(self, video_id: int) -> None:
        self._update(
            video_id,
            processing_status=ProcessingStatus.PROCESSED,
            transcript_cached=True,
            chunks_processed=True,
            last_error=None,
        )

    async def mark_failed(self, video_id: int, error: str) -> None:
        self._update(
            video_id,
            processing_status=ProcessingStatus.FAILED,
            chunks_processed=False,
            last_error=error,
        )
