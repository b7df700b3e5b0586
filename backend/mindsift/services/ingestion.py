"""
Video ingestion pipeline.

Owns the write path for one video:

    validate id → look up video (created from YouTube metadata on first use)
    → (skip if already processed)
    → hold ingestion lease → mark processing
    → fetch captions (bounded retry on TransientNetwork)
    → chunk → index (delete + insert) → mark processed

Any failure after the lease is held marks the video failed with the error
message and re-raises. The lease is always released.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from mindsift.core.config import settings
from mindsift.core.errors import TransientNetwork, VideoNotFound
from mindsift.core.logging import get_logger
from mindsift.schemas.transcript import IngestionResult, TranscriptSegment, VideoMetadata, VideoRecord
from mindsift.services.locking import IngestionGuard
from mindsift.services.processors.chunker import TranscriptChunker
from mindsift.services.processors.indexer import EmbeddingIndexer
from mindsift.services.repositories.videos import VideoRepository
from mindsift.services.transcript_service import TranscriptService, validate_youtube_id
from mindsift.services.youtube import VideoMetadataSource

logger = get_logger(__name__)


class IngestionPipeline:
    """
    Runs ingestion for one video at a time per video id.

    Usage:
    ------
    pipeline = IngestionPipeline(videos, transcripts, chunker, indexer, guard)
    result = await pipeline.ingest("dQw4w9WgXcQ")
    """

    def __init__(
        self,
        videos: VideoRepository,
        transcripts: TranscriptService,
        chunker: TranscriptChunker,
        indexer: EmbeddingIndexer,
        guard: IngestionGuard,
        metadata: Optional[VideoMetadataSource] = None,
        fetch_attempts: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.videos = videos
        self.transcripts = transcripts
        self.chunker = chunker
        self.indexer = indexer
        self.guard = guard
        self.metadata = metadata
        self.fetch_attempts = fetch_attempts or settings.TRANSCRIPT_FETCH_ATTEMPTS
        self.retry_delay_seconds = (
            settings.TRANSCRIPT_RETRY_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds
        )
        self.sleep = sleep

    async def ingest(self, youtube_id: str, force: bool = False) -> IngestionResult:
        """
        Ingest a video's transcript.

        Args:
            youtube_id: 11-character YouTube video id
            force: Reprocess even if the video is already processed

        Raises:
            InvalidInput: malformed id
            VideoNotFound: id unknown to the video store and to YouTube
            AlreadyInProgress: another ingestion of this video holds the lease
            NotAvailable / TransientNetwork / DownstreamUnavailable: from acquisition
        """
        validate_youtube_id(youtube_id)

        video = await self._load_or_create(youtube_id)
        if self._already_processed(video) and not force:
            return await self._skipped(video)

        async with self.guard.hold(youtube_id) as lease:
            # Another caller may have finished while this one waited on the lookup
            video = await self._load(youtube_id)
            if self._already_processed(video) and not force:
                return await self._skipped(video)

            log = logger.bind(youtube_id=youtube_id, video_id=video.id, lock_degraded=lease.degraded)
            log.info("ingestion_started", force=force)
            await self.videos.mark_processing(video.id)

            try:
                segments = await self._fetch_with_retry(youtube_id)
                drafts = self.chunker.chunk(segments)
                report = await self.indexer.index_video(video.id, drafts)
                await self.videos.mark_processed(video.id)
            except Exception as e:
                log.error("ingestion_failed", error=str(e), error_type=type(e).__name__)
                await self._record_failure(video, e)
                raise

            log.info(
                "ingestion_completed",
                segments=len(segments),
                chunks=report.chunks_stored,
                embedded=report.chunks_embedded,
                failed_embeddings=report.chunks_failed,
            )
            return IngestionResult(
                youtube_id=youtube_id,
                segment_count=len(segments),
                chunk_count=report.chunks_stored,
                embedded_count=report.chunks_embedded,
                failed_embeddings=report.chunks_failed,
                lock_degraded=lease.degraded,
            )

    async def _load_or_create(self, youtube_id: str) -> VideoRecord:
        video = await self.videos.get_by_youtube_id(youtube_id)
        if video is not None:
            return video

        if self.metadata is not None:
            details = await self.metadata.get_video_details(youtube_id)
        else:
            # Without an API key the row carries the id only; the caption fetch decides availability
            logger.warning("video_metadata_unavailable", youtube_id=youtube_id)
            details = VideoMetadata(youtube_id=youtube_id)

        video = await self.videos.upsert(details)
        logger.info("video_created", youtube_id=youtube_id, video_id=video.id, title=video.title)
        return video

    async def _load(self, youtube_id: str) -> VideoRecord:
        video = await self.videos.get_by_youtube_id(youtube_id)
        if video is None:
            raise VideoNotFound(f"Video {youtube_id} not found")
        return video

    @staticmethod
    def _already_processed(video: VideoRecord) -> bool:
        return video.transcript_cached and video.chunks_processed

    async def _skipped(self, video: VideoRecord) -> IngestionResult:
        count = await self.indexer.chunks.count_by_video(video.id)
        logger.info("ingestion_skipped", youtube_id=video.youtube_id, chunks=count)
        return IngestionResult(youtube_id=video.youtube_id, skipped=True, chunk_count=count)

    async def _fetch_with_retry(self, youtube_id: str) -> List[TranscriptSegment]:
        """Fetch captions, retrying TransientNetwork with a fixed delay."""
        for attempt in range(1, self.fetch_attempts + 1):
            try:
                return await self.transcripts.fetch(youtube_id)
            except TransientNetwork as e:
                if attempt == self.fetch_attempts:
                    raise
                logger.warning(
                    "transcript_fetch_retry",
                    youtube_id=youtube_id,
                    attempt=attempt,
                    max_attempts=self.fetch_attempts,
                    error=str(e),
                )
                await self.sleep(self.retry_delay_seconds)

        # fetch_attempts < 1
        raise TransientNetwork(f"No fetch attempts configured for video {youtube_id}")

    async def _record_failure(self, video: VideoRecord, error: Exception) -> None:
        try:
            await self.videos.mark_failed(video.id, str(error) or type(error).__name__)
        except Exception as e:
            # The original error is re-raised by the caller
            logger.error("ingestion_failure_not_recorded", video_id=video.id, error=str(e))
