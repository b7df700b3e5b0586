"""
Tests for the ingestion pipeline.

The pipeline runs on in-memory repositories, an in-memory lease manager and
a fake transcript service; nothing touches the network.
"""

import asyncio

import pytest

from mindsift.core.errors import (
    AlreadyInProgress,
    DownstreamUnavailable,
    InvalidInput,
    NotAvailable,
    TransientNetwork,
    VideoNotFound,
)
from mindsift.models.video import ProcessingStatus
from mindsift.schemas.transcript import VideoMetadata
from mindsift.services.ingestion import IngestionPipeline
from mindsift.services.locking import IngestionGuard, LeaseBackendError

VIDEO_ID = "dQw4w9WgXcQ"


@pytest.fixture
def transcript(segment_factory):
    texts = []
    for i in range(30):
        texts.append(f"Point {i} is about index funds and fees." if i % 2 else f"so moving on to item {i}")
    return segment_factory(texts)


@pytest.fixture
def video(video_repo):
    return video_repo.add(VIDEO_ID, title="Index Funds Explained", channel="UC_money")


class DownLeaseManager:

    async def acquire(self, key, ttl_seconds):
        raise LeaseBackendError("redis down")

    async def release(self, key):
        raise LeaseBackendError("redis down")


class TestIngest:

    async def test_happy_path(self, pipeline, video, video_repo, chunk_repo, fake_transcripts, transcript):
        fake_transcripts.transcripts[VIDEO_ID] = transcript

        result = await pipeline.ingest(VIDEO_ID)

        assert not result.skipped
        assert result.segment_count == 30
        assert result.chunk_count > 1
        assert result.embedded_count == result.chunk_count
        assert not result.lock_degraded
        assert await chunk_repo.count_by_video(video.id) == result.chunk_count

        stored = await video_repo.get_by_youtube_id(VIDEO_ID)
        assert stored.processing_status == ProcessingStatus.PROCESSED
        assert stored.transcript_cached and stored.chunks_processed
        assert stored.last_error is None

    async def test_malformed_id(self, pipeline):
        with pytest.raises(InvalidInput):
            await pipeline.ingest("bad id")

    async def test_unknown_video(self, pipeline):
        with pytest.raises(VideoNotFound):
            await pipeline.ingest(VIDEO_ID)

    async def test_already_processed_is_skipped(self, pipeline, video, fake_transcripts, transcript):
        fake_transcripts.transcripts[VIDEO_ID] = transcript
        first = await pipeline.ingest(VIDEO_ID)

        second = await pipeline.ingest(VIDEO_ID)

        assert second.skipped
        assert second.chunk_count == first.chunk_count
        assert fake_transcripts.calls == [VIDEO_ID]

    async def test_force_reprocessing_leaves_no_duplicates(
        self, pipeline, video, chunk_repo, fake_transcripts, transcript
    ):
        fake_transcripts.transcripts[VIDEO_ID] = transcript
        first = await pipeline.ingest(VIDEO_ID)

        second = await pipeline.ingest(VIDEO_ID, force=True)

        assert not second.skipped
        assert second.chunk_count == first.chunk_count
        stored = await chunk_repo.list_by_video(video.id)
        assert len(stored) == first.chunk_count
        assert [c.chunk_index for c in stored] == list(range(first.chunk_count))

    async def test_zero_captions(self, pipeline, video, video_repo, chunk_repo, fake_transcripts):
        fake_transcripts.transcripts[VIDEO_ID] = []

        result = await pipeline.ingest(VIDEO_ID)

        assert result.chunk_count == 0
        assert await chunk_repo.count_by_video(video.id) == 0
        stored = await video_repo.get_by_youtube_id(VIDEO_ID)
        assert stored.processing_status == ProcessingStatus.PROCESSED

    async def test_not_available_marks_video_failed(self, pipeline, video, video_repo):
        with pytest.raises(NotAvailable):
            await pipeline.ingest(VIDEO_ID)

        stored = await video_repo.get_by_youtube_id(VIDEO_ID)
        assert stored.processing_status == ProcessingStatus.FAILED
        assert not stored.chunks_processed
        assert "No captions" in stored.last_error

    async def test_unavailable_embedder_marks_video_failed(
        self, pipeline, video, video_repo, chunk_repo, fake_transcripts, fake_embedder, transcript
    ):
        fake_transcripts.transcripts[VIDEO_ID] = transcript
        fake_embedder.error = DownstreamUnavailable("embedding model not loaded")

        with pytest.raises(DownstreamUnavailable):
            await pipeline.ingest(VIDEO_ID)

        stored = await video_repo.get_by_youtube_id(VIDEO_ID)
        assert stored.processing_status == ProcessingStatus.FAILED
        assert not stored.chunks_processed
        assert "not loaded" in stored.last_error
        assert await chunk_repo.count_by_video(video.id) == 0

    async def test_reprocessing_clears_processed_flag_while_running(
        self, pipeline, video, video_repo, fake_transcripts, transcript
    ):
        fake_transcripts.transcripts[VIDEO_ID] = transcript
        await pipeline.ingest(VIDEO_ID)
        seen = []
        original_fetch = fake_transcripts.fetch

        async def observing_fetch(video_id):
            seen.append(await video_repo.get_by_youtube_id(video_id))
            return await original_fetch(video_id)

        fake_transcripts.fetch = observing_fetch

        await pipeline.ingest(VIDEO_ID, force=True)

        assert seen[0].processing_status == ProcessingStatus.PROCESSING
        assert not seen[0].chunks_processed
        assert (await video_repo.get_by_youtube_id(VIDEO_ID)).chunks_processed


class TestVideoCreation:

    async def test_unknown_video_is_created_from_metadata(
        self, pipeline, video_repo, fake_metadata, fake_transcripts, transcript
    ):
        fake_metadata.videos[VIDEO_ID] = VideoMetadata(
            youtube_id=VIDEO_ID,
            title="Index Funds Explained",
            duration_seconds=754,
            youtube_channel_id="UC_money",
            channel_title="Money Talk",
        )
        fake_transcripts.transcripts[VIDEO_ID] = transcript

        result = await pipeline.ingest(VIDEO_ID)

        assert result.chunk_count > 0
        assert fake_metadata.calls == [VIDEO_ID]
        stored = await video_repo.get_by_youtube_id(VIDEO_ID)
        assert stored.title == "Index Funds Explained"
        assert stored.duration_seconds == 754
        assert stored.channel_id == video_repo.channels["UC_money"]
        assert stored.chunks_processed
        assert [v.youtube_id for v in await video_repo.list_processed_by_channel("UC_money")] == [VIDEO_ID]

    async def test_existing_video_skips_metadata_lookup(
        self, pipeline, video, fake_metadata, fake_transcripts, transcript
    ):
        fake_transcripts.transcripts[VIDEO_ID] = transcript

        await pipeline.ingest(VIDEO_ID)

        assert fake_metadata.calls == []

    async def test_video_unknown_to_youtube_is_not_created(self, pipeline, video_repo, fake_transcripts):
        with pytest.raises(VideoNotFound):
            await pipeline.ingest(VIDEO_ID)

        assert await video_repo.get_by_youtube_id(VIDEO_ID) is None
        assert fake_transcripts.calls == []

    async def test_without_metadata_source_a_bare_row_is_created(
        self, video_repo, fake_transcripts, chunker, indexer, guard, transcript
    ):
        fake_transcripts.transcripts[VIDEO_ID] = transcript
        pipeline = IngestionPipeline(
            videos=video_repo,
            transcripts=fake_transcripts,
            chunker=chunker,
            indexer=indexer,
            guard=guard,
        )

        result = await pipeline.ingest(VIDEO_ID)

        assert result.chunk_count > 0
        stored = await video_repo.get_by_youtube_id(VIDEO_ID)
        assert stored.title == ""
        assert stored.channel_id is None
        assert stored.chunks_processed


class TestRetry:

    async def test_transient_error_is_retried_once(self, pipeline, video, fake_transcripts, transcript):
        fake_transcripts.transcripts[VIDEO_ID] = transcript
        fake_transcripts.errors[VIDEO_ID] = [TransientNetwork("blip")]

        result = await pipeline.ingest(VIDEO_ID)

        assert result.chunk_count > 0
        assert fake_transcripts.calls == [VIDEO_ID, VIDEO_ID]
        pipeline.sleep.assert_awaited_once_with(1.0)

    async def test_gives_up_after_second_transient_error(self, pipeline, video, video_repo, fake_transcripts):
        fake_transcripts.errors[VIDEO_ID] = [TransientNetwork("blip"), TransientNetwork("blip again")]

        with pytest.raises(TransientNetwork):
            await pipeline.ingest(VIDEO_ID)

        assert len(fake_transcripts.calls) == 2
        stored = await video_repo.get_by_youtube_id(VIDEO_ID)
        assert stored.processing_status == ProcessingStatus.FAILED

    async def test_not_available_is_not_retried(self, pipeline, video, fake_transcripts):
        with pytest.raises(NotAvailable):
            await pipeline.ingest(VIDEO_ID)

        assert fake_transcripts.calls == [VIDEO_ID]
        pipeline.sleep.assert_not_awaited()


class TestLocking:

    async def test_held_lease_rejects_ingestion(self, pipeline, video, lease_manager, fake_transcripts, transcript):
        fake_transcripts.transcripts[VIDEO_ID] = transcript
        await lease_manager.acquire(f"ingest:{VIDEO_ID}", 300)

        with pytest.raises(AlreadyInProgress):
            await pipeline.ingest(VIDEO_ID)

        assert fake_transcripts.calls == []

    async def test_concurrent_duplicate_request(self, pipeline, video, chunk_repo, fake_transcripts, transcript):
        fake_transcripts.transcripts[VIDEO_ID] = transcript
        release = asyncio.Event()
        original_fetch = fake_transcripts.fetch

        async def slow_fetch(video_id):
            await release.wait()
            return await original_fetch(video_id)

        fake_transcripts.fetch = slow_fetch

        first = asyncio.create_task(pipeline.ingest(VIDEO_ID))
        await asyncio.sleep(0)

        with pytest.raises(AlreadyInProgress):
            await pipeline.ingest(VIDEO_ID)

        release.set()
        result = await first

        assert await chunk_repo.count_by_video(video.id) == result.chunk_count

    async def test_lease_released_after_failure(self, pipeline, video, lease_manager):
        with pytest.raises(NotAvailable):
            await pipeline.ingest(VIDEO_ID)

        assert not lease_manager.is_held(f"ingest:{VIDEO_ID}")

    async def test_degraded_lock_is_flagged(
        self, video_repo, video, fake_transcripts, chunker, indexer, transcript
    ):
        fake_transcripts.transcripts[VIDEO_ID] = transcript
        pipeline = IngestionPipeline(
            videos=video_repo,
            transcripts=fake_transcripts,
            chunker=chunker,
            indexer=indexer,
            guard=IngestionGuard(DownLeaseManager(), ttl_seconds=300),
        )

        result = await pipeline.ingest(VIDEO_ID)

        assert result.lock_degraded
        assert result.chunk_count > 0
