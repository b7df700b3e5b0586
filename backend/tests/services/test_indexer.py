"""
Tests for EmbeddingIndexer.

Embedding failures are isolated per chunk: the chunk is stored with a NULL
embedding and picked up later by the backfill. An unavailable embedder, or
one that fails on every chunk, aborts the run and leaves stored chunks as
they were.
"""

import pytest

from mindsift.core.errors import DownstreamUnavailable
from mindsift.schemas.transcript import ChunkDraft


def drafts(texts):
    return [
        ChunkDraft(chunk_index=i, start_time=i * 10.0, end_time=i * 10.0 + 9.0, text=text)
        for i, text in enumerate(texts)
    ]


class TestIndexVideo:

    async def test_stores_and_embeds_every_chunk(self, indexer, chunk_repo, fake_embedder):
        texts = [f"chunk number {i}" for i in range(7)]

        report = await indexer.index_video(1, drafts(texts))

        assert report.chunks_stored == 7
        assert report.chunks_embedded == 7
        assert report.chunks_failed == 0
        stored = await chunk_repo.list_by_video(1)
        assert [c.chunk_index for c in stored] == list(range(7))
        assert all(c.embedding is not None for c in stored)
        assert sorted(fake_embedder.calls) == sorted(texts)

    async def test_failed_embedding_is_isolated(self, indexer, chunk_repo, fake_embedder):
        fake_embedder.fail_on = ["poison"]

        report = await indexer.index_video(1, drafts(["fine one", "poison pill", "fine two"]))

        assert report.chunks_stored == 3
        assert report.chunks_embedded == 2
        assert report.chunks_failed == 1
        stored = await chunk_repo.list_by_video(1)
        assert stored[1].embedding is None
        assert stored[0].embedding is not None
        assert stored[2].embedding is not None

    async def test_unavailable_embedder_aborts_without_touching_chunks(
        self, indexer, chunk_repo, fake_embedder
    ):
        await indexer.index_video(1, drafts(["old one", "old two"]))
        fake_embedder.error = DownstreamUnavailable("embedding model not loaded")

        with pytest.raises(DownstreamUnavailable):
            await indexer.index_video(1, drafts(["new one", "new two", "new three"]))

        stored = await chunk_repo.list_by_video(1)
        assert [c.text for c in stored] == ["old one", "old two"]
        assert all(c.embedding is not None for c in stored)

    async def test_every_chunk_failing_is_not_a_partial_failure(self, indexer, chunk_repo, fake_embedder):
        fake_embedder.fail_on = ["chunk"]

        with pytest.raises(DownstreamUnavailable, match="all 3 chunks"):
            await indexer.index_video(1, drafts(["chunk a", "chunk b", "chunk c"]))

        assert await chunk_repo.count_by_video(1) == 0

    async def test_reindexing_replaces_chunks(self, indexer, chunk_repo):
        await indexer.index_video(1, drafts(["a", "b", "c", "d"]))
        await indexer.index_video(2, drafts(["other video"]))

        await indexer.index_video(1, drafts(["x", "y"]))

        assert await chunk_repo.count_by_video(1) == 2
        assert await chunk_repo.count_by_video(2) == 1
        assert [c.text for c in await chunk_repo.list_by_video(1)] == ["x", "y"]

    async def test_empty_drafts(self, indexer, chunk_repo):
        report = await indexer.index_video(1, [])

        assert report.chunks_stored == 0
        assert await chunk_repo.count_by_video(1) == 0


class TestBackfill:

    async def test_backfill_fills_missing_embeddings(self, indexer, chunk_repo, fake_embedder):
        fake_embedder.fail_on = ["flaky"]
        await indexer.index_video(1, drafts(["good", "flaky chunk"]))
        assert len(await chunk_repo.list_missing_embeddings(10)) == 1

        fake_embedder.fail_on = []
        report = await indexer.backfill_missing_embeddings(limit=10)

        assert report.chunks_embedded == 1
        assert report.chunks_failed == 0
        assert await chunk_repo.list_missing_embeddings(10) == []

    async def test_backfill_with_nothing_missing(self, indexer):
        report = await indexer.backfill_missing_embeddings()

        assert report.chunks_stored == 0
        assert report.chunks_embedded == 0
