"""
Embedding Indexer

Embeds chunk drafts and persists them for one video.

Batching policy:
----------------
Texts are embedded in sequential batches of EMBEDDING_CONCURRENCY (5) whose
members run concurrently. A failing member is isolated: the failure is
logged as a partial failure and the chunk is stored with a NULL embedding,
which the backfill task fills in later.

An unavailable provider is not a partial failure: DownstreamUnavailable from
the embedder, or every chunk of a video failing, aborts the indexing run
before any stored chunk is touched.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from mindsift.core.config import settings
from mindsift.core.errors import DownstreamUnavailable, PartialFailure
from mindsift.schemas.transcript import ChunkDraft, IndexingReport
from mindsift.services.processors.embedder import Embedder
from mindsift.services.repositories.chunks import ChunkRepository

logger = logging.getLogger(__name__)


class EmbeddingIndexer:
    """
    Writes a video's chunks, with embeddings, to the chunk repository.

    Usage:
    ------
    indexer = EmbeddingIndexer(chunk_repo, embedder)
    report = await indexer.index_video(video.id, drafts)
    """

    def __init__(
        self,
        chunks: ChunkRepository,
        embedder: Embedder,
        concurrency: Optional[int] = None,
    ):
        self.chunks = chunks
        self.embedder = embedder
        self.concurrency = concurrency or settings.EMBEDDING_CONCURRENCY

    async def index_video(self, video_id: int, drafts: Sequence[ChunkDraft]) -> IndexingReport:
        """
        Replace all stored chunks of a video with ``drafts``.

        Embeddings are computed first; existing chunks are then deleted, so
        reprocessing never leaves duplicates behind.

        Raises:
            DownstreamUnavailable: the embedder is unavailable or failed on every chunk
        """
        embeddings, failed = await self._embed_all([draft.text for draft in drafts], video_id)
        if drafts and failed == len(drafts):
            raise DownstreamUnavailable(
                f"Embedding failed for all {failed} chunks of video {video_id}"
            )

        deleted = await self.chunks.delete_by_video(video_id)
        if deleted:
            logger.info(f"Deleted {deleted} existing chunks for video {video_id}")

        stored = await self.chunks.insert_many(video_id, drafts, embeddings)

        report = IndexingReport(
            chunks_stored=stored,
            chunks_embedded=len(drafts) - failed,
            chunks_failed=failed,
        )
        logger.info(
            f"Indexed video {video_id}: {report.chunks_stored} stored, "
            f"{report.chunks_embedded} embedded, {report.chunks_failed} failed"
        )
        return report

    async def backfill_missing_embeddings(self, limit: int = 100) -> IndexingReport:
        """Embed up to ``limit`` stored chunks whose embedding is NULL."""
        pending = await self.chunks.list_missing_embeddings(limit)
        if not pending:
            return IndexingReport()

        embeddings, failed = await self._embed_all([chunk.text for chunk in pending], None)

        for chunk, embedding in zip(pending, embeddings):
            if embedding is not None:
                await self.chunks.set_embedding(chunk.id, embedding)

        report = IndexingReport(
            chunks_stored=len(pending),
            chunks_embedded=len(pending) - failed,
            chunks_failed=failed,
        )
        logger.info(
            f"Backfilled {report.chunks_embedded}/{len(pending)} missing embeddings "
            f"({report.chunks_failed} failed)"
        )
        return report

    async def _embed_all(
        self,
        texts: Sequence[str],
        video_id: Optional[int],
    ) -> Tuple[List[Optional[List[float]]], int]:
        """Embed texts batch by batch; returns embeddings (None on failure) and the failure count."""
        results: List[Optional[List[float]]] = []
        failed = 0

        for offset in range(0, len(texts), self.concurrency):
            batch = texts[offset:offset + self.concurrency]
            outcomes = await asyncio.gather(
                *(self._embed_one(text, offset + i, video_id) for i, text in enumerate(batch))
            )
            for embedding in outcomes:
                if embedding is None:
                    failed += 1
                results.append(embedding)

        return results, failed

    async def _embed_one(
        self,
        text: str,
        index: int,
        video_id: Optional[int],
    ) -> Optional[List[float]]:
        try:
            return await self.embedder.embed_text(text)
        except DownstreamUnavailable:
            raise
        except Exception as e:
            failure = PartialFailure(f"Embedding failed for chunk {index}: {e}", item_index=index)
            logger.warning(
                f"{failure.code}: video={video_id} chunk={index} "
                f"error={type(e).__name__}: {e}"
            )
            return None
