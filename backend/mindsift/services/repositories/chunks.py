"""
Chunk storage.

Two implementations of the same narrow interface:

- SqlChunkRepository: PostgreSQL + pgvector through SQLAlchemy asyncio.
  Each operation opens its own session, so concurrent searches (channel
  scope) never share one AsyncSession.
- InMemoryChunkRepository: dictionary-backed store with numpy cosine
  similarity, used by tests and local experiments.
"""

import itertools
import logging
from typing import Dict, List, Optional, Protocol, Sequence

import numpy as np
from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mindsift.models.chunk import TranscriptChunk
from mindsift.schemas.transcript import ChunkDraft, SimilarChunk, StoredChunk

logger = logging.getLogger(__name__)


class ChunkRepository(Protocol):
    """Persistence operations the indexer and ranker need."""

    async def insert_many(
        self,
        video_id: int,
        chunks: Sequence[ChunkDraft],
        embeddings: Sequence[Optional[List[float]]],
    ) -> int:
        ...

    async def delete_by_video(self, video_id: int) -> int:
        ...

    async def count_by_video(self, video_id: int) -> int:
        ...

    async def similarity_search(
        self,
        video_id: int,
        query_embedding: List[float],
        top_k: int,
    ) -> List[SimilarChunk]:
        ...

    async def list_missing_embeddings(self, limit: int) -> List[StoredChunk]:
        ...

    async def set_embedding(self, chunk_id: int, embedding: List[float]) -> None:
        ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 if either is the zero vector."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


# ========================================
# SQL Implementation
# ========================================

class SqlChunkRepository:
    """
    pgvector-backed chunk repository.

    Usage:
        repo = SqlChunkRepository(AsyncSessionLocal)
        hits = await repo.similarity_search(video.id, query_embedding, top_k=10)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert_many(
        self,
        video_id: int,
        chunks: Sequence[ChunkDraft],
        embeddings: Sequence[Optional[List[float]]],
    ) -> int:
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings must have the same length")
        if not chunks:
            return 0

        rows = [
            TranscriptChunk(video_id=video_id, embedding=embedding, **chunk.model_dump())
            for chunk, embedding in zip(chunks, embeddings)
        ]
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()

        logger.debug(f"Inserted {len(rows)} chunks for video {video_id}")
        return len(rows)

    async def delete_by_video(self, video_id: int) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(TranscriptChunk).where(TranscriptChunk.video_id == video_id)
            )
            await session.commit()
        return result.rowcount or 0

    async def count_by_video(self, video_id: int) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(TranscriptChunk.id)).where(TranscriptChunk.video_id == video_id)
            )
            return result.scalar() or 0

    @staticmethod
    def similarity_statement(video_id: int, query_embedding: List[float], top_k: int) -> Select:
        """Top-k chunks of one video by cosine distance, skipping unembedded rows."""
        distance = TranscriptChunk.embedding.cosine_distance(query_embedding).label("distance")
        return (
            select(TranscriptChunk, distance)
            .where(TranscriptChunk.video_id == video_id)
            .where(TranscriptChunk.embedding.isnot(None))
            .order_by(distance, TranscriptChunk.chunk_index)
            .limit(top_k)
        )

    async def similarity_search(
        self,
        video_id: int,
        query_embedding: List[float],
        top_k: int,
    ) -> List[SimilarChunk]:
        async with self.session_factory() as session:
            result = await session.execute(
                self.similarity_statement(video_id, query_embedding, top_k)
            )
            rows = result.all()

        return [
            SimilarChunk(chunk=_to_stored(chunk_row), similarity=1.0 - float(distance))
            for chunk_row, distance in rows
        ]

    @staticmethod
    def missing_embeddings_statement(limit: int) -> Select:
        return (
            select(TranscriptChunk)
            .where(TranscriptChunk.embedding.is_(None))
            .order_by(TranscriptChunk.video_id, TranscriptChunk.chunk_index)
            .limit(limit)
        )

    async def list_missing_embeddings(self, limit: int) -> List[StoredChunk]:
        async with self.session_factory() as session:
            result = await session.execute(self.missing_embeddings_statement(limit))
            return [_to_stored(row) for row in result.scalars().all()]

    async def set_embedding(self, chunk_id: int, embedding: List[float]) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(TranscriptChunk)
                .where(TranscriptChunk.id == chunk_id)
                .values(embedding=embedding)
            )
            await session.commit()


def _to_stored(row: TranscriptChunk) -> StoredChunk:
    embedding = row.embedding
    return StoredChunk(
        id=row.id,
        video_id=row.video_id,
        chunk_index=row.chunk_index,
        start_time=row.start_time,
        end_time=row.end_time,
        text=row.text,
        text_hash=row.text_hash,
        keywords=list(row.keywords or []),
        entities=list(row.entities or []),
        has_complete_thought=row.has_complete_thought,
        context_before=row.context_before or "",
        context_after=row.context_after or "",
        # pgvector returns numpy arrays
        embedding=None if embedding is None else [float(x) for x in embedding],
    )


# ========================================
# In-Memory Implementation
# ========================================

class InMemoryChunkRepository:
    """Dictionary-backed chunk repository with the same semantics as the SQL one."""

    def __init__(self):
        self.rows: Dict[int, StoredChunk] = {}
        self._ids = itertools.count(1)

    async def insert_many(
        self,
        video_id: int,
        chunks: Sequence[ChunkDraft],
        embeddings: Sequence[Optional[List[float]]],
    ) -> int:
        if len(chunks) != len(embeddings):
            raise ValueError("chunks and embeddings must have the same length")

        for chunk, embedding in zip(chunks, embeddings):
            if any(
                row.video_id == video_id and row.chunk_index == chunk.chunk_index
                for row in self.rows.values()
            ):
                raise ValueError(f"Duplicate chunk_index {chunk.chunk_index} for video {video_id}")
            chunk_id = next(self._ids)
            self.rows[chunk_id] = StoredChunk(
                id=chunk_id,
                video_id=video_id,
                embedding=None if embedding is None else list(embedding),
                **chunk.model_dump(),
            )
        return len(chunks)

    async def delete_by_video(self, video_id: int) -> int:
        doomed = [chunk_id for chunk_id, row in self.rows.items() if row.video_id == video_id]
        for chunk_id in doomed:
            del self.rows[chunk_id]
        return len(doomed)

    async def count_by_video(self, video_id: int) -> int:
        return sum(1 for row in self.rows.values() if row.video_id == video_id)

    async def list_by_video(self, video_id: int) -> List[StoredChunk]:
        """All chunks of a video ordered by chunk_index."""
        rows = [row for row in self.rows.values() if row.video_id == video_id]
        return sorted(rows, key=lambda row: row.chunk_index)

    async def similarity_search(
        self,
        video_id: int,
        query_embedding: List[float],
        top_k: int,
    ) -> List[SimilarChunk]:
        hits = [
            SimilarChunk(chunk=row, similarity=cosine_similarity(query_embedding, row.embedding))
            for row in self.rows.values()
            if row.video_id == video_id and row.embedding is not None
        ]
        hits.sort(key=lambda hit: (-hit.similarity, hit.chunk.chunk_index))
        return hits[:top_k]

    async def list_missing_embeddings(self, limit: int) -> List[StoredChunk]:
        missing = [row for row in self.rows.values() if row.embedding is None]
        missing.sort(key=lambda row: (row.video_id, row.chunk_index))
        return missing[:limit]

    async def set_embedding(self, chunk_id: int, embedding: List[float]) -> None:
        row = self.rows.get(chunk_id)
        if row is None:
            return
        self.rows[chunk_id] = row.model_copy(update={"embedding": list(embedding)})
