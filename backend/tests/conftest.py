"""
Pytest configuration and fixtures.

This file is automatically discovered by pytest and provides shared
fixtures for all test modules. Nothing here needs PostgreSQL, Redis, the
network or a model download: storage and locks use the in-memory
implementations, and the embedder and generator are deterministic fakes.

References:
-----------
- Pytest Fixtures: https://docs.pytest.org/en/stable/fixture.html
- FastAPI Testing: https://fastapi.tiangolo.com/tutorial/testing/
"""

import hashlib
import re
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import numpy as np
import pytest

from mindsift.core.errors import NotAvailable, VideoNotFound
from mindsift.schemas.transcript import TranscriptSegment, VideoMetadata
from mindsift.services.ingestion import IngestionPipeline
from mindsift.services.locking import IngestionGuard, InMemoryLeaseManager
from mindsift.services.processors.chunker import TranscriptChunker
from mindsift.services.processors.indexer import EmbeddingIndexer
from mindsift.services.rag.generator import GeneratedAnswer
from mindsift.services.rag.orchestrator import ChatOrchestrator
from mindsift.services.rag.query_service import QueryService
from mindsift.services.rag.ranker import HybridRanker
from mindsift.services.repositories import (
    InMemoryChatSessionRepository,
    InMemoryChunkRepository,
    InMemoryVideoRepository,
)
from mindsift.services.transcript_service import validate_youtube_id

EMBEDDING_DIMENSION = 64


# ================================
# Fakes
# ================================

class FakeEmbedder:
    """
    Bag-of-words hashing embedder.

    Texts that share words get a positive cosine similarity, which is all the
    ranking tests need. Texts containing a marker from ``fail_on`` raise, and
    every call raises ``error`` when it is set.
    """

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.dimension = dimension
        self.calls: List[str] = []
        self.fail_on: List[str] = []
        self.error: Optional[Exception] = None

    async def embed_text(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if any(marker in text for marker in self.fail_on):
            raise RuntimeError("embedding backend exploded")

        vector = np.zeros(self.dimension)
        for word in re.findall(r"\w+", text.lower()):
            index = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimension
            vector[index] += 1.0
        norm = np.linalg.norm(vector)
        if norm:
            vector = vector / norm
        return vector.tolist()


class FakeTranscriptService:
    """Serves canned segments; queued errors are raised first, one per call."""

    def __init__(self):
        self.transcripts: Dict[str, List[TranscriptSegment]] = {}
        self.errors: Dict[str, List[Exception]] = {}
        self.calls: List[str] = []

    async def fetch(self, video_id: str) -> List[TranscriptSegment]:
        validate_youtube_id(video_id)
        self.calls.append(video_id)
        queued = self.errors.get(video_id)
        if queued:
            raise queued.pop(0)
        if video_id not in self.transcripts:
            raise NotAvailable(f"No captions available for video {video_id}")
        return list(self.transcripts[video_id])


class FakeMetadataSource:
    """Serves canned video details; unknown ids are not found on YouTube."""

    def __init__(self):
        self.videos: Dict[str, VideoMetadata] = {}
        self.calls: List[str] = []

    async def get_video_details(self, video_id: str) -> VideoMetadata:
        self.calls.append(video_id)
        if video_id not in self.videos:
            raise VideoNotFound(f"Video {video_id} not found on YouTube")
        return self.videos[video_id]


class FakeGenerator:
    """Returns a canned answer and records every call."""

    def __init__(self):
        self.answer = "The host explains it at [00:00]."
        self.error: Optional[Exception] = None
        self.calls: List[dict] = []

    async def generate(self, query, chunks, history, model) -> GeneratedAnswer:
        self.calls.append({
            "query": query,
            "chunks": list(chunks),
            "history": list(history),
            "model": model,
        })
        if self.error is not None:
            raise self.error
        return GeneratedAnswer(answer=self.answer, model=model, chunks_in_context=len(chunks))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_segments(texts: List[str], duration: float = 2.0, gap: float = 0.0) -> List[TranscriptSegment]:
    """Consecutive segments of equal duration separated by ``gap`` seconds."""
    segments = []
    start = 0.0
    for text in texts:
        segments.append(TranscriptSegment(start=start, end=start + duration, text=text))
        start += duration + gap
    return segments


# ================================
# Fixtures
# ================================

@pytest.fixture
def segment_factory():
    return make_segments


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_transcripts() -> FakeTranscriptService:
    return FakeTranscriptService()


@pytest.fixture
def fake_metadata() -> FakeMetadataSource:
    return FakeMetadataSource()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def chunk_repo() -> InMemoryChunkRepository:
    return InMemoryChunkRepository()


@pytest.fixture
def video_repo() -> InMemoryVideoRepository:
    return InMemoryVideoRepository()


@pytest.fixture
def session_repo() -> InMemoryChatSessionRepository:
    return InMemoryChatSessionRepository()


@pytest.fixture
def lease_manager(fake_clock) -> InMemoryLeaseManager:
    return InMemoryLeaseManager(clock=fake_clock)


@pytest.fixture
def guard(lease_manager) -> IngestionGuard:
    return IngestionGuard(lease_manager, ttl_seconds=300, prefix="ingest")


@pytest.fixture
def chunker() -> TranscriptChunker:
    return TranscriptChunker(target_chars=120, max_chars=240, pause_gap_seconds=0.5, context_chars=20)


@pytest.fixture
def indexer(chunk_repo, fake_embedder) -> EmbeddingIndexer:
    return EmbeddingIndexer(chunk_repo, fake_embedder, concurrency=3)


@pytest.fixture
def pipeline(video_repo, fake_transcripts, chunker, indexer, guard, fake_metadata) -> IngestionPipeline:
    return IngestionPipeline(
        videos=video_repo,
        transcripts=fake_transcripts,
        chunker=chunker,
        indexer=indexer,
        guard=guard,
        metadata=fake_metadata,
        fetch_attempts=2,
        retry_delay_seconds=1.0,
        sleep=AsyncMock(),
    )


@pytest.fixture
def query_service(fake_embedder, fake_clock) -> QueryService:
    return QueryService(fake_embedder, cache_seconds=300, clock=fake_clock)


@pytest.fixture
def ranker(chunk_repo) -> HybridRanker:
    return HybridRanker(chunk_repo, top_k_per_video=10, max_chunks_per_video=5, total_budget=30)


@pytest.fixture
def orchestrator(video_repo, ranker, query_service, fake_generator, session_repo) -> ChatOrchestrator:
    return ChatOrchestrator(
        videos=video_repo,
        ranker=ranker,
        query_service=query_service,
        generator=fake_generator,
        sessions=session_repo,
        history_messages=10,
    )
