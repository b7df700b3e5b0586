"""
Service Dependencies for FastAPI Routes

Routes declare the pipeline they need; the objects are built once per
process on first use. Tests replace them through ``app.dependency_overrides``.

The ingestion pipeline is a process-wide singleton because its guard keeps
the in-process set of in-flight videos used when Redis is unreachable.
"""

from typing import Annotated, Optional

from fastapi import Depends

from mindsift.db.redis import get_redis
from mindsift.db.session import AsyncSessionLocal
from mindsift.services.ingestion import IngestionPipeline
from mindsift.services.locking import IngestionGuard, RedisLeaseManager
from mindsift.services.processors.chunker import TranscriptChunker
from mindsift.services.processors.embedder import get_embedding_service
from mindsift.services.processors.indexer import EmbeddingIndexer
from mindsift.services.rag.generator import get_generator
from mindsift.services.rag.orchestrator import ChatOrchestrator
from mindsift.services.rag.query_service import QueryService
from mindsift.services.rag.ranker import HybridRanker
from mindsift.services.repositories import (
    SqlChatSessionRepository,
    SqlChunkRepository,
    SqlVideoRepository,
)
from mindsift.services.transcript_service import get_transcript_service
from mindsift.services.youtube import get_youtube_service

_pipeline: Optional[IngestionPipeline] = None
_query_service: Optional[QueryService] = None


async def get_ingestion_pipeline() -> IngestionPipeline:
    """Process-wide ingestion pipeline on PostgreSQL, Redis and the local model."""
    global _pipeline

    if _pipeline is None:
        embedder = await get_embedding_service()
        _pipeline = IngestionPipeline(
            videos=SqlVideoRepository(AsyncSessionLocal),
            transcripts=get_transcript_service(),
            chunker=TranscriptChunker(),
            indexer=EmbeddingIndexer(SqlChunkRepository(AsyncSessionLocal), embedder),
            guard=IngestionGuard(RedisLeaseManager(get_redis())),
            metadata=get_youtube_service(),
        )

    return _pipeline


async def get_query_service() -> QueryService:
    """Shared query service, so the query embedding cache spans requests."""
    global _query_service

    if _query_service is None:
        _query_service = QueryService(await get_embedding_service())

    return _query_service


async def get_chat_orchestrator(
    query_service: Annotated[QueryService, Depends(get_query_service)],
) -> ChatOrchestrator:
    """
    Chat orchestrator for one request.

    Raises:
        DownstreamUnavailable: If no Anthropic API key is configured
    """
    return ChatOrchestrator(
        videos=SqlVideoRepository(AsyncSessionLocal),
        ranker=HybridRanker(SqlChunkRepository(AsyncSessionLocal)),
        query_service=query_service,
        generator=get_generator(),
        sessions=SqlChatSessionRepository(AsyncSessionLocal),
    )


Pipeline = Annotated[IngestionPipeline, Depends(get_ingestion_pipeline)]
Orchestrator = Annotated[ChatOrchestrator, Depends(get_chat_orchestrator)]
