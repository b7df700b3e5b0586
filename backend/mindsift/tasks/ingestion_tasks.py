"""
Celery tasks for transcript ingestion and embedding maintenance.

This module contains background tasks for:
- Ingesting a video (fetch captions, chunk, embed, store)
- Backfilling embeddings that failed during ingestion

Each task run builds its own Redis client, because asyncio clients are bound
to the event loop that created them and every run gets a fresh loop.
"""

import asyncio
import logging
from typing import Any, Dict

from celery import Task
from redis.asyncio import Redis

from mindsift.core.config import settings
from mindsift.core.errors import AlreadyInProgress, MindSiftError, TransientNetwork
from mindsift.db.session import AsyncSessionLocal
from mindsift.services.ingestion import IngestionPipeline
from mindsift.services.locking import IngestionGuard, RedisLeaseManager
from mindsift.services.processors.chunker import TranscriptChunker
from mindsift.services.processors.embedder import get_embedding_service
from mindsift.services.processors.indexer import EmbeddingIndexer
from mindsift.services.repositories import SqlChunkRepository, SqlVideoRepository
from mindsift.services.transcript_service import get_transcript_service
from mindsift.services.youtube import get_youtube_service
from mindsift.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ========================================
# Async Helper
# ========================================

def run_async(coro):
    """
    Run async coroutine, handling both event loop and no event loop scenarios.

    - Celery worker (no running loop): asyncio.run()
    - Tests (running loop): asyncio.run() in a worker thread
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    import concurrent.futures

    with concurrent.futures.ThreadPoolExecutor() as executor:
        future = executor.submit(asyncio.run, coro)
        return future.result()


# ========================================
# Base Task Class
# ========================================

class IngestionTask(Task):
    """Base task class; only transient upstream failures are retried."""

    autoretry_for = (TransientNetwork,)
    retry_kwargs = {'max_retries': 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True


# ========================================
# Async Implementations
# ========================================

async def build_pipeline(redis: Redis) -> IngestionPipeline:
    embedder = await get_embedding_service()
    return IngestionPipeline(
        videos=SqlVideoRepository(AsyncSessionLocal),
        transcripts=get_transcript_service(),
        chunker=TranscriptChunker(),
        indexer=EmbeddingIndexer(SqlChunkRepository(AsyncSessionLocal), embedder),
        guard=IngestionGuard(RedisLeaseManager(redis)),
        metadata=get_youtube_service(),
    )


async def ingest_video(youtube_id: str, force: bool = False) -> Dict[str, Any]:
    """
    Run the pipeline for one video and summarize the outcome.

    AlreadyInProgress and non-retryable MindSiftErrors become unsuccessful
    results; TransientNetwork propagates so the task can be retried.
    """
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        pipeline = await build_pipeline(redis)
        result = await pipeline.ingest(youtube_id, force=force)
    except AlreadyInProgress as e:
        logger.info(f"Skipping {youtube_id}: {e.message}")
        return {'success': False, 'busy': True, 'youtube_id': youtube_id}
    except TransientNetwork:
        raise
    except MindSiftError as e:
        logger.warning(f"Ingestion of {youtube_id} failed: {e.code}: {e.message}")
        return {'success': False, 'youtube_id': youtube_id, 'error': e.code, 'message': e.message}
    finally:
        await redis.aclose()

    return {'success': True, **result.model_dump()}


async def backfill_embeddings(limit: int = 100) -> Dict[str, Any]:
    embedder = await get_embedding_service()
    indexer = EmbeddingIndexer(SqlChunkRepository(AsyncSessionLocal), embedder)
    report = await indexer.backfill_missing_embeddings(limit=limit)
    return {'success': True, **report.model_dump()}


# ========================================
# Main Tasks
# ========================================

@celery_app.task(
    base=IngestionTask,
    name='ingestion.process_video',
    bind=True,
)
def process_video(self, youtube_id: str, force: bool = False) -> dict:
    """
    Ingest a video's transcript.

    Args:
        youtube_id: 11-character YouTube video id
        force: Reprocess even if already processed

    Returns:
        Dictionary with the IngestionResult fields and 'success', or
        {'success': False, 'busy': True} when another worker holds the video
    """
    logger.info(f"Task {self.request.id}: ingesting {youtube_id} (force={force})")
    return run_async(ingest_video(youtube_id, force=force))


@celery_app.task(
    base=IngestionTask,
    name='embedding.backfill_missing_embeddings',
    bind=True,
)
def backfill_missing_embeddings(self, limit: int = 100) -> dict:
    """
    Embed stored chunks whose embedding is still NULL.

    Scheduled by Celery Beat every EMBEDDING_BACKFILL_INTERVAL_MINUTES.
    """
    return run_async(backfill_embeddings(limit=limit))
