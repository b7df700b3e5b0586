"""
Celery tasks for background processing.
"""

from mindsift.tasks.ingestion_tasks import (
    backfill_missing_embeddings,
    process_video,
)

__all__ = [
    "backfill_missing_embeddings",
    "process_video",
]
