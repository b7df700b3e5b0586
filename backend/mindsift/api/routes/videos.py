"""
Video ingestion API endpoints.

Ingestion runs inline by default; with ``background=true`` it is queued on
the Celery ingestion queue and the task id is returned.
Errors are raised as MindSiftError subclasses and rendered by the
application's exception handlers.
"""

import logging

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from mindsift.api.deps import Pipeline
from mindsift.schemas.transcript import IngestionResult
from mindsift.services.transcript_service import validate_youtube_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


@router.post(
    "/{youtube_id}/ingest",
    response_model=IngestionResult,
    responses={
        202: {"description": "Ingestion queued"},
        404: {"description": "Unknown video or no captions available"},
        409: {"description": "Video is already being ingested"},
        503: {"description": "Caption or embedding provider unavailable"},
    },
)
async def ingest_video(
    youtube_id: str,
    pipeline: Pipeline,
    force: bool = Query(False, description="Reprocess even if already processed"),
    background: bool = Query(False, description="Queue the ingestion instead of running it inline"),
):
    """
    Fetch, chunk and index a video's transcript.

    Args:
        youtube_id: 11-character YouTube video id
        force: Reprocess a video that is already processed
        background: Queue on Celery and return 202 with the task id
    """
    if background:
        validate_youtube_id(youtube_id)
        from mindsift.tasks.ingestion_tasks import process_video

        task = process_video.delay(youtube_id, force=force)
        logger.info(f"Queued ingestion of {youtube_id} as task {task.id}")
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={"youtube_id": youtube_id, "task_id": task.id, "queued": True},
        )

    return await pipeline.ingest(youtube_id, force=force)
