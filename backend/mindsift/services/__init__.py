"""Business logic services."""

from mindsift.services.transcript_service import TranscriptService, get_transcript_service
from mindsift.services.ingestion import IngestionPipeline

__all__ = [
    "IngestionPipeline",
    "TranscriptService",
    "get_transcript_service",
]
