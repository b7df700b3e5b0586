"""
Pydantic schemas for transcripts, chunks and ingestion results.

These are the values passed between the acquirer, chunker, indexer and
repositories; ORM rows never leave the SQL repositories.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from mindsift.models.video import ProcessingStatus


# ========================================
# Transcript Schemas
# ========================================

class TranscriptSegment(BaseModel):
    """One timed caption line, in seconds."""

    model_config = ConfigDict(frozen=True)

    start: float = Field(ge=0)
    end: float = Field(ge=0)
    text: str


# ========================================
# Chunk Schemas
# ========================================

class ChunkDraft(BaseModel):
    """A chunk produced by the chunker, not yet persisted."""

    chunk_index: int = Field(ge=0)
    start_time: float
    end_time: float
    text: str
    text_hash: str = ""
    keywords: List[str] = Field(default_factory=list)
    entities: List[str] = Field(default_factory=list)
    has_complete_thought: bool = False
    context_before: str = ""
    context_after: str = ""


class StoredChunk(ChunkDraft):
    """A persisted chunk row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    video_id: int
    embedding: Optional[List[float]] = None


class SimilarChunk(BaseModel):
    """A chunk returned by vector search with its cosine similarity."""

    chunk: StoredChunk
    similarity: float


# ========================================
# Video Schemas
# ========================================

class VideoRecord(BaseModel):
    """The video fields the ingestion and retrieval core reads and writes."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    youtube_id: str
    channel_id: Optional[int] = None
    title: str = ""
    duration_seconds: Optional[int] = None
    transcript_cached: bool = False
    chunks_processed: bool = False
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    last_error: Optional[str] = None


class VideoMetadata(BaseModel):
    """Video details from the YouTube Data API, used to create the video row."""

    youtube_id: str
    title: str = ""
    duration_seconds: Optional[int] = None
    youtube_channel_id: Optional[str] = Field(default=None, description="Owning channel (UC...)")
    channel_title: str = ""


# ========================================
# Ingestion Results
# ========================================

class IndexingReport(BaseModel):
    """Outcome of indexing one video's chunks."""

    chunks_stored: int = 0
    chunks_embedded: int = 0
    chunks_failed: int = 0


class IngestionResult(BaseModel):
    """Response body of a completed ingestion run."""

    youtube_id: str
    skipped: bool = Field(default=False, description="Video was already processed")
    segment_count: int = 0
    chunk_count: int = 0
    embedded_count: int = 0
    failed_embeddings: int = 0
    lock_degraded: bool = Field(
        default=False,
        description="Ingestion ran under the same-process fallback lock"
    )
