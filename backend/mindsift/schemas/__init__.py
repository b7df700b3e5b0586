"""
Pydantic schemas shared by services and the API.
"""

from mindsift.schemas.chat import (
    ChatRequest,
    ChatResponse,
    Citation,
    HistoryMessage,
    RankedChunk,
)
from mindsift.schemas.transcript import (
    ChunkDraft,
    IndexingReport,
    IngestionResult,
    SimilarChunk,
    StoredChunk,
    TranscriptSegment,
    VideoMetadata,
    VideoRecord,
)

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ChunkDraft",
    "Citation",
    "HistoryMessage",
    "IndexingReport",
    "IngestionResult",
    "RankedChunk",
    "SimilarChunk",
    "StoredChunk",
    "TranscriptSegment",
    "VideoMetadata",
    "VideoRecord",
]
