"""
Pydantic schemas for the chat API and the retrieval pipeline.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from mindsift.schemas.transcript import StoredChunk


# ========================================
# Retrieval Schemas
# ========================================

class RankedChunk(BaseModel):
    """A retrieved chunk with its raw similarity and blended ranking score."""

    chunk: StoredChunk
    similarity: float
    score: float
    video_title: str = ""
    youtube_id: str = ""


class HistoryMessage(BaseModel):
    """One prior message of a chat session."""

    role: str
    content: str


# ========================================
# Chat / RAG Schemas
# ========================================

class ChatRequest(BaseModel):
    """Request schema for a chat query against one video or one channel."""

    query: str = Field(
        description="User's question",
        min_length=1,
        max_length=4000
    )

    video_id: Optional[str] = Field(
        default=None,
        description="YouTube video id for single-video scope"
    )

    channel_id: Optional[str] = Field(
        default=None,
        description="YouTube channel id for channel scope"
    )

    session_id: Optional[str] = Field(
        default=None,
        description="Chat session to read history from and append to"
    )

    @model_validator(mode="after")
    def check_scope(self) -> "ChatRequest":
        """Exactly one of video_id / channel_id must be given."""
        if bool(self.video_id) == bool(self.channel_id):
            raise ValueError("Provide exactly one of video_id or channel_id")
        return self


class Citation(BaseModel):
    """A timestamp cited in an answer, resolved to the chunk that covers it."""

    timestamp: str = Field(description="Timestamp as written in the answer, e.g. 12:34")
    seconds: int = Field(description="Timestamp in seconds")
    text: str = Field(default="", description="Supporting chunk text, empty if unresolved")
    video_id: Optional[str] = Field(default=None, description="YouTube id of the cited video")


class ChatResponse(BaseModel):
    """Response schema for a chat query."""

    answer: str
    citations: List[Citation] = Field(default_factory=list)
    chunks_used: int = 0
    model: Optional[str] = None
    found: bool = Field(default=True, description="False when no relevant chunks were retrieved")
    metadata: Dict[str, Any] = Field(default_factory=dict)
