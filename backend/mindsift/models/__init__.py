"""
Database Models

Import models from this module to ensure they're registered with SQLAlchemy:

    from mindsift.models import Video, TranscriptChunk, ChatSession
"""

from mindsift.models.chat import ChatMessage, ChatSession, MessageRole
from mindsift.models.chunk import TranscriptChunk
from mindsift.models.video import Channel, ProcessingStatus, Video

__all__ = [
    "Channel",
    "ChatMessage",
    "ChatSession",
    "MessageRole",
    "ProcessingStatus",
    "TranscriptChunk",
    "Video",
]
