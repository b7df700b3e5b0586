"""
Repositories: narrow storage interfaces with SQL and in-memory implementations.
"""

from mindsift.services.repositories.chunks import (
    ChunkRepository,
    InMemoryChunkRepository,
    SqlChunkRepository,
)
from mindsift.services.repositories.sessions import (
    ChatSessionRepository,
    InMemoryChatSessionRepository,
    SqlChatSessionRepository,
)
from mindsift.services.repositories.videos import (
    InMemoryVideoRepository,
    SqlVideoRepository,
    VideoRepository,
)

__all__ = [
    "ChatSessionRepository",
    "ChunkRepository",
    "InMemoryChatSessionRepository",
    "InMemoryChunkRepository",
    "InMemoryVideoRepository",
    "SqlChatSessionRepository",
    "SqlChunkRepository",
    "SqlVideoRepository",
    "VideoRepository",
]
