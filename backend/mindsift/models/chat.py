"""
Chat Models

Models Included:
----------------
1. ChatSession - a conversation about one video or one channel
2. ChatMessage - a message within a session
3. MessageRole (Enum) - role of the message sender

Sessions are created by the surrounding application; the orchestrator only
reads recent history and appends messages.
"""

import enum
from typing import Any, Dict, List, Optional

from sqlalchemy import ForeignKey, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mindsift.db.base import BaseModel, String20, String64


class MessageRole(str, enum.Enum):
    """Roles follow the Anthropic Messages API."""

    USER = "user"
    ASSISTANT = "assistant"

    def __str__(self) -> str:
        return self.value


class ChatSession(BaseModel):
    """A chat session scoped to a video or a channel."""

    __tablename__ = "chat_sessions"

    session_key: Mapped[str] = mapped_column(
        String64,
        nullable=False,
        unique=True,
        index=True,
        comment="Client-facing session identifier"
    )

    video_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("videos.id", ondelete="SET NULL"),
        nullable=True,
    )

    channel_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("channels.id", ondelete="SET NULL"),
        nullable=True,
    )

    messages: Mapped[List["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.id",
    )


class ChatMessage(BaseModel):
    """One message; assistant messages carry model, citations and chunk count."""

    __tablename__ = "chat_messages"

    session_id: Mapped[int] = mapped_column(
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role: Mapped[MessageRole] = mapped_column(String20, nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    message_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Assistant metadata: model, citations, chunks_used"
    )

    session: Mapped["ChatSession"] = relationship(
        "ChatSession",
        back_populates="messages",
    )
