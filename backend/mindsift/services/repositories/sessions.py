"""
Chat session storage.

Sessions are owned by the surrounding application. The orchestrator reads
the most recent messages as history and appends each exchange; a session key
seen for the first time gets its session row created on the first append.
"""

from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mindsift.models.chat import ChatMessage, ChatSession, MessageRole
from mindsift.schemas.chat import HistoryMessage


class ChatSessionRepository(Protocol):

    async def recent_messages(self, session_key: str, limit: int) -> List[HistoryMessage]:
        ...

    async def append_message(
        self,
        session_key: str,
        role: MessageRole,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...


class SqlChatSessionRepository:
    """SQLAlchemy-backed chat session repository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def recent_messages_statement(session_key: str, limit: int) -> Select:
        return (
            select(ChatMessage)
            .join(ChatSession, ChatMessage.session_id == ChatSession.id)
            .where(ChatSession.session_key == session_key)
            .order_by(ChatMessage.id.desc())
            .limit(limit)
        )

    async def recent_messages(self, session_key: str, limit: int) -> List[HistoryMessage]:
        async with self.session_factory() as session:
            result = await session.execute(self.recent_messages_statement(session_key, limit))
            rows = list(result.scalars().all())

        # Newest first from the query; history is replayed oldest first
        return [HistoryMessage(role=str(row.role), content=row.content) for row in reversed(rows)]

    async def append_message(
        self,
        session_key: str,
        role: MessageRole,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ChatSession).where(ChatSession.session_key == session_key)
            )
            chat_session = result.scalar_one_or_none()
            if chat_session is None:
                chat_session = ChatSession(session_key=session_key)
                session.add(chat_session)
                await session.flush()

            session.add(ChatMessage(
                session_id=chat_session.id,
                role=role.value,
                content=content,
                message_metadata=metadata,
            ))
            await session.commit()


class InMemoryChatSessionRepository:
    """List-backed chat session repository."""

    def __init__(self):
        self.sessions: Dict[str, List[Dict[str, Any]]] = {}

    async def recent_messages(self, session_key: str, limit: int) -> List[HistoryMessage]:
        messages = self.sessions.get(session_key, [])
        return [
            HistoryMessage(role=m["role"], content=m["content"])
            for m in messages[-limit:]
        ] if limit > 0 else []

    async def append_message(
        self,
        session_key: str,
        role: MessageRole,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.sessions.setdefault(session_key, []).append({
            "role": role.value,
            "content": content,
            "metadata": metadata,
        })
