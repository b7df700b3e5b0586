"""
Chat Orchestrator

Answers a question about one video or a whole channel:

    resolve scope → process query → rank (balanced for channel scope)
    → load session history → generate with the scope's model
    → resolve timestamp citations → append the turn to the session

Citations and usage metadata refer only to the chunks the generator fitted
into its context. For channel scope those lead with every video's best chunk.

When nothing relevant is retrieved the fixed NO_RESULTS_ANSWER is returned
and the model is not called.
"""

import logging
from typing import List, Optional

from mindsift.core.config import settings
from mindsift.core.errors import NotAvailable, VideoNotFound
from mindsift.models.chat import MessageRole
from mindsift.schemas.chat import ChatRequest, ChatResponse, HistoryMessage
from mindsift.schemas.transcript import VideoRecord
from mindsift.services.rag.citations import resolve_citations
from mindsift.services.rag.generator import AnswerGenerator
from mindsift.services.rag.query_service import QueryService
from mindsift.services.rag.ranker import HybridRanker, floor_first
from mindsift.services.repositories.sessions import ChatSessionRepository
from mindsift.services.repositories.videos import VideoRepository
from mindsift.services.transcript_service import validate_youtube_id

logger = logging.getLogger(__name__)

NO_RESULTS_ANSWER = (
    "I couldn't find any relevant information in the transcript to answer your question. "
    "Try rephrasing it or asking about something discussed in the video."
)


class ChatOrchestrator:
    """
    Glue between retrieval, generation and chat sessions.

    Usage:
    ------
    orchestrator = ChatOrchestrator(videos, ranker, query_service, generator, sessions)
    response = await orchestrator.chat(ChatRequest(query="...", video_id="dQw4w9WgXcQ"))
    """

    def __init__(
        self,
        videos: VideoRepository,
        ranker: HybridRanker,
        query_service: QueryService,
        generator: AnswerGenerator,
        sessions: Optional[ChatSessionRepository] = None,
        history_messages: Optional[int] = None,
    ):
        self.videos = videos
        self.ranker = ranker
        self.query_service = query_service
        self.generator = generator
        self.sessions = sessions
        self.history_messages = history_messages or settings.CHAT_HISTORY_MESSAGES

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """
        Answer ``request.query`` within the request's scope.

        Raises:
            InvalidInput: empty query or malformed video id
            VideoNotFound: unknown video id
            NotAvailable: the video has no processed transcript (code ``not_ingested``)
            DownstreamUnavailable: embedding or language model unavailable
        """
        channel_scope = request.channel_id is not None
        videos = await self._resolve_scope(request)

        processed = await self.query_service.process_query(request.query)
        ranked = await self.ranker.rank(processed, videos, balance=channel_scope)

        scope = {"channel_id": request.channel_id} if channel_scope else {"video_id": request.video_id}

        if not ranked:
            logger.info(f"No relevant chunks for query '{processed.normalized[:50]}' in {scope}")
            response = ChatResponse(
                answer=NO_RESULTS_ANSWER,
                chunks_used=0,
                found=False,
                metadata={**scope, "videos_searched": len(videos)},
            )
            await self._record_turn(request, response)
            return response

        history = await self._history(request.session_id)
        model = settings.CHAT_MODEL_CHANNEL if channel_scope else settings.CHAT_MODEL_VIDEO

        context = floor_first(ranked) if channel_scope else ranked
        generated = await self.generator.generate(request.query, context, history, model)
        in_context = context[:generated.chunks_in_context]
        citations = resolve_citations(generated.answer, in_context)

        response = ChatResponse(
            answer=generated.answer,
            citations=citations,
            chunks_used=len(in_context),
            model=generated.model,
            found=True,
            metadata={
                **scope,
                "videos_searched": len(videos),
                "videos_used": len({r.youtube_id for r in in_context}),
                "chunks_ranked": len(ranked),
                "chunks_in_context": generated.chunks_in_context,
                "input_tokens": generated.input_tokens,
                "output_tokens": generated.output_tokens,
            },
        )
        logger.info(
            f"Answered with {model}: {len(in_context)}/{len(ranked)} chunks in context, "
            f"{len(citations)} citations ({sum(1 for c in citations if c.text)} resolved)"
        )

        await self._record_turn(request, response)
        return response

    async def _resolve_scope(self, request: ChatRequest) -> List[VideoRecord]:
        if request.channel_id is not None:
            videos = await self.videos.list_processed_by_channel(request.channel_id)
            logger.info(f"Channel {request.channel_id}: {len(videos)} processed videos in scope")
            return videos

        validate_youtube_id(request.video_id)
        video = await self.videos.get_by_youtube_id(request.video_id)
        if video is None:
            raise VideoNotFound(f"Video {request.video_id} not found")
        if not video.chunks_processed:
            raise NotAvailable(
                f"Video {request.video_id} has no processed transcript yet",
                code="not_ingested",
            )
        return [video]

    async def _history(self, session_id: Optional[str]) -> List[HistoryMessage]:
        if not session_id or self.sessions is None:
            return []
        return await self.sessions.recent_messages(session_id, self.history_messages)

    async def _record_turn(self, request: ChatRequest, response: ChatResponse) -> None:
        if not request.session_id or self.sessions is None:
            return
        await self.sessions.append_message(request.session_id, MessageRole.USER, request.query)
        await self.sessions.append_message(
            request.session_id,
            MessageRole.ASSISTANT,
            response.answer,
            metadata={
                "model": response.model,
                "chunks_used": response.chunks_used,
                "citations": [c.model_dump() for c in response.citations],
            },
        )
