"""
RAG Generator for Chat

This module implements the answer generation step using the Claude API:
- Context assembly from ranked transcript chunks, each annotated with its
  time range and video title
- Token budgeting of the context with tiktoken
- Prompt engineering for timestamp citations
- Multi-turn conversation support

Citations are not parsed here; see services.rag.citations.
"""

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

from anthropic import APIError, AsyncAnthropic
from pydantic import BaseModel
import tiktoken

from mindsift.core.config import settings
from mindsift.core.errors import DownstreamUnavailable
from mindsift.schemas.chat import HistoryMessage, RankedChunk
from mindsift.services.rag.citations import format_timestamp

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are MindSift, a helpful assistant that answers questions about YouTube videos using excerpts from their transcripts.

Your task is to:
1. Answer the user's question using ONLY the transcript excerpts provided
2. Be accurate and factual - don't make up information
3. If the excerpts don't contain the answer, say so plainly
4. Be concise but comprehensive
5. Cite the moment in the video that supports each point with its start timestamp in square brackets, exactly as shown in the excerpts, e.g. [01:23] or [01:02:03]

Remember: You can ONLY use information from the provided excerpts."""


class GeneratedAnswer(BaseModel):
    """Raw model output for one chat turn."""

    answer: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    chunks_in_context: int = 0


class AnswerGenerator(Protocol):

    async def generate(
        self,
        query: str,
        chunks: Sequence[RankedChunk],
        history: Sequence[HistoryMessage],
        model: str,
    ) -> GeneratedAnswer:
        ...


def format_chunk(position: int, ranked: RankedChunk) -> str:
    """One context entry: ``[n] [MM:SS - MM:SS] (title): text``."""
    start = format_timestamp(ranked.chunk.start_time)
    end = format_timestamp(ranked.chunk.end_time)
    title = ranked.video_title or ranked.youtube_id or "Untitled video"
    return f"[{position}] [{start} - {end}] ({title}): {ranked.chunk.text}"


class RAGGenerator:
    """
    RAG Generator using Claude API.

    Usage:
    ------
    generator = RAGGenerator(api_key=settings.ANTHROPIC_API_KEY)

    result = await generator.generate(
        query="What is the Vanguard rule?",
        chunks=ranked_chunks,
        history=[...],
        model=settings.CHAT_MODEL_VIDEO,
    )
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        max_context_tokens: Optional[int] = None,
        client: Optional[AsyncAnthropic] = None,
    ):
        """
        Initialize the RAG generator.

        Args:
            api_key: Anthropic API key (defaults to settings.ANTHROPIC_API_KEY)
            max_tokens: Maximum tokens in response (default: CHAT_MAX_TOKENS)
            temperature: Sampling temperature 0-1 (default: CHAT_TEMPERATURE)
            max_context_tokens: Token budget of the transcript context
            client: Pre-built client, mostly for tests
        """
        self.max_tokens = max_tokens or settings.CHAT_MAX_TOKENS
        self.temperature = settings.CHAT_TEMPERATURE if temperature is None else temperature
        self.max_context_tokens = max_context_tokens or settings.RAG_MAX_CONTEXT_TOKENS

        if client is None:
            api_key = api_key or settings.ANTHROPIC_API_KEY
            if not api_key:
                raise DownstreamUnavailable("Anthropic API key is not configured. Set ANTHROPIC_API_KEY.")
            client = AsyncAnthropic(api_key=api_key)
        self.client = client

        try:
            self.tokenizer = tiktoken.get_encoding("cl100k_base")
        except Exception:
            # Encoding files unavailable (offline)
            self.tokenizer = None

        logger.info(
            f"RAGGenerator initialized with max_tokens={self.max_tokens}, "
            f"max_context_tokens={self.max_context_tokens}"
        )

    def count_tokens(self, text: str) -> int:
        if self.tokenizer:
            return len(self.tokenizer.encode(text))
        # Rough approximation: 1 token ≈ 4 characters
        return len(text) // 4

    async def generate(
        self,
        query: str,
        chunks: Sequence[RankedChunk],
        history: Sequence[HistoryMessage],
        model: str,
    ) -> GeneratedAnswer:
        """
        Generate an answer grounded in ``chunks``.

        Args:
            query: User's question
            chunks: Ranked chunks, best first
            history: Previous session messages, oldest first
            model: Claude model to use

        Returns:
            GeneratedAnswer with the answer text and token usage

        Raises:
            DownstreamUnavailable: If the model call fails
        """
        context, used = self.assemble_context(chunks)
        messages = [{"role": message.role, "content": message.content} for message in history]
        messages.append({"role": "user", "content": self.build_user_message(query, context)})

        logger.info(f"Generating answer with {model} from {used}/{len(chunks)} chunks")

        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=SYSTEM_PROMPT,
                messages=messages,
            )
        except APIError as e:
            logger.error(f"Error generating response: {e}")
            raise DownstreamUnavailable(f"Language model request failed: {e}") from e

        answer = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        usage = getattr(response, "usage", None)

        return GeneratedAnswer(
            answer=answer,
            model=model,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
            chunks_in_context=used,
        )

    def assemble_context(self, chunks: Sequence[RankedChunk]) -> Tuple[str, int]:
        """
        Join formatted chunks until the token budget is spent.

        Returns:
            The context string and the number of chunks it contains
        """
        parts: List[str] = []
        current_tokens = 0

        for i, ranked in enumerate(chunks):
            formatted = format_chunk(i + 1, ranked)
            chunk_tokens = self.count_tokens(formatted)

            if parts and current_tokens + chunk_tokens > self.max_context_tokens:
                logger.info(f"Context truncated at {i} chunks ({current_tokens} tokens)")
                break

            parts.append(formatted)
            current_tokens += chunk_tokens

        return "\n\n".join(parts), len(parts)

    @staticmethod
    def build_user_message(query: str, context: str) -> str:
        return f"""Transcript excerpts:

{context}

---

Question: {query}

Please answer the question based on the excerpts above."""


# Global generator instance
_generator: Optional[RAGGenerator] = None


def get_generator() -> RAGGenerator:
    """
    Get or create the global generator instance.

    Raises:
        DownstreamUnavailable: If no API key is configured
    """
    global _generator

    if _generator is None:
        _generator = RAGGenerator()
        logger.info("Created global RAGGenerator instance")

    return _generator
