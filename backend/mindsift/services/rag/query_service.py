"""
Query Service for RAG

Prepares a user query for retrieval:
- Validation and normalization
- Tokens and keywords for the content re-ranking bonuses
- Query embedding, cached per normalized query for a few minutes

The same question asked twice within QUERY_EMBEDDING_CACHE_SECONDS reuses
the first embedding instead of running the model again.
"""

import logging
import re
import time
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from mindsift.core.config import settings
from mindsift.core.errors import DownstreamUnavailable, InvalidInput, MindSiftError
from mindsift.services.processors.embedder import Embedder
from mindsift.services.processors.keywords import extract_query_keywords, tokenize_query

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class ProcessedQuery(BaseModel):
    """A query ready for ranking."""

    original: str
    normalized: str
    tokens: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    embedding: List[float] = Field(default_factory=list)


class QueryService:
    """
    Service for processing user queries before retrieval.

    Usage:
    ------
    query_service = QueryService(embedder)
    processed = await query_service.process_query("What is the Vanguard rule?")
    # processed.normalized == "what is the vanguard rule?"
    # processed.tokens == ["what", "is", "the", "vanguard", "rule?"]
    # processed.keywords == ["vanguard", "rule"]
    """

    def __init__(
        self,
        embedder: Embedder,
        cache_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.embedder = embedder
        self.cache_seconds = (
            settings.QUERY_EMBEDDING_CACHE_SECONDS if cache_seconds is None else cache_seconds
        )
        self.clock = clock
        # normalized query -> (expires_at, embedding)
        self._cache: Dict[str, Tuple[float, List[float]]] = {}

    @staticmethod
    def normalize(query: str) -> str:
        """Lower-case, trim and collapse whitespace."""
        return _WHITESPACE.sub(" ", query or "").strip().lower()

    async def process_query(self, query: str) -> ProcessedQuery:
        """
        Validate, normalize, tokenize and embed a query.

        Raises:
            InvalidInput: If the query is empty after normalization
            DownstreamUnavailable: If the embedding cannot be computed
        """
        normalized = self.normalize(query)
        if not normalized:
            raise InvalidInput("Query must not be empty")

        embedding = await self.get_query_embedding(normalized)

        return ProcessedQuery(
            original=query,
            normalized=normalized,
            tokens=tokenize_query(normalized),
            keywords=extract_query_keywords(normalized),
            embedding=embedding,
        )

    async def get_query_embedding(self, normalized: str) -> List[float]:
        """Embedding of a normalized query, served from cache while fresh."""
        now = self.clock()
        cached = self._cache.get(normalized)
        if cached and cached[0] > now:
            logger.debug(f"Query embedding cache hit: '{normalized[:50]}'")
            return cached[1]

        try:
            embedding = await self.embedder.embed_text(normalized)
        except MindSiftError:
            raise
        except Exception as e:
            logger.error(f"Query embedding failed: {e}")
            raise DownstreamUnavailable("Embedding provider unavailable") from e

        self._evict_expired(now)
        if self.cache_seconds > 0:
            self._cache[normalized] = (now + self.cache_seconds, embedding)
        return embedding

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._cache.items() if expires_at <= now]
        for key in expired:
            del self._cache[key]
