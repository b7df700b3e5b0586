"""
Hybrid Retrieval Ranker

Multi-stage ranking of transcript chunks for one video or a whole channel:

1. Vector search per video (pgvector cosine similarity), concurrently for
   channel scope
2. Content re-ranking: similarity plus lexical bonuses for query phrases,
   query tokens, adjacent token pairs, title matches and stored keywords
3. Per-video balancing (channel scope): every video with a match gets its
   best chunk in first, then up to RAG_MAX_CHUNKS_PER_VIDEO each, then the
   best leftovers
4. Final ordering by blended score, truncated to RAG_TOTAL_CHUNK_BUDGET

The generator spends its token budget in list order, so channel answers pass
through ``floor_first`` before generation: each video's best chunk leads the
context and survives truncation.

Ties are broken by chunk index, then video id, so identical inputs always
rank identically.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from mindsift.core.config import settings
from mindsift.schemas.chat import RankedChunk
from mindsift.schemas.transcript import SimilarChunk, VideoRecord
from mindsift.services.processors.keywords import keywords_overlap
from mindsift.services.rag.query_service import ProcessedQuery
from mindsift.services.repositories.chunks import ChunkRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankingWeights:
    """
    Bonuses added to the cosine similarity of a chunk.

    The defaults are hand-tuned constants, not fitted to labelled data.
    """

    full_query: float = 0.5
    token_fraction: float = 0.3
    adjacent_pair: float = 0.4
    title_full: float = 0.3
    title_token_fraction: float = 0.2
    keyword_overlap: float = 0.3

    @classmethod
    def from_settings(cls) -> "RankingWeights":
        return cls(
            full_query=settings.RANK_FULL_QUERY_BONUS,
            token_fraction=settings.RANK_TOKEN_FRACTION_BONUS,
            adjacent_pair=settings.RANK_ADJACENT_PAIR_BONUS,
            title_full=settings.RANK_TITLE_FULL_BONUS,
            title_token_fraction=settings.RANK_TITLE_TOKEN_FRACTION_BONUS,
            keyword_overlap=settings.RANK_KEYWORD_OVERLAP_BONUS,
        )


def blended_score(
    similarity: float,
    text: str,
    title: str,
    chunk_keywords: Sequence[str],
    query: ProcessedQuery,
    weights: RankingWeights,
) -> float:
    """
    Similarity plus content bonuses.

    Args:
        similarity: Cosine similarity from vector search
        text: Chunk text
        title: Title of the chunk's video
        chunk_keywords: Keywords stored with the chunk
        query: Processed query (normalized text, tokens, keywords)
        weights: Bonus weights

    Returns:
        Blended score (unbounded above)
    """
    score = similarity
    text_lower = text.lower()
    tokens = query.tokens

    if query.normalized in text_lower:
        score += weights.full_query

    if tokens:
        matched = sum(1 for token in tokens if token in text_lower)
        score += weights.token_fraction * matched / len(tokens)

    if len(tokens) >= 2:
        pairs = (f"{tokens[i]} {tokens[i + 1]}" for i in range(len(tokens) - 1))
        if any(pair in text_lower for pair in pairs):
            score += weights.adjacent_pair

    if title:
        title_lower = title.lower()
        if query.normalized in title_lower:
            score += weights.title_full
        if tokens:
            title_matched = sum(1 for token in tokens if token in title_lower)
            score += weights.title_token_fraction * title_matched / len(tokens)

    if query.keywords and keywords_overlap(query.keywords, chunk_keywords):
        score += weights.keyword_overlap

    return score


def _order_key(item: RankedChunk):
    return (-item.score, item.chunk.chunk_index, item.chunk.video_id)


def balance_by_video(
    ranked: Sequence[RankedChunk],
    max_per_video: int,
    budget: int,
) -> List[RankedChunk]:
    """
    Select chunks so that every matching video is represented.

    Videos are visited in order of their best chunk. Pass 1 takes each
    video's best chunk, pass 2 tops each video up to ``max_per_video``,
    pass 3 fills the remaining budget with leftovers by score. The selection
    is truncated to ``budget`` in pass order, so the one-per-video floor
    survives whenever there are no more videos than budget.
    """
    groups: Dict[int, List[RankedChunk]] = {}
    for item in sorted(ranked, key=_order_key):
        groups.setdefault(item.chunk.video_id, []).append(item)

    # Insertion order follows each group's best chunk
    ordered_groups = list(groups.values())

    selected: List[RankedChunk] = [group[0] for group in ordered_groups]
    for group in ordered_groups:
        selected.extend(group[1:max_per_video])

    if len(selected) < budget:
        leftovers = [item for group in ordered_groups for item in group[max_per_video:]]
        leftovers.sort(key=_order_key)
        selected.extend(leftovers[:budget - len(selected)])

    return selected[:budget]


def floor_first(ranked: Sequence[RankedChunk]) -> List[RankedChunk]:
    """
    Reorder ranked chunks so each video's best chunk comes first.

    The floor chunks keep their relative score order, as do the rest.
    """
    floor: List[RankedChunk] = []
    rest: List[RankedChunk] = []
    seen = set()
    for item in sorted(ranked, key=_order_key):
        if item.chunk.video_id in seen:
            rest.append(item)
        else:
            seen.add(item.chunk.video_id)
            floor.append(item)
    return floor + rest


class HybridRanker:
    """
    Ranks chunks of one or more videos for a processed query.

    Usage:
    ------
    ranker = HybridRanker(chunk_repo)
    ranked = await ranker.rank(processed_query, [video], balance=False)
    """

    def __init__(
        self,
        chunks: ChunkRepository,
        weights: Optional[RankingWeights] = None,
        top_k_per_video: Optional[int] = None,
        max_chunks_per_video: Optional[int] = None,
        total_budget: Optional[int] = None,
    ):
        self.chunks = chunks
        self.weights = weights or RankingWeights.from_settings()
        self.top_k_per_video = top_k_per_video or settings.RAG_TOP_K_PER_VIDEO
        self.max_chunks_per_video = max_chunks_per_video or settings.RAG_MAX_CHUNKS_PER_VIDEO
        self.total_budget = total_budget or settings.RAG_TOTAL_CHUNK_BUDGET

    async def rank(
        self,
        query: ProcessedQuery,
        videos: Sequence[VideoRecord],
        balance: bool = False,
    ) -> List[RankedChunk]:
        """
        Retrieve and rank chunks across ``videos``.

        Args:
            query: Processed query with embedding
            videos: Videos in scope
            balance: Apply per-video balancing (channel scope)

        Returns:
            Ranked chunks, best first; empty if nothing matched
        """
        if not videos:
            return []

        searches = await asyncio.gather(*(
            self.chunks.similarity_search(video.id, query.embedding, self.top_k_per_video)
            for video in videos
        ))

        ranked: List[RankedChunk] = []
        for video, hits in zip(videos, searches):
            ranked.extend(self._score(video, hit, query) for hit in hits)

        if not ranked:
            logger.info(f"No chunks matched across {len(videos)} videos")
            return []

        if balance:
            ranked = balance_by_video(ranked, self.max_chunks_per_video, self.total_budget)

        result = sorted(ranked, key=_order_key)[:self.total_budget]
        logger.info(
            f"Ranked {len(result)} chunks from {len({r.chunk.video_id for r in result})} "
            f"of {len(videos)} videos (top score {result[0].score:.3f})"
        )
        return result

    def _score(self, video: VideoRecord, hit: SimilarChunk, query: ProcessedQuery) -> RankedChunk:
        return RankedChunk(
            chunk=hit.chunk,
            similarity=hit.similarity,
            score=blended_score(
                hit.similarity,
                hit.chunk.text,
                video.title,
                hit.chunk.keywords,
                query,
                self.weights,
            ),
            video_title=video.title,
            youtube_id=video.youtube_id,
        )
