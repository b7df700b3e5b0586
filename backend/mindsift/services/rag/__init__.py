"""
RAG (Retrieval-Augmented Generation) Services

This package contains all services for the chat pipeline:
- Query processing and embedding cache
- Hybrid ranking (vector similarity + content bonuses + per-video balancing)
- Generation (Claude integration)
- Timestamp citations
- Orchestration of a chat turn
"""

from mindsift.services.rag.citations import format_timestamp, parse_timestamp, resolve_citations
from mindsift.services.rag.generator import RAGGenerator, get_generator
from mindsift.services.rag.orchestrator import NO_RESULTS_ANSWER, ChatOrchestrator
from mindsift.services.rag.query_service import ProcessedQuery, QueryService
from mindsift.services.rag.ranker import HybridRanker, RankingWeights

__all__ = [
    "ChatOrchestrator",
    "HybridRanker",
    "NO_RESULTS_ANSWER",
    "ProcessedQuery",
    "QueryService",
    "RAGGenerator",
    "RankingWeights",
    "format_timestamp",
    "get_generator",
    "parse_timestamp",
    "resolve_citations",
]
