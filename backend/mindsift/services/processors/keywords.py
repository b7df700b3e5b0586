"""
Lightweight keyword and entity extraction.

Deterministic, dependency-free heuristics used at indexing time (chunk
keywords and entities) and at query time (query keywords and tokens for the
content re-ranking bonuses).
"""

import re
from collections import Counter
from typing import List

# Stop words dropped from chunk keywords
CHUNK_STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "could", "should", "may", "might", "must", "can", "shall",
    "it", "its", "they", "them", "their", "this", "that", "these", "those",
})

# Query keywords additionally drop question words
QUERY_STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "what", "when", "where", "who", "why", "how", "which", "that", "this",
})

# Capitalized words dropped from entities
COMMON_CAPITALIZED = frozenset({"The", "This", "That", "These", "Those", "A", "An"})

MAX_KEYWORDS = 10
MAX_ENTITIES = 10

_NON_WORD = re.compile(r"[^\w\s]")
_PROPER_NOUN = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*")
_MEASUREMENT = re.compile(r"\d+\s*(?:seconds?|minutes?|hours?|%|percent)", re.IGNORECASE)
_COMPLETE_THOUGHT_END = re.compile(r"[.!?]$")


def _words(text: str) -> List[str]:
    return _NON_WORD.sub(" ", text.lower()).split()


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> List[str]:
    """
    Top words of a chunk by frequency.

    Lower-cased, punctuation stripped, words of four or more letters that are
    not stop words. Ties keep first-occurrence order.
    """
    words = [w for w in _words(text) if len(w) > 3 and w not in CHUNK_STOP_WORDS]
    return [word for word, _ in Counter(words).most_common(limit)]


def extract_query_keywords(query: str) -> List[str]:
    """Unique query words longer than two letters, minus stop and question words."""
    seen = []
    for word in _words(query):
        if len(word) > 2 and word not in QUERY_STOP_WORDS and word not in seen:
            seen.append(word)
    return seen


def extract_entities(text: str, limit: int = MAX_ENTITIES) -> List[str]:
    """
    Capitalized phrases and numeric measurements ("30 seconds", "15%").

    Duplicates and common determiners are dropped; at most ``limit`` are kept.
    """
    candidates = _PROPER_NOUN.findall(text) + _MEASUREMENT.findall(text)

    entities: List[str] = []
    for candidate in candidates:
        if candidate in COMMON_CAPITALIZED or candidate in entities:
            continue
        entities.append(candidate)
        if len(entities) == limit:
            break
    return entities


def has_complete_thought(text: str) -> bool:
    """True when the text ends a sentence and has at least five words."""
    stripped = text.strip()
    return bool(_COMPLETE_THOUGHT_END.search(stripped)) and len(stripped.split()) >= 5


def tokenize_query(query: str) -> List[str]:
    """Lower-cased whitespace tokens of a query, used by the ranking bonuses."""
    return query.lower().split()


def keywords_overlap(query_keywords: List[str], chunk_keywords: List[str]) -> bool:
    """True if any query keyword contains, or is contained in, a chunk keyword."""
    for query_keyword in query_keywords:
        for chunk_keyword in chunk_keywords:
            chunk_keyword = chunk_keyword.lower()
            if query_keyword in chunk_keyword or chunk_keyword in query_keyword:
                return True
    return False
