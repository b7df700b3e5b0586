"""
Transcript Processors Package

Services that turn caption segments into indexed chunks.

Modules:
--------
- chunker: Segment-to-chunk merging at sentence and pause boundaries
- keywords: Keyword, entity and query-token extraction
- embedder: Embedding generation using sentence-transformers
- indexer: Bounded-parallel embedding and chunk persistence
"""
