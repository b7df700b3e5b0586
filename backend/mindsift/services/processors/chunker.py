"""
Transcript Chunking Service

Merges timed caption segments into semantically coherent chunks for
embedding and retrieval.

Chunking Strategy:
------------------
- Segments accumulate in a buffer.
- Before a segment is added, the buffer is closed if the segment would push
  it past the hard maximum.
- After a segment is added, the buffer is closed once it has reached the
  target size and a natural boundary is available: the segment ends a
  sentence (. ? ! :) or is followed by a pause in speech.
- The final partial buffer is always flushed.

Each chunk then receives the last/first characters of its neighbours as
context, plus keywords, entities, a content hash and a complete-thought flag.

Configuration from settings:
- CHUNK_TARGET_CHARS: 1000 (default)
- CHUNK_MAX_CHARS: 2000 (default)
- CHUNK_PAUSE_GAP_SECONDS: 0.5 (default)
- CHUNK_CONTEXT_CHARS: 100 (default)
"""

import hashlib
from typing import List, Optional, Sequence

from mindsift.core.config import settings
from mindsift.schemas.transcript import ChunkDraft, TranscriptSegment
from mindsift.services.processors.keywords import (
    extract_entities,
    extract_keywords,
    has_complete_thought,
)

SENTENCE_BOUNDARIES = (".", "?", "!", ":")


class TranscriptChunker:
    """
    Deterministic segment-to-chunk merger.

    Usage:
    ------
    chunker = TranscriptChunker()
    drafts = chunker.chunk(segments)

    for draft in drafts:
        print(draft.chunk_index, draft.start_time, draft.end_time, len(draft.text))
    """

    def __init__(
        self,
        target_chars: Optional[int] = None,
        max_chars: Optional[int] = None,
        pause_gap_seconds: Optional[float] = None,
        context_chars: Optional[int] = None,
    ):
        self.target_chars = target_chars or settings.CHUNK_TARGET_CHARS
        self.max_chars = max_chars or settings.CHUNK_MAX_CHARS
        self.pause_gap_seconds = (
            settings.CHUNK_PAUSE_GAP_SECONDS if pause_gap_seconds is None else pause_gap_seconds
        )
        self.context_chars = settings.CHUNK_CONTEXT_CHARS if context_chars is None else context_chars

        if self.target_chars > self.max_chars:
            raise ValueError("target_chars must not exceed max_chars")

    def chunk(self, segments: Sequence[TranscriptSegment]) -> List[ChunkDraft]:
        """
        Split ordered segments into chunks.

        Args:
            segments: Segments ordered by start time

        Returns:
            Chunks with dense zero-based indices; empty for empty input
        """
        chunks: List[ChunkDraft] = []
        buffer: List[TranscriptSegment] = []
        buffer_len = 0

        for i, segment in enumerate(segments):
            segment_len = len(segment.text)

            if buffer and buffer_len + segment_len > self.max_chars:
                chunks.append(self._close(buffer, len(chunks)))
                buffer = []
                buffer_len = 0

            buffer.append(segment)
            buffer_len += segment_len

            next_segment = segments[i + 1] if i + 1 < len(segments) else None
            if buffer_len >= self.target_chars and self._is_boundary(segment, next_segment):
                chunks.append(self._close(buffer, len(chunks)))
                buffer = []
                buffer_len = 0

        if buffer:
            chunks.append(self._close(buffer, len(chunks)))

        self._add_context(chunks)
        return chunks

    def _is_boundary(
        self,
        segment: TranscriptSegment,
        next_segment: Optional[TranscriptSegment],
    ) -> bool:
        if segment.text.rstrip().endswith(SENTENCE_BOUNDARIES):
            return True
        if next_segment is not None and next_segment.start - segment.end > self.pause_gap_seconds:
            return True
        return False

    @staticmethod
    def _close(buffer: List[TranscriptSegment], index: int) -> ChunkDraft:
        text = " ".join(segment.text for segment in buffer).strip()
        return ChunkDraft(
            chunk_index=index,
            start_time=buffer[0].start,
            end_time=buffer[-1].end,
            text=text,
            text_hash=hashlib.sha256(text.encode("utf-8")).hexdigest(),
            keywords=extract_keywords(text),
            entities=extract_entities(text),
            has_complete_thought=has_complete_thought(text),
        )

    def _add_context(self, chunks: List[ChunkDraft]) -> None:
        """Store the tail of the previous and the head of the next chunk."""
        if self.context_chars <= 0:
            return
        for i, chunk in enumerate(chunks):
            if i > 0:
                chunk.context_before = chunks[i - 1].text[-self.context_chars:]
            if i < len(chunks) - 1:
                chunk.context_after = chunks[i + 1].text[:self.context_chars]
