"""
Timestamp citations.

Answers cite the transcript with bracketed timestamps such as ``[12:34]`` or
``[1:02:03]``; a bracketed range ``[12:34 - 13:10]`` cites its start. Each
citation is converted to seconds and resolved to the first ranked chunk
whose time range contains it.
"""

import math
import re
from typing import List, Optional, Sequence

from mindsift.schemas.chat import Citation, RankedChunk

CITATION_PATTERN = re.compile(
    r"\[(\d{1,3}:\d{2}(?::\d{2})?)(?:\s*-\s*\d{1,3}:\d{2}(?::\d{2})?)?\]"
)


def format_timestamp(seconds: float) -> str:
    """Format seconds as MM:SS, or HH:MM:SS from one hour on."""
    total = max(0, int(math.floor(seconds)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def parse_timestamp(timestamp: str) -> int:
    """Convert MM:SS or HH:MM:SS to seconds."""
    parts = [int(part) for part in timestamp.split(":")]
    seconds = 0
    for part in parts:
        seconds = seconds * 60 + part
    return seconds


def extract_timestamps(answer: str) -> List[str]:
    """Cited timestamps in order of first appearance, without duplicates."""
    seen: List[str] = []
    for match in CITATION_PATTERN.finditer(answer):
        timestamp = match.group(1)
        if timestamp not in seen:
            seen.append(timestamp)
    return seen


def find_chunk_by_seconds(chunks: Sequence[RankedChunk], seconds: int) -> Optional[RankedChunk]:
    """
    First chunk, in ranked order, whose [start, end] contains ``seconds``.

    Starts are compared floored, matching how they are printed in the prompt.
    """
    for ranked in chunks:
        if math.floor(ranked.chunk.start_time) <= seconds <= ranked.chunk.end_time:
            return ranked
    return None


def resolve_citations(answer: str, chunks: Sequence[RankedChunk]) -> List[Citation]:
    """Citations of an answer; unresolved ones carry empty supporting text."""
    citations = []
    for timestamp in extract_timestamps(answer):
        seconds = parse_timestamp(timestamp)
        match = find_chunk_by_seconds(chunks, seconds)
        citations.append(Citation(
            timestamp=timestamp,
            seconds=seconds,
            text=match.chunk.text if match else "",
            video_id=match.youtube_id if match else None,
        ))
    return citations
