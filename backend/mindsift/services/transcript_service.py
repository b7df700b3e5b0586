"""
YouTube transcript acquisition with language fallback strategies.

Fallback chain:
1. Manual transcript in a preferred language
2. Auto-generated transcript in a preferred language
3. Manual transcript in any language
4. Auto-generated transcript in any language

Caption lines are normalized into TranscriptSegment values with
non-overlapping [start, end] ranges. Platform errors are mapped onto the
MindSift error taxonomy: missing captions become NotAvailable, blocked or
failed requests become TransientNetwork.
"""

import asyncio
import html
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import requests
from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    RequestBlocked,
    TranscriptsDisabled,
    VideoUnavailable,
    YouTubeRequestFailed,
    YouTubeTranscriptApi,
)

from mindsift.core.config import settings
from mindsift.core.errors import InvalidInput, NotAvailable, TransientNetwork
from mindsift.schemas.transcript import TranscriptSegment

logger = logging.getLogger(__name__)

YOUTUBE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")

# [Music], [Applause], [Laughter] and friends
_SOUND_TAG_PATTERN = re.compile(r"\[[^\]]*\]")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def validate_youtube_id(video_id: str) -> str:
    """Return the id unchanged, or raise InvalidInput if it is malformed."""
    if not isinstance(video_id, str) or not YOUTUBE_ID_PATTERN.match(video_id):
        raise InvalidInput(f"Malformed YouTube video id: {video_id!r}")
    return video_id


class TranscriptService:
    """
    Fetches and normalizes YouTube captions.

    Example:
        >>> service = TranscriptService()
        >>> segments = await service.fetch("dQw4w9WgXcQ")
        >>> segments[0].start, segments[0].end, segments[0].text
    """

    def __init__(
        self,
        api: Optional[YouTubeTranscriptApi] = None,
        preferred_languages: Optional[List[str]] = None,
    ):
        self.api = api or YouTubeTranscriptApi()
        # settings.YOUTUBE_PREFERRED_TRANSCRIPT_LANGUAGES is already parsed as List[str]
        self.preferred_languages = preferred_languages or settings.YOUTUBE_PREFERRED_TRANSCRIPT_LANGUAGES
        logger.info(f"TranscriptService initialized with languages: {self.preferred_languages}")

    async def fetch(self, video_id: str) -> List[TranscriptSegment]:
        """
        Fetch the caption stream of a video as ordered segments.

        Args:
            video_id: 11-character YouTube video id

        Returns:
            Ordered segments; an empty list when the video has an empty
            caption track.

        Raises:
            InvalidInput: malformed id (checked before any network call)
            NotAvailable: captions disabled, missing, or video unavailable
            TransientNetwork: request blocked or failed, worth retrying
        """
        validate_youtube_id(video_id)

        try:
            raw_segments, metadata = await asyncio.to_thread(self._fetch_raw, video_id)
        except (TranscriptsDisabled, NoTranscriptFound, VideoUnavailable) as e:
            raise NotAvailable(f"No captions available for video {video_id}: {type(e).__name__}") from e
        except (RequestBlocked, YouTubeRequestFailed) as e:
            logger.warning(f"Transient YouTube error for {video_id}: {type(e).__name__}")
            raise TransientNetwork(f"YouTube request failed for video {video_id}") from e
        except CouldNotRetrieveTranscript as e:
            raise NotAvailable(f"Could not retrieve captions for video {video_id}: {type(e).__name__}") from e
        except requests.RequestException as e:
            logger.warning(f"Network error fetching transcript for {video_id}: {e}")
            raise TransientNetwork(f"Network error fetching captions for video {video_id}") from e

        segments = self.normalize_segments(raw_segments)
        logger.info(
            f"Fetched {len(segments)} segments for {video_id} "
            f"({metadata['type']}, {metadata['language']})"
        )
        return segments

    def _fetch_raw(self, video_id: str) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
        """Blocking part of the fetch: pick a transcript and download it."""
        transcript_list = self.api.list(video_id)
        transcript, kind = self._select_transcript(transcript_list)

        if transcript is None:
            raise NotAvailable(f"No transcript available for video {video_id} in any language")

        if kind.endswith("fallback"):
            logger.info(
                f"Using transcript in non-preferred language "
                f"{transcript.language_code} for video {video_id}"
            )

        fetched = transcript.fetch()
        raw = [
            {"text": snippet.text, "start": snippet.start, "duration": snippet.duration}
            for snippet in fetched
        ]
        return raw, {"language": transcript.language_code, "type": kind}

    def _select_transcript(self, transcript_list) -> Tuple[Optional[Any], str]:
        """Walk the fallback chain and return (transcript, kind)."""
        # Strategy 1: manual transcript in preferred languages
        for lang in self.preferred_languages:
            try:
                return transcript_list.find_manually_created_transcript([lang]), "manual"
            except NoTranscriptFound:
                continue

        # Strategy 2: auto-generated transcript in preferred languages
        for lang in self.preferred_languages:
            try:
                return transcript_list.find_generated_transcript([lang]), "auto"
            except NoTranscriptFound:
                continue

        available = list(transcript_list)

        # Strategy 3: any manual transcript
        for transcript in available:
            if not transcript.is_generated:
                return transcript, "manual-fallback"

        # Strategy 4: any auto-generated transcript
        for transcript in available:
            if transcript.is_generated:
                return transcript, "auto-fallback"

        return None, "none"

    @classmethod
    def normalize_segments(cls, raw_segments: List[Dict[str, Any]]) -> List[TranscriptSegment]:
        """
        Turn raw caption entries into clean, non-overlapping segments.

        Entries are ordered by start time, their text is cleaned and empty
        ones are dropped. Each end is start + duration, clamped to the next
        segment's start and never before its own start.
        """
        cleaned = []
        for entry in sorted(raw_segments, key=lambda e: float(e.get("start", 0.0))):
            text = cls.clean_text(entry.get("text", ""))
            if not text:
                continue
            start = max(0.0, float(entry.get("start", 0.0)))
            duration = max(0.0, float(entry.get("duration", 0.0)))
            cleaned.append((start, start + duration, text))

        segments = []
        for i, (start, end, text) in enumerate(cleaned):
            if i + 1 < len(cleaned):
                end = min(end, cleaned[i + 1][0])
            end = max(end, start)
            segments.append(TranscriptSegment(start=start, end=end, text=text))

        return segments

    @staticmethod
    def clean_text(text: str) -> str:
        """
        Clean and normalize caption text.

        Decodes HTML entities, removes sound tags like [Music] or [Applause]
        and collapses whitespace.
        """
        if not text:
            return ""

        text = html.unescape(text)
        text = _SOUND_TAG_PATTERN.sub(" ", text)
        text = _WHITESPACE_PATTERN.sub(" ", text)
        return text.strip()


# ========================================
# Helper Functions
# ========================================

def get_transcript_service() -> TranscriptService:
    """
    Get or create transcript service instance.

    Returns:
        TranscriptService instance
    """
    return TranscriptService()
