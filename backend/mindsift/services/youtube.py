"""
YouTube Data API service for video metadata.

Looks up the title, duration and owning channel of a video so the ingestion
pipeline can create its row on first use. Requests go through the Google API
client, whose blocking ``execute()`` runs in a worker thread.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

import isodate
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from mindsift.core.config import settings
from mindsift.core.errors import DownstreamUnavailable, TransientNetwork, VideoNotFound
from mindsift.schemas.transcript import VideoMetadata
from mindsift.services.transcript_service import validate_youtube_id

logger = logging.getLogger(__name__)


class VideoMetadataSource(Protocol):

    async def get_video_details(self, video_id: str) -> VideoMetadata:
        ...


class YouTubeService:
    """
    Service for interacting with YouTube Data API v3.

    Example:
        >>> youtube = YouTubeService()
        >>> details = await youtube.get_video_details("dQw4w9WgXcQ")
        >>> details.title, details.duration_seconds
    """

    def __init__(self, api_key: Optional[str] = None, client: Any = None):
        """
        Initialize YouTube service with API key.

        Args:
            api_key: YouTube Data API key. If None, uses settings.YOUTUBE_API_KEY
            client: Prebuilt API client (tests)

        Raises:
            ValueError: If no API key is provided or found in settings
        """
        self.api_key = api_key or settings.YOUTUBE_API_KEY

        if client is None and not self.api_key:
            raise ValueError(
                "YouTube API key is required. Set YOUTUBE_API_KEY in environment variables."
            )

        self._youtube = client if client is not None else self._build_client()

    def _build_client(self) -> Any:
        """Initialize YouTube API client."""
        try:
            client = build(
                'youtube',
                'v3',
                developerKey=self.api_key,
                cache_discovery=False  # Avoid caching issues in production
            )
        except Exception as e:
            logger.error(f"Failed to initialize YouTube API client: {e}")
            raise DownstreamUnavailable(f"Failed to initialize YouTube API: {e}") from e

        logger.info("YouTube API client initialized successfully")
        return client

    async def get_video_details(self, video_id: str) -> VideoMetadata:
        """
        Get title, duration and channel of a video.

        Raises:
            InvalidInput: malformed video id
            VideoNotFound: the video does not exist or is private
            TransientNetwork: rate limited, server error or connection failure
            DownstreamUnavailable: quota exceeded or key rejected
        """
        validate_youtube_id(video_id)

        request = self._youtube.videos().list(
            part='snippet,contentDetails',
            id=video_id
        )

        try:
            response = await asyncio.to_thread(request.execute)
        except HttpError as e:
            raise self._map_http_error(e, video_id) from e
        except OSError as e:
            logger.warning(f"Connection error fetching details of {video_id}: {e}")
            raise TransientNetwork(f"YouTube API connection failed: {e}") from e

        if not response.get('items'):
            raise VideoNotFound(f"Video {video_id} not found on YouTube")

        return self._parse_video_details(response['items'][0])

    @staticmethod
    def _map_http_error(error: HttpError, video_id: str) -> Exception:
        status = error.resp.status
        if status == 404:
            return VideoNotFound(f"Video {video_id} not found on YouTube")
        if status == 403:
            return DownstreamUnavailable("YouTube API quota exceeded or key rejected")
        if status == 429 or status >= 500:
            return TransientNetwork(f"YouTube API returned {status}")

        logger.error(f"YouTube API error: {error}")
        return DownstreamUnavailable(f"YouTube API error: {error}")

    @staticmethod
    def parse_duration(iso_duration: str) -> Optional[int]:
        """
        Convert an ISO 8601 duration to seconds.

        Example:
            >>> YouTubeService.parse_duration("PT1H2M30S")
            3750
        """
        try:
            return int(isodate.parse_duration(iso_duration).total_seconds())
        except (isodate.ISO8601Error, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse duration {iso_duration}: {e}")
            return None

    def _parse_video_details(self, item: Dict) -> VideoMetadata:
        """Parse detailed video data from API response."""
        snippet = item.get('snippet', {})
        content_details = item.get('contentDetails', {})

        return VideoMetadata(
            youtube_id=item['id'],
            title=snippet.get('title', ''),
            duration_seconds=self.parse_duration(content_details.get('duration', 'PT0S')),
            youtube_channel_id=snippet.get('channelId'),
            channel_title=snippet.get('channelTitle', ''),
        )


# ========================================
# Helper Functions
# ========================================

_youtube_service: Optional[YouTubeService] = None


def get_youtube_service() -> Optional[YouTubeService]:
    """
    Get or create the YouTube service instance.

    Returns None when YOUTUBE_API_KEY is not configured.
    """
    global _youtube_service

    if _youtube_service is None and settings.YOUTUBE_API_KEY:
        _youtube_service = YouTubeService()

    return _youtube_service
