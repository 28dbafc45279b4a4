"""YouTube metadata fetching via yt-dlp."""

import logging
import re
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import yt_dlp

from medtube.models import VideoMetadata

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when video metadata cannot be fetched."""


class YouTubeFetcher:
    """Fetches video metadata from YouTube by keyword search or video ID.

    All yt-dlp interaction is encapsulated here. No API key is needed.
    """

    _ID_PATTERN = re.compile(r"^[\w-]{11}$")

    _URL_PATTERNS = [
        re.compile(r"(?:youtube\.com/watch\?.*v=)([\w-]{11})"),
        re.compile(r"(?:youtu\.be/)([\w-]{11})"),
        re.compile(r"(?:youtube\.com/embed/)([\w-]{11})"),
        re.compile(r"(?:youtube\.com/v/)([\w-]{11})"),
        re.compile(r"(?:youtube\.com/shorts/)([\w-]{11})"),
    ]

    _BASE_OPTS = {
        "quiet": True,
        "no_warnings": True,
        "skip_download": True,
    }

    def search(self, query: str, max_results: int) -> list[VideoMetadata]:
        """Search YouTube and return metadata for up to max_results videos.

        Raises:
            ExtractionError: If the search itself fails.
        """
        ydl_opts = {**self._BASE_OPTS, "extract_flat": True}
        search_url = f"ytsearch{max_results}:{query}"
        logger.info("Searching YouTube: %s (max %d)", query, max_results)
        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                info = ydl.extract_info(search_url, download=False)
        except yt_dlp.utils.DownloadError as e:
            raise ExtractionError(f"YouTube search failed for {query!r}: {e}") from e

        if not info or "entries" not in info:
            return []
        return [
            self._to_metadata(entry)
            for entry in info["entries"]
            if entry and entry.get("id")
        ]

    def get_video(self, video: str) -> VideoMetadata | None:
        """Fetch metadata for one video given its ID or URL.

        Returns None when the video does not exist or is unavailable.

        Raises:
            ExtractionError: If the input is neither a video ID nor a YouTube URL.
        """
        video_id = self.parse_video_id(video)
        url = f"https://www.youtube.com/watch?v={video_id}"
        try:
            with yt_dlp.YoutubeDL(self._BASE_OPTS) as ydl:
                info = ydl.extract_info(url, download=False)
        except yt_dlp.utils.DownloadError as e:
            logger.warning("No metadata for video %s: %s", video_id, e)
            return None
        if not info:
            return None
        return self._to_metadata({**info, "id": info.get("id") or video_id})

    @classmethod
    def parse_video_id(cls, value: str) -> str:
        """Return the 11-character video ID from a bare ID or a YouTube URL.

        Supports youtube.com/watch, youtu.be, /embed/, /v/ and /shorts/ formats.

        Raises:
            ExtractionError: If no video ID can be found.
        """
        value = value.strip()
        if cls._ID_PATTERN.match(value):
            return value

        for pattern in cls._URL_PATTERNS:
            match = pattern.search(value)
            if match:
                return match.group(1)

        # Fallback: query parameter parsing
        parsed = urlparse(value)
        video_id = parse_qs(parsed.query).get("v", [None])[0]
        if video_id and len(video_id) == 11:
            return video_id

        raise ExtractionError(f"Could not extract video ID from: {value}")

    @staticmethod
    def _to_metadata(info: dict) -> VideoMetadata:
        """Map a yt-dlp info dict (full or flat) to VideoMetadata."""
        duration = info.get("duration")
        return VideoMetadata(
            id=info["id"],
            title=info.get("title") or "",
            description=info.get("description") or "",
            published_date=_parse_published(info),
            duration_in_seconds=int(duration) if duration else None,
            view_count=info.get("view_count"),
        )


def _parse_published(info: dict) -> datetime | None:
    """Published time from a unix timestamp or a YYYYMMDD upload_date."""
    timestamp = info.get("timestamp") or info.get("release_timestamp")
    if timestamp:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    upload_date = info.get("upload_date")
    if upload_date:
        try:
            return datetime.strptime(upload_date, "%Y%m%d").replace(tzinfo=timezone.utc)
        except ValueError:
            logger.debug("Unparseable upload_date: %s", upload_date)
    return None
