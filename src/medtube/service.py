"""Core ingestion logic for medtube."""

import logging

from medtube.config import settings
from medtube.ingestion.youtube import YouTubeFetcher
from medtube.models import BatchResult, StoreOutcome, VideoMetadata
from medtube.storage.repository import VideoRepository

logger = logging.getLogger(__name__)


class VideoNotFoundError(Exception):
    """Raised when a requested video has no metadata on YouTube."""


class NoVideosFoundError(Exception):
    """Raised when a fetch produced no videos at all."""


class IngestionService:
    """Fetch-then-store orchestration used by the CLI.

    Dependencies are injected via constructor so tests can swap in an
    in-memory repository and a mocked fetcher.
    """

    def __init__(
        self,
        repository: VideoRepository,
        fetcher: YouTubeFetcher | None = None,
    ) -> None:
        self._repo = repository
        self._fetcher = fetcher or YouTubeFetcher()

    @property
    def repository(self) -> VideoRepository:
        return self._repo

    def fetch(
        self,
        *,
        disease: str | None = None,
        video_id: str | None = None,
        max_results: int | None = None,
    ) -> list[VideoMetadata]:
        """Fetch one video by ID, or search by disease keyword.

        Args:
            disease: Search keyword. Ignored when video_id is given.
            video_id: Single video ID or URL.
            max_results: Search limit. Defaults to settings.default_max_results.

        Returns:
            Fetched metadata in service order. Never empty.

        Raises:
            ValueError: If neither disease nor video_id is given.
            VideoNotFoundError: If the single video has no metadata.
            NoVideosFoundError: If the search returned nothing.
            ExtractionError: If the fetch itself fails.
        """
        if video_id:
            video = self._fetcher.get_video(video_id)
            if video is None:
                raise VideoNotFoundError(f"No metadata found for video {video_id}")
            videos = [video]
        elif disease:
            limit = max_results or settings.default_max_results
            videos = self._fetcher.search(disease, limit)
            logger.info("Found %d videos for %r", len(videos), disease)
        else:
            raise ValueError("Either disease or video_id is required")

        if not videos:
            raise NoVideosFoundError("No videos found to process")
        return videos

    def store_all(self, videos: list[VideoMetadata]) -> BatchResult:
        """Store each video in turn; one failure does not stop the rest."""
        result = BatchResult()
        for video in videos:
            try:
                self._repo.store_video(video)
            except Exception as e:
                logger.error("Error storing video %s: %s", video.id, e)
                result.outcomes.append(StoreOutcome(video_id=video.id, stored=False, error=str(e)))
                continue
            result.outcomes.append(StoreOutcome(video_id=video.id, stored=True))
        logger.info("Stored %d/%d videos", len(result.stored), len(videos))
        return result
