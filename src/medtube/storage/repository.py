"""Abstract repository interface for video storage."""

from abc import ABC, abstractmethod

from medtube.models import AnalysisResult, TranscriptRecord, VideoMetadata


class VideoRepository(ABC):
    """Abstract base class defining the video storage contract.

    Concrete implementations own their connection lifecycle: call
    initialize() once before use and close() when done, or use the
    repository as a context manager.
    """

    def __enter__(self) -> "VideoRepository":
        self.initialize()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @abstractmethod
    def initialize(self) -> None:
        """Connect and create the schema if it does not exist."""

    @abstractmethod
    def close(self) -> None:
        """Release all pooled connections."""

    @abstractmethod
    def store_video(self, video: VideoMetadata) -> None:
        """Persist video metadata. Upserts if the video ID already exists."""

    @abstractmethod
    def get_video_metadata(
        self, video_id: str, *, fill_defaults: bool = True
    ) -> VideoMetadata | None:
        """Retrieve video metadata by ID. Returns None if not found."""

    @abstractmethod
    def get_all_video_ids(self) -> list[str]:
        """List every stored video ID. Order is unspecified."""

    @abstractmethod
    def store_transcript(self, video_id: str, transcript: str, language: str = "en") -> None:
        """Persist the full transcript of a stored video. Upserts by video ID."""

    @abstractmethod
    def get_transcript(self, video_id: str) -> TranscriptRecord | None:
        """Retrieve a transcript by video ID. Returns None if not found."""

    @abstractmethod
    def store_analysis(self, video_id: str, analysis: AnalysisResult) -> None:
        """Persist the narrative analysis of a stored video. Upserts by video ID."""

    @abstractmethod
    def get_analysis(self, video_id: str) -> AnalysisResult | None:
        """Retrieve an analysis by video ID. Returns None if not found."""
