"""Domain models for medtube."""

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, ConfigDict, JsonValue, computed_field
from pydantic.alias_generators import to_camel


class VideoMetadata(BaseModel):
    """Metadata for a single YouTube video.

    Unknown values are kept as None. Serialised with camelCase keys
    (``publishedDate``, ``durationInSeconds``, ...) via ``model_dump(by_alias=True)``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str  # YouTube video ID (e.g. "dQw4w9WgXcQ")
    title: str
    description: str = ""
    published_date: datetime | None = None
    duration_in_seconds: int | None = None
    view_count: int | None = None  # not persisted

    @computed_field
    @property
    def url(self) -> str:
        """Canonical watch URL derived from the video ID."""
        return f"https://youtube.com/watch?v={self.id}"

    def with_defaults(self) -> "VideoMetadata":
        """Copy with zero defaults for unknown duration and view count."""
        return self.model_copy(update={
            "duration_in_seconds": self.duration_in_seconds or 0,
            "view_count": self.view_count or 0,
        })

    def to_json_dict(self) -> dict:
        """JSON-ready dict with camelCase keys; unknown dates render as ""."""
        data = self.model_dump(mode="json", by_alias=True)
        if data["publishedDate"] is None:
            data["publishedDate"] = ""
        return data


class TranscriptRecord(BaseModel):
    """Stored full transcript for a video."""

    full_transcript: str
    language: str = "en"


class AnalysisResult(BaseModel):
    """Medical-narrative fields extracted from a video transcript.

    The list-valued fields hold arbitrary JSON and are only serialised
    by the storage layer.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    video_type: str | None = None
    name: str | None = None
    age: str | None = None
    sex: str | None = None
    location: str | None = None
    symptoms: JsonValue | None = None
    medical_history_of_patient: JsonValue | None = None
    family_medical_history: JsonValue | None = None
    challenges_faced_during_diagnosis: JsonValue | None = None
    key_opinion: str | None = None


@dataclass
class StoreOutcome:
    """Result of persisting one video."""

    video_id: str
    stored: bool
    error: str | None = None


@dataclass
class BatchResult:
    """Per-item outcomes of a sequential store pass."""

    outcomes: list[StoreOutcome] = field(default_factory=list)

    @property
    def stored(self) -> list[str]:
        return [o.video_id for o in self.outcomes if o.stored]

    @property
    def failed(self) -> list[StoreOutcome]:
        return [o for o in self.outcomes if not o.stored]

    @property
    def ok(self) -> bool:
        return not self.failed
