# tests/conftest.py
"""Shared fixtures for medtube tests."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from medtube.ingestion.youtube import YouTubeFetcher
from medtube.models import AnalysisResult, VideoMetadata
from medtube.storage.database import SQLVideoRepository


@pytest.fixture
def sample_video():
    """Fully populated VideoMetadata."""
    return VideoMetadata(
        id="dQw4w9WgXcQ",
        title="Living with Lupus: My Diagnosis Story",
        description="How it took six years to get a lupus diagnosis.",
        published_date=datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc),
        duration_in_seconds=754,
        view_count=12345,
    )


@pytest.fixture
def sample_videos():
    """Three search results for the same disease."""
    return [
        VideoMetadata(id="aaaaaaaaaaa", title="Lupus story one", duration_in_seconds=300),
        VideoMetadata(id="bbbbbbbbbbb", title="Lupus story two", duration_in_seconds=420),
        VideoMetadata(id="ccccccccccc", title="Lupus story three"),
    ]


@pytest.fixture
def sample_analysis():
    """AnalysisResult with nested JSON fields."""
    return AnalysisResult(
        video_type="patient_story",
        name="Sarah",
        age="34",
        sex="female",
        location="Ohio, USA",
        symptoms=["joint pain", "butterfly rash", {"name": "fatigue", "severity": "severe"}],
        medical_history_of_patient={"conditions": ["anemia"], "surgeries": []},
        family_medical_history=None,
        challenges_faced_during_diagnosis=["misdiagnosed as fibromyalgia"],
        key_opinion="Keep pushing for answers.",
    )


@pytest.fixture
def repo():
    """Initialized SQLVideoRepository backed by in-memory SQLite."""
    repository = SQLVideoRepository("sqlite://", retries=1, retry_interval=0)
    repository.initialize()
    yield repository
    repository.close()


@pytest.fixture
def file_repo_url(tmp_path):
    """SQLite file URL that outlives a single repository instance."""
    return f"sqlite:///{tmp_path / 'medtube-test.db'}"


@pytest.fixture
def mock_fetcher(sample_video, sample_videos):
    """YouTubeFetcher with search and get_video mocked out."""
    fetcher = MagicMock(spec=YouTubeFetcher)
    fetcher.get_video.return_value = sample_video
    fetcher.search.return_value = sample_videos
    return fetcher
