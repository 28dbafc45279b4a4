# tests/test_database.py
"""Tests for the SQL video repository."""

from datetime import datetime
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError, OperationalError

from medtube.models import AnalysisResult, VideoMetadata
from medtube.storage.database import (
    DatabaseConnectionError,
    SQLVideoRepository,
    normalize_database_url,
)


def _refused():
    return OperationalError("SELECT 1", {}, Exception("connection refused"))


class TestConnection:
    @patch("medtube.storage.database.time.sleep")
    def test_retries_then_fails(self, mock_sleep):
        repo = SQLVideoRepository("sqlite://", retries=5, retry_interval=2.0)
        with patch.object(repo, "_create_engine", side_effect=_refused()) as mock_create:
            with pytest.raises(DatabaseConnectionError):
                repo.connect()
        assert mock_create.call_count == 5
        assert mock_sleep.call_count == 4
        mock_sleep.assert_called_with(2.0)

    @patch("medtube.storage.database.time.sleep")
    def test_succeeds_after_transient_failures(self, mock_sleep):
        repo = SQLVideoRepository("sqlite://", retries=5, retry_interval=2.0)
        engine = create_engine("sqlite://")
        with patch.object(repo, "_create_engine", side_effect=[_refused(), _refused(), engine]):
            assert repo.connect() is engine
        assert mock_sleep.call_count == 2
        repo.close()

    def test_connect_is_reused(self, repo):
        assert repo.connect() is repo.connect()

    def test_operations_require_initialize(self, sample_video):
        repo = SQLVideoRepository("sqlite://")
        with pytest.raises(RuntimeError):
            repo.store_video(sample_video)
        with pytest.raises(RuntimeError):
            repo.get_all_video_ids()

    def test_initialize_is_idempotent(self, repo, sample_video):
        repo.store_video(sample_video)
        repo.initialize()
        assert repo.get_video_metadata(sample_video.id) is not None

    def test_context_manager_closes(self, sample_video):
        with SQLVideoRepository("sqlite://") as repo:
            repo.store_video(sample_video)
        with pytest.raises(RuntimeError):
            repo.get_all_video_ids()

    def test_close_twice(self, repo):
        repo.close()
        repo.close()

    def test_data_survives_reopen(self, file_repo_url, sample_video):
        with SQLVideoRepository(file_repo_url) as repo:
            repo.store_video(sample_video)
        with SQLVideoRepository(file_repo_url) as repo:
            assert repo.get_all_video_ids() == [sample_video.id]


class TestNormalizeUrl:
    def test_postgres_scheme(self):
        assert normalize_database_url("postgres://u@h/db") == "postgresql+psycopg2://u@h/db"

    def test_postgresql_scheme(self):
        assert normalize_database_url("postgresql://u@h/db") == "postgresql+psycopg2://u@h/db"

    def test_explicit_driver_untouched(self):
        assert normalize_database_url("postgresql+psycopg2://u@h/db") == "postgresql+psycopg2://u@h/db"
        assert normalize_database_url("sqlite:///x.db") == "sqlite:///x.db"


class TestVideos:
    def test_store_and_get(self, repo, sample_video):
        repo.store_video(sample_video)
        loaded = repo.get_video_metadata(sample_video.id)
        assert loaded is not None
        assert loaded.id == sample_video.id
        assert loaded.title == sample_video.title
        assert loaded.description == sample_video.description
        assert loaded.published_date == datetime(2024, 3, 1, 12, 0, 0)
        assert loaded.duration_in_seconds == 754
        assert loaded.url == "https://youtube.com/watch?v=dQw4w9WgXcQ"

    def test_view_count_not_persisted(self, repo, sample_video):
        repo.store_video(sample_video)
        assert repo.get_video_metadata(sample_video.id).view_count == 0
        assert repo.get_video_metadata(sample_video.id, fill_defaults=False).view_count == 0

    def test_store_upsert(self, repo, sample_video):
        repo.store_video(sample_video)
        updated = sample_video.model_copy(update={
            "title": "Updated Title",
            "description": "New description",
            "duration_in_seconds": 99,
        })
        repo.store_video(updated)
        loaded = repo.get_video_metadata(sample_video.id)
        assert loaded.title == "Updated Title"
        assert loaded.description == "New description"
        assert loaded.duration_in_seconds == 99
        # Ensure no duplicate
        assert repo.get_all_video_ids() == [sample_video.id]

    def test_upsert_overwrites_with_null(self, repo, sample_video):
        repo.store_video(sample_video)
        repo.store_video(VideoMetadata(id=sample_video.id, title="Bare"))
        loaded = repo.get_video_metadata(sample_video.id, fill_defaults=False)
        assert loaded.published_date is None
        assert loaded.duration_in_seconds is None

    def test_unknown_fields_stored_as_null(self, repo):
        repo.store_video(VideoMetadata(id="nodata00000", title="Sparse"))
        with repo.connect().connect() as conn:
            row = conn.execute(
                text("SELECT published_date, duration_seconds FROM videos WHERE video_id = :id"),
                {"id": "nodata00000"},
            ).one()
        assert row.published_date is None
        assert row.duration_seconds is None

    def test_fill_defaults(self, repo):
        repo.store_video(VideoMetadata(id="nodata00000", title="Sparse"))
        filled = repo.get_video_metadata("nodata00000")
        raw = repo.get_video_metadata("nodata00000", fill_defaults=False)
        assert filled.duration_in_seconds == 0
        assert raw.duration_in_seconds is None
        assert filled.to_json_dict()["publishedDate"] == ""

    def test_get_not_found(self, repo):
        assert repo.get_video_metadata("nonexistent") is None

    def test_get_all_video_ids(self, repo, sample_videos):
        for v in reversed(sample_videos):
            repo.store_video(v)
        repo.store_video(sample_videos[0])
        ids = repo.get_all_video_ids()
        assert sorted(ids) == sorted(v.id for v in sample_videos)
        assert len(ids) == len(set(ids))

    def test_get_all_video_ids_empty(self, repo):
        assert repo.get_all_video_ids() == []


class TestTranscripts:
    def test_store_and_get(self, repo, sample_video):
        repo.store_video(sample_video)
        repo.store_transcript(sample_video.id, "Hello and welcome.")
        loaded = repo.get_transcript(sample_video.id)
        assert loaded.full_transcript == "Hello and welcome."
        assert loaded.language == "en"

    def test_store_upsert(self, repo, sample_video):
        repo.store_video(sample_video)
        repo.store_transcript(sample_video.id, "First", "en")
        repo.store_transcript(sample_video.id, "Segundo", "es")
        loaded = repo.get_transcript(sample_video.id)
        assert loaded.full_transcript == "Segundo"
        assert loaded.language == "es"

    def test_get_not_found(self, repo):
        assert repo.get_transcript("nonexistent") is None

    def test_unknown_video_rejected(self, repo):
        with pytest.raises(IntegrityError):
            repo.store_transcript("nonexistent", "text")

    def test_cascade_delete(self, repo, sample_video):
        repo.store_video(sample_video)
        repo.store_transcript(sample_video.id, "text")
        with repo.connect().begin() as conn:
            conn.execute(text("DELETE FROM videos WHERE video_id = :id"), {"id": sample_video.id})
        assert repo.get_transcript(sample_video.id) is None


class TestAnalysis:
    def test_store_and_get(self, repo, sample_video, sample_analysis):
        repo.store_video(sample_video)
        repo.store_analysis(sample_video.id, sample_analysis)
        loaded = repo.get_analysis(sample_video.id)
        assert loaded == sample_analysis
        assert loaded.symptoms[2] == {"name": "fatigue", "severity": "severe"}
        assert loaded.medical_history_of_patient == {"conditions": ["anemia"], "surgeries": []}

    def test_absent_json_stored_as_sql_null(self, repo, sample_video, sample_analysis):
        repo.store_video(sample_video)
        repo.store_analysis(sample_video.id, sample_analysis)
        with repo.connect().connect() as conn:
            row = conn.execute(
                text("SELECT family_medical_history IS NULL AS missing, symptoms FROM analysis")
            ).one()
        assert row.missing == 1
        # serialised once, not double-encoded
        assert row.symptoms.startswith("[")

    def test_store_upsert(self, repo, sample_video, sample_analysis):
        repo.store_video(sample_video)
        repo.store_analysis(sample_video.id, sample_analysis)
        repo.store_analysis(sample_video.id, AnalysisResult(key_opinion="Revised"))
        loaded = repo.get_analysis(sample_video.id)
        assert loaded.key_opinion == "Revised"
        assert loaded.symptoms is None
        assert loaded.name is None

    def test_get_not_found(self, repo):
        assert repo.get_analysis("nonexistent") is None

    def test_unknown_video_rejected(self, repo, sample_analysis):
        with pytest.raises(IntegrityError):
            repo.store_analysis("nonexistent", sample_analysis)
