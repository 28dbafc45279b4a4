"""SQL implementation of the video repository (PostgreSQL or SQLite)."""

import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import (
    JSON,
    Column,
    Connection,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from medtube.config import settings
from medtube.models import AnalysisResult, TranscriptRecord, VideoMetadata
from medtube.storage.repository import VideoRepository

logger = logging.getLogger(__name__)


class DatabaseConnectionError(Exception):
    """Raised when the database cannot be reached after all retries."""


# NULL for None instead of the JSON literal 'null'
_Json = JSON(none_as_null=True).with_variant(postgresql.JSONB(none_as_null=True), "postgresql")

db_metadata = MetaData()

videos = Table(
    "videos",
    db_metadata,
    Column("video_id", String(255), primary_key=True),
    Column("title", Text, nullable=False),
    Column("description", Text),
    Column("published_date", DateTime, nullable=True),
    Column("duration_seconds", Integer),
    Column("url", Text, nullable=False),
)

transcripts = Table(
    "transcripts",
    db_metadata,
    Column("transcript_id", Integer, primary_key=True, autoincrement=True),
    Column(
        "video_id",
        String(255),
        ForeignKey("videos.video_id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    ),
    Column("full_transcript", Text, nullable=False),
    Column("language", String(10), nullable=False),
)

analysis = Table(
    "analysis",
    db_metadata,
    Column("video_id", String(255), ForeignKey("videos.video_id", ondelete="CASCADE"), primary_key=True),
    Column("video_type", Text),
    Column("name", Text),
    Column("age", Text),
    Column("sex", Text),
    Column("location", Text),
    Column("symptoms", _Json),
    Column("medical_history_of_patient", _Json),
    Column("family_medical_history", _Json),
    Column("challenges_faced_during_diagnosis", _Json),
    Column("key_opinion", Text),
)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def normalize_database_url(url: str) -> str:
    """Point bare PostgreSQL URLs at the psycopg2 driver."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg2://" + url[len(prefix):]
    return url


def _to_naive_utc(value: datetime | None) -> datetime | None:
    """TIMESTAMP columns carry no zone; store aware datetimes as UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SQLVideoRepository(VideoRepository):
    """SQLAlchemy-backed video storage.

    Owns one connection pool for its lifetime. Upserts use the dialect's
    INSERT ... ON CONFLICT DO UPDATE, so every write is safe to repeat.
    """

    def __init__(
        self,
        database_url: str | None = None,
        *,
        retries: int | None = None,
        retry_interval: float | None = None,
    ) -> None:
        """Initialize the repository without connecting.

        Args:
            database_url: SQLAlchemy URL. Defaults to settings.database_url.
                          Use "sqlite://" for an in-memory database in tests.
            retries: Connection attempts before giving up.
            retry_interval: Seconds to wait between attempts.
        """
        self._url = normalize_database_url(database_url or settings.database_url)
        self._retries = retries if retries is not None else settings.connect_retries
        self._retry_interval = (
            retry_interval if retry_interval is not None else settings.connect_retry_interval
        )
        self._engine: Engine | None = None

    def connect(self) -> Engine:
        """Create the pool, validating it with a trivial query.

        Raises:
            DatabaseConnectionError: If every attempt fails.
        """
        if self._engine is not None:
            return self._engine

        last_error: Exception | None = None
        for attempt in range(1, self._retries + 1):
            if attempt > 1:
                time.sleep(self._retry_interval)
            logger.info("Connecting to database (attempt %d/%d)", attempt, self._retries)
            engine = None
            try:
                engine = self._create_engine()
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except SQLAlchemyError as e:
                last_error = e
                logger.warning("Database connection attempt %d/%d failed: %s", attempt, self._retries, e)
                if engine is not None:
                    engine.dispose()
                continue
            logger.info("Connected to %s database", engine.dialect.name)
            self._engine = engine
            return engine

        raise DatabaseConnectionError(
            f"Failed to connect to database after {self._retries} attempts"
        ) from last_error

    def initialize(self) -> None:
        """Connect if needed and create tables that do not exist yet."""
        engine = self.connect()
        try:
            db_metadata.create_all(engine, checkfirst=True)
        except SQLAlchemyError:
            logger.exception("Error initializing database schema")
            raise
        logger.info("Database initialized")

    def close(self) -> None:
        """Dispose of the pool. Safe to call more than once."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.debug("Database pool closed")

    def _create_engine(self) -> Engine:
        url = make_url(self._url)
        if url.get_backend_name() != "sqlite":
            return create_engine(url, pool_pre_ping=True)

        if url.database in (None, "", ":memory:"):
            # one shared connection, otherwise every checkout sees an empty db
            engine = create_engine(
                url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_engine(url)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Connection]:
        """Run one unit of work, logging failures with context before re-raising."""
        engine = self._require_engine()
        try:
            with engine.begin() as conn:
                yield conn
        except SQLAlchemyError:
            logger.exception("Error %s", action)
            raise

    def _upsert(self, table: Table, key: str, values: dict):
        dialect = self._require_engine().dialect.name
        insert = _INSERT_BY_DIALECT.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Upsert not supported for dialect {dialect}")
        stmt = insert(table).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=[key],
            set_={name: stmt.excluded[name] for name in values if name != key},
        )

    def store_video(self, video: VideoMetadata) -> None:
        """Persist video metadata. Upserts if the video ID already exists."""
        stmt = self._upsert(videos, "video_id", {
            "video_id": video.id,
            "title": video.title,
            "description": video.description,
            "published_date": _to_naive_utc(video.published_date),
            "duration_seconds": video.duration_in_seconds or None,
            "url": video.url,
        })
        with self._transaction(f"storing metadata for video {video.id}") as conn:
            conn.execute(stmt)
        logger.info("Video metadata stored for %s", video.id)

    def get_video_metadata(
        self, video_id: str, *, fill_defaults: bool = True
    ) -> VideoMetadata | None:
        """Retrieve video metadata by ID. Returns None if not found.

        View count is not persisted and always reads back as 0. With
        fill_defaults, an unknown duration reads back as 0; otherwise it
        stays None.
        """
        with self._transaction(f"fetching metadata for video {video_id}") as conn:
            row = conn.execute(
                select(videos).where(videos.c.video_id == video_id)
            ).mappings().first()
        if row is None:
            return None

        video = VideoMetadata(
            id=row["video_id"],
            title=row["title"],
            description=row["description"] or "",
            published_date=row["published_date"],
            duration_in_seconds=row["duration_seconds"],
            view_count=0,
        )
        return video.with_defaults() if fill_defaults else video

    def get_all_video_ids(self) -> list[str]:
        """List every stored video ID. Order is unspecified."""
        with self._transaction("fetching all video IDs") as conn:
            return list(conn.execute(select(videos.c.video_id)).scalars())

    def store_transcript(self, video_id: str, transcript: str, language: str = "en") -> None:
        """Persist the full transcript of a stored video. Upserts by video ID."""
        stmt = self._upsert(transcripts, "video_id", {
            "video_id": video_id,
            "full_transcript": transcript,
            "language": language,
        })
        with self._transaction(f"storing transcript for {video_id}") as conn:
            conn.execute(stmt)
        logger.info("Transcript stored for video %s", video_id)

    def get_transcript(self, video_id: str) -> TranscriptRecord | None:
        """Retrieve a transcript by video ID. Returns None if not found."""
        with self._transaction(f"fetching transcript for {video_id}") as conn:
            row = conn.execute(
                select(transcripts.c.full_transcript, transcripts.c.language)
                .where(transcripts.c.video_id == video_id)
            ).mappings().first()
        if row is None:
            return None
        return TranscriptRecord(full_transcript=row["full_transcript"], language=row["language"])

    def store_analysis(self, video_id: str, analysis_result: AnalysisResult) -> None:
        """Persist the narrative analysis of a stored video. Upserts by video ID.

        JSON fields go through the column type as Python structures;
        None becomes SQL NULL.
        """
        stmt = self._upsert(analysis, "video_id", {
            "video_id": video_id,
            **analysis_result.model_dump(by_alias=False),
        })
        with self._transaction(f"storing analysis for {video_id}") as conn:
            conn.execute(stmt)
        logger.info("Analysis stored for video %s", video_id)

    def get_analysis(self, video_id: str) -> AnalysisResult | None:
        """Retrieve an analysis by video ID. Returns None if not found."""
        with self._transaction(f"fetching analysis for {video_id}") as conn:
            row = conn.execute(
                select(analysis).where(analysis.c.video_id == video_id)
            ).mappings().first()
        if row is None:
            return None
        fields = {k: v for k, v in row.items() if k != "video_id"}
        return AnalysisResult.model_validate(fields)

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._engine
