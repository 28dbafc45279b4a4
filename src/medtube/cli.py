"""CLI interface: thin wrapper over IngestionService."""

import json
import logging
import sys
from pathlib import Path

import typer

from medtube.config import settings
from medtube.ingestion.youtube import YouTubeFetcher
from medtube.models import VideoMetadata
from medtube.service import IngestionService, NoVideosFoundError, VideoNotFoundError
from medtube.storage.database import SQLVideoRepository

logger = logging.getLogger(__name__)

_USAGE = (
    "Usage: medtube --disease <disease_name> [--max-results <number>] "
    "[--output-file <file>] [--video-ids-file <file>]\n"
    "       medtube --video-id <video_id> [--output-file <file>] [--video-ids-file <file>]"
)

app = typer.Typer(
    name="medtube",
    help="Fetch YouTube video metadata for a disease and store it in the database.",
    add_completion=False,
)


def _get_service() -> IngestionService:
    """Create a service instance with default dependencies."""
    settings.ensure_dirs()
    return IngestionService(
        repository=SQLVideoRepository(),
        fetcher=YouTubeFetcher(),
    )


def _configure_logging(verbose: bool) -> None:
    """Send logs to stderr; stdout is reserved for JSON lines."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _write_json_lines(videos: list[VideoMetadata]) -> None:
    """Write one JSON object per line to stdout, tolerating a closed pipe."""
    for video in videos:
        try:
            typer.echo(json.dumps(video.to_json_dict()))
        except BrokenPipeError:
            logger.debug("Broken pipe on stdout, ignoring remaining output")
            return
        except OSError as e:
            logger.error("Error writing video %s to stdout: %s", video.id, e)


def _write_outputs(
    videos: list[VideoMetadata],
    output_file: Path | None,
    video_ids_file: Path | None,
) -> None:
    if output_file:
        payload = [v.to_json_dict() for v in videos]
        output_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        typer.echo(f"✅ Wrote full video metadata to {output_file}", err=True)

    if video_ids_file:
        video_ids = [v.id for v in videos]
        video_ids_file.write_text(json.dumps(video_ids, indent=2), encoding="utf-8")
        typer.echo(f"✅ Wrote {len(video_ids)} video IDs to {video_ids_file}", err=True)

    if not output_file and not video_ids_file:
        _write_json_lines(videos)


@app.command()
def fetch(
    disease: str | None = typer.Option(None, "--disease", help="Disease name to search YouTube for."),
    max_results: int = typer.Option(
        settings.default_max_results, "--max-results", help="Maximum search results."
    ),
    output_file: Path | None = typer.Option(
        None, "--output-file", help="Write the full metadata as a JSON array to this file."
    ),
    video_ids_file: Path | None = typer.Option(
        None, "--video-ids-file", help="Write the video IDs as a JSON array to this file."
    ),
    video_id: str | None = typer.Option(None, "--video-id", help="Fetch a single video by ID or URL."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Fetch video metadata, store it, and write it out."""
    _configure_logging(verbose)

    if not disease and not video_id:
        typer.echo(_USAGE, err=True)
        raise typer.Exit(code=1)
    if disease and video_id:
        logger.warning("Both --disease and --video-id given; using --video-id")

    svc = _get_service()
    try:
        with svc.repository:
            videos = svc.fetch(disease=disease, video_id=video_id, max_results=max_results)
            typer.echo(f"🔍 Fetched {len(videos)} videos", err=True)

            batch = svc.store_all(videos)
            for outcome in batch.failed:
                typer.echo(f"❌ Error storing video {outcome.video_id}: {outcome.error}", err=True)
            typer.echo(f"✅ Stored {len(batch.stored)}/{len(videos)} videos in database", err=True)

            _write_outputs(videos, output_file, video_ids_file)
    except (VideoNotFoundError, NoVideosFoundError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        logger.exception("Ingestion failed")
        typer.echo(f"❌ Error: {e}", err=True)
        raise typer.Exit(code=1)
