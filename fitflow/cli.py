"""
Command-line interface for FitFlow.

Ingest FIT files directly or through the task queue, prepare Elasticsearch
indices and start a worker.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click

from fitflow.config import get_settings
from fitflow.models import ProgressEvent
from fitflow.utils.logging import setup_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug: bool) -> None:
    """FitFlow command-line interface."""
    settings = get_settings()
    setup_logging(
        level="DEBUG" if debug or settings.debug else settings.log_level,
        format_type=settings.log_format,
        log_file=settings.log_file,
    )


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--user-id", "-u", required=True, help="Owner of the activity")
@click.option("--allow-duplicates", is_flag=True, help="Skip the duplicate activity check")
@click.option("--skip-file-storage", is_flag=True, help="Do not archive the raw file")
@click.option("--queue", "use_queue", is_flag=True, help="Submit to the worker queue instead of running inline")
def ingest(file: Path, user_id: str, allow_duplicates: bool, skip_file_storage: bool, use_queue: bool) -> None:
    """Ingest a FIT file."""
    if use_queue:
        from fitflow.tasks import ingest_fit_file

        task = ingest_fit_file.delay(str(file), user_id, allow_duplicates, skip_file_storage)
        click.echo(f"Submitted task {task.id}")
        return

    from fitflow.services.upload import UploadOptions
    from fitflow.tasks import run_upload

    def show_progress(event: ProgressEvent) -> None:
        line = f"[{event.progress:5.1f}%] {event.stage}"
        if event.total_records:
            line += f" ({event.records_processed}/{event.total_records} records)"
        click.echo(line, err=True)

    options = UploadOptions(
        on_progress=show_progress,
        allow_duplicates=allow_duplicates,
        skip_file_storage=skip_file_storage,
    )
    result = asyncio.run(run_upload(file.read_bytes(), file.name, user_id, options))
    click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
    if not result.success:
        sys.exit(1)


@cli.command("ensure-indices")
@click.option("--force", is_flag=True, help="Delete and recreate existing indices")
def ensure_indices(force: bool) -> None:
    """Create Elasticsearch indices."""
    from fitflow.tasks import create_indices

    if force and not click.confirm("This deletes all stored activities. Continue?"):
        click.echo("Cancelled")
        return

    for index_name, status in asyncio.run(create_indices(force)).items():
        click.echo(f"  • {index_name}: {status}")


@cli.command()
@click.option("--concurrency", "-c", default=None, type=int, help="Number of worker processes")
@click.option("--loglevel", "-l", default="info", help="Logging level")
@click.option("--queues", "-Q", default="ingest,celery", help="Comma-separated list of queues to consume")
@click.option("--hostname", "-n", help="Worker hostname")
def worker(concurrency: Optional[int], loglevel: str, queues: str, hostname: Optional[str]) -> None:
    """Start Celery worker."""
    from fitflow.celery_app import celery_app

    concurrency = concurrency or get_settings().celery.worker_concurrency
    args = ["worker", "--concurrency", str(concurrency), "--loglevel", loglevel, "--queues", queues]
    if hostname:
        args.extend(["--hostname", hostname])

    click.echo(f"Starting Celery worker with args: {' '.join(args)}")
    celery_app.worker_main(args)


if __name__ == "__main__":
    cli()
