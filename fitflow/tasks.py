"""
Celery tasks for FitFlow.

Uploads run as one asyncio coroutine inside the worker process; every
progress event of the pipeline is mirrored into the task state so callers can
poll it.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

from .celery_app import celery_app
from .config import get_elasticsearch_config, get_settings
from .exceptions import validation_error
from .models import ProgressEvent, UploadResult
from .services.upload import UploadOptions, create_uploader
from .storage import ElasticsearchActivityStore
from .utils.logging import get_logger


logger = get_logger(__name__)

# Task configuration
TASK_CONFIG = {
    "ingest_fit_file": {
        "time_limit": 600,  # 10 minutes
        "soft_time_limit": 540,
        "max_retries": 0,
    },
    "ensure_elasticsearch_indices": {
        "time_limit": 600,
        "soft_time_limit": 540,
        "retry_delay": 60,
        "max_retries": 3,
    },
}


async def run_upload(data: bytes, filename: str, user_id: str, options: UploadOptions) -> UploadResult:
    """Run one upload with a freshly built uploader and release its connections."""
    uploader = create_uploader()
    try:
        return await uploader.upload(data, filename, user_id, options)
    finally:
        await uploader.close()


@celery_app.task(bind=True, **TASK_CONFIG["ingest_fit_file"])
def ingest_fit_file(self, file_path: str, user_id: str, allow_duplicates: bool = False,
                    skip_file_storage: bool = False, filename: Optional[str] = None) -> Dict[str, Any]:
    """
    Ingest a FIT file from disk.

    Args:
        file_path: Path of the FIT file to read
        user_id: Owner of the activity
        allow_duplicates: Skip the duplicate check
        skip_file_storage: Do not archive the raw file
        filename: Name to record instead of the file's own name

    Returns:
        The upload result envelope as a JSON-safe dict

    Raises:
        ValidationError: The file cannot be read
    """
    path = Path(file_path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise validation_error(f"Cannot read FIT file: {e}", file_path=file_path) from e

    def on_progress(event: ProgressEvent) -> None:
        self.update_state(state='PROGRESS', meta=event.model_dump(mode='json'))

    options = UploadOptions(
        on_progress=on_progress,
        allow_duplicates=allow_duplicates,
        skip_file_storage=skip_file_storage,
    )
    result = asyncio.run(run_upload(data, filename or path.name, user_id, options))

    logger.info(
        "FIT file ingest finished",
        user_id=user_id,
        file_name=filename or path.name,
        success=result.success,
        activity_id=result.activity_id,
    )
    return result.model_dump(mode='json')


async def create_indices(force_recreate: bool) -> Dict[str, str]:
    store = ElasticsearchActivityStore(
        get_elasticsearch_config(),
        index_prefix=get_settings().elasticsearch.index_prefix,
    )
    try:
        return await store.ensure_indices(force_recreate=force_recreate)
    finally:
        await store.close()


@celery_app.task(bind=True, **TASK_CONFIG["ensure_elasticsearch_indices"])
def ensure_elasticsearch_indices(self, force_recreate: bool = False) -> Dict[str, Any]:
    """Create the activity, lap and record indices if they are missing."""
    self.update_state(state='PROGRESS', meta={'stage': 'ensuring_indices', 'progress': 0})
    indices = asyncio.run(create_indices(force_recreate))
    logger.info("Indices ensured", indices=indices)
    return {'success': True, 'indices': indices}
