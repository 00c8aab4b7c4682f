#!/usr/bin/env python3
"""
FIT file uploader - staged ingestion pipeline from raw bytes to stored
activity, with progress events and an immutable result envelope
"""
import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..config import IngestConfig, Settings, get_ingest_config, get_settings
from ..exceptions import ConflictError, conflict_error, validation_error
from ..models import (
    BatchProgress, FileMetadata, MessageTree, ProcessedFitData, ProgressEvent,
    UploadResult, UploadStage, UploadStats,
)
from ..processors import ActivityDataProcessor, FitDecoder, FitParseDecoder, ProcessingOptions, build_file_metadata
from ..storage import ActivityStore, BlobStorage, ElasticsearchActivityStore, LocalBlobStorage, generate_fit_file_path
from ..utils.logging import get_logger, log_upload_completion, log_upload_error
from .progress import CallbackObserver, ProgressObserver, ProgressReporter
from .storage import FitDataStorage


logger = get_logger(__name__)


@dataclass
class UploadOptions:
    """Per-upload switches"""
    on_progress: Optional[Callable[[ProgressEvent], None]] = None
    allow_duplicates: bool = False
    skip_file_storage: bool = False
    observers: List[ProgressObserver] = field(default_factory=list)


class FitFileUploader:
    """
    Runs one upload through validation, parsing, duplicate check, storage and
    archival.

    upload() never raises; every failure is returned as a failed UploadResult
    and announced with an error progress event.
    """

    def __init__(self, store: ActivityStore, blob_storage: Optional[BlobStorage] = None,
                 decoder: Optional[FitDecoder] = None, config: Optional[IngestConfig] = None):
        self.config = config or get_ingest_config()
        self.store = store
        self.blob_storage = blob_storage
        self.decoder = decoder or FitParseDecoder()
        self.processor = ActivityDataProcessor(ProcessingOptions(
            max_records_per_lap=self.config.max_records_per_lap,
            large_dataset_threshold=self.config.large_dataset_threshold,
        ))
        self.storage = FitDataStorage(
            store,
            batch_size=self.config.batch_size,
            batch_pause=self.config.batch_pause_seconds,
        )

    async def upload(self, data: bytes, filename: str, user_id: str,
                     options: Optional[UploadOptions] = None) -> UploadResult:
        """
        Ingest one FIT file.

        Args:
            data: Raw file bytes
            filename: Original file name
            user_id: Owner of the activity
            options: Progress callback/observers and pipeline switches

        Returns:
            UploadResult, success or failure
        """
        options = options or UploadOptions()
        started = time.perf_counter()
        log = get_logger(__name__, user_id=user_id, file_name=filename)

        observers = list(options.observers)
        if options.on_progress is not None:
            observers.append(CallbackObserver(options.on_progress))
        reporter = ProgressReporter(observers, user_id=user_id, file_name=filename)
        warnings: List[str] = []

        try:
            reporter.stage(UploadStage.VALIDATION)
            self._validate(data, filename, user_id)

            reporter.stage(UploadStage.PARSING)
            tree, processed = await self._parse(data, filename, user_id)
            warnings.extend(str(w) for w in processed.warnings)
            metadata = build_file_metadata(tree, processed)

            if not options.allow_duplicates:
                reporter.stage(UploadStage.DUPLICATE_CHECK)
                if await self.storage.activity_exists(user_id, processed.activity.activity_timestamp):
                    raise self._duplicate_error(metadata)

            reporter.stage(UploadStage.STORING_DATA)

            def on_batch(progress: BatchProgress) -> None:
                reporter.records(progress.processed, progress.total, progress.percentage)

            stored = await self.storage.store(processed, on_progress=on_batch)
            warnings.extend(str(w) for w in stored.warnings)
            if not stored.success:
                if isinstance(stored.error, ConflictError):
                    raise self._duplicate_error(metadata) from stored.error
                raise stored.error

            file_path = None
            if not options.skip_file_storage and self.blob_storage is not None:
                reporter.stage(UploadStage.FILE_STORAGE)
                file_path = await self._archive(data, filename, user_id, processed, warnings, log)

            elapsed_ms = self._elapsed_ms(started)
            result = UploadResult.succeeded(
                activity_id=stored.activity_id,
                upload_time_ms=elapsed_ms,
                file_metadata=metadata,
                file_path=file_path,
                stats=UploadStats(
                    records_stored=stored.records_stored,
                    laps_stored=stored.laps_stored,
                    total_records=processed.stats.total_records,
                    total_laps=processed.stats.total_laps,
                ),
                warnings=warnings,
            )
            reporter.stage(UploadStage.COMPLETE)
            log_upload_completion(
                log, elapsed_ms,
                activity_id=stored.activity_id,
                records_stored=stored.records_stored,
                laps_stored=stored.laps_stored,
            )
            return result

        except Exception as e:
            elapsed_ms = self._elapsed_ms(started)
            log_upload_error(log, e, elapsed_ms)
            failed = UploadResult.failed(e, elapsed_ms, warnings=warnings)
            reporter.error(failed.error)
            return failed

    def _validate(self, data: bytes, filename: str, user_id: str) -> None:
        suffix = self.config.file_suffix.lower()
        if not filename or not filename.lower().endswith(suffix):
            raise validation_error(f"Please select a {suffix} file", filename=filename)
        if len(data) > self.config.max_file_size_bytes:
            limit_mb = self.config.max_file_size_bytes / (1024 * 1024)
            raise validation_error(f"File size must be less than {limit_mb:g}MB",
                                   size=len(data), limit=self.config.max_file_size_bytes)
        if not user_id or not user_id.strip():
            raise validation_error("User ID is required")

    async def _parse(self, data: bytes, filename: str, user_id: str):
        tree: MessageTree = await asyncio.to_thread(self.decoder.decode, data)
        processed: ProcessedFitData = await asyncio.to_thread(self.processor.process, tree, user_id, filename)
        return tree, processed

    async def _archive(self, data: bytes, filename: str, user_id: str,
                       processed: ProcessedFitData, warnings: List[str], log) -> Optional[str]:
        path = generate_fit_file_path(user_id, processed.activity.activity_timestamp, filename)
        try:
            return await self.blob_storage.upload(path, data)
        except Exception as e:
            log.warning("File storage failed, continuing without archived file", path=path, error=str(e))
            warnings.append(f"File storage failed: {e}")
            return None

    @staticmethod
    def _duplicate_error(metadata: FileMetadata) -> ConflictError:
        return conflict_error(
            f"Activity from {metadata.activity_date} already exists",
            conflicting_date=metadata.activity_date,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    async def close(self) -> None:
        await self.store.close()


def create_uploader(settings: Optional[Settings] = None) -> FitFileUploader:
    """Build an uploader wired to Elasticsearch and the local file archive."""
    settings = settings or get_settings()
    store = ElasticsearchActivityStore(
        settings.elasticsearch.to_dict(),
        index_prefix=settings.elasticsearch.index_prefix,
    )
    blob_storage = LocalBlobStorage(
        settings.blob_storage.base_path,
        delete_batch_size=settings.blob_storage.delete_batch_size,
        delete_batch_pause=settings.blob_storage.delete_batch_pause_seconds,
    )
    return FitFileUploader(store, blob_storage=blob_storage, config=settings.ingest)
