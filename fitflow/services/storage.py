#!/usr/bin/env python3
"""
FIT data storage - persists processed activities, laps and records with
compensating cleanup on partial failure
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import ConfigurationError, FitFlowError, storage_error
from ..models import BatchProgress, ProcessedFitData, ProcessedRecord, StoreResult
from ..processors.validators import round_half_up
from ..storage.interface import ActivityStore
from ..utils.logging import get_logger, log_batch_progress
from .duplicates import DuplicateDetector
from .saga import Saga


logger = get_logger(__name__)

ProgressCallback = Callable[[BatchProgress], None]


class FitDataStorage:
    """
    Writes one ProcessedFitData across the activity, lap and record
    collections.

    Steps run strictly in order: activity, laps, record batches. Every write
    step registers its undo; if a later step fails the completed ones are
    rolled back newest first and the original error is returned.
    """

    def __init__(self, store: ActivityStore, batch_size: int = 500, batch_pause: float = 0.01,
                 on_progress: Optional[ProgressCallback] = None):
        if batch_size <= 0:
            raise ConfigurationError("batch_size must be positive", {"batch_size": batch_size})
        self.activity_store = store
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.on_progress = on_progress
        self.duplicates = DuplicateDetector(store)

    async def store(self, processed: ProcessedFitData,
                    on_progress: Optional[ProgressCallback] = None) -> StoreResult:
        """
        Persist processed FIT data.

        Never raises: failures come back as a StoreResult with success=False,
        the original error and any cleanup warnings.
        """
        on_progress = on_progress or self.on_progress
        activity = processed.activity
        log = logger.bind(user_id=activity.user_id)
        saga = Saga(log)

        activity_id = None
        laps_stored = 0
        records_stored = 0
        try:
            activity_id = await self._insert_activity(activity.to_document())
            log = log.bind(activity_id=activity_id)
            saga.register("delete activity", lambda: self.activity_store.delete_activity(activity_id))

            laps = sorted(processed.laps, key=lambda lap: lap.lap_index)
            lap_ids: List[str] = []
            if laps:
                saga.register("delete laps", lambda: self.activity_store.delete_laps(activity_id))
                lap_ids = await self._insert_laps(activity_id, laps)
                laps_stored = len(lap_ids)

            if processed.records:
                saga.register("delete records", lambda: self.activity_store.delete_records(activity_id))
                lap_lookup = {lap.lap_index: lap_id for lap, lap_id in zip(laps, lap_ids)}
                records_stored = await self._insert_records_batched(
                    processed.records, activity_id, lap_lookup, on_progress, log
                )

        except Exception as e:
            error = e if isinstance(e, FitFlowError) else storage_error(f"Storage operation failed: {e}")
            log.error("Storage operation failed", error=str(error), error_type=type(error).__name__,
                      registered_steps=saga.steps)
            warnings = await saga.compensate()
            return StoreResult(success=False, error=error, warnings=list(warnings))

        log.info("Stored FIT data", laps_stored=laps_stored, records_stored=records_stored)
        return StoreResult(
            success=True,
            activity_id=activity_id,
            records_stored=records_stored,
            laps_stored=laps_stored,
        )

    async def _insert_activity(self, document: Dict[str, Any]) -> str:
        return await self.activity_store.insert_activity(document)

    async def _insert_laps(self, activity_id: str, laps) -> List[str]:
        documents = [lap.to_document() for lap in laps]
        lap_ids = await self.activity_store.insert_laps(activity_id, documents)
        if len(lap_ids) != len(documents):
            raise storage_error(
                "Lap insert returned a different number of ids",
                submitted=len(documents),
                returned=len(lap_ids),
            )
        return lap_ids

    async def _insert_records_batched(self, records, activity_id: str, lap_lookup: Dict[int, str],
                                      on_progress: Optional[ProgressCallback], log) -> int:
        total = len(records)
        processed = 0
        log.info("Storing records", total=total, batch_size=self.batch_size)

        for batch_number, start in enumerate(range(0, total, self.batch_size), start=1):
            batch = records[start:start + self.batch_size]
            documents = [self._enrich(record, activity_id, lap_lookup) for record in batch]
            try:
                await self.activity_store.insert_records(documents)
            except Exception as e:
                message = getattr(e, 'message', None) or str(e)
                raise storage_error(
                    f"Failed to insert records batch {batch_number}: {message}",
                    batch_index=batch_number,
                ) from e

            processed += len(batch)
            progress = BatchProgress(
                batch=batch_number,
                processed=processed,
                total=total,
                percentage=round_half_up(processed * 100 / total, 0),
            )
            log_batch_progress(log, progress.batch, progress.processed, progress.total, progress.percentage)
            self._report(on_progress, progress, log)

            if processed < total:
                await asyncio.sleep(self.batch_pause)

        return processed

    @staticmethod
    def _enrich(record: ProcessedRecord, activity_id: str, lap_lookup: Dict[int, str]) -> Dict[str, Any]:
        document = record.to_document()
        document['activity_id'] = activity_id
        document['lap_id'] = lap_lookup.get(record.lap_index)
        return document

    @staticmethod
    def _report(on_progress: Optional[ProgressCallback], progress: BatchProgress, log) -> None:
        if on_progress is None:
            return
        try:
            on_progress(progress)
        except Exception as e:
            log.warning("Progress callback failed", error=str(e))

    async def activity_exists(self, user_id: str, raw_timestamp: Any) -> bool:
        return await self.duplicates.exists(user_id, raw_timestamp)

    async def get_activity_summary(self, activity_id: str) -> Optional[Dict[str, Any]]:
        return await self.activity_store.get_activity_summary(activity_id)
