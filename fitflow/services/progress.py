"""
Upload progress reporting.

A ProgressReporter owns the stage/progress state of one upload and publishes
ProgressEvents to any number of observers. Publishing is synchronous and never
waits on a consumer; an observer that raises is logged and skipped.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, List, Optional

from ..models import ProgressEvent, STAGE_PROGRESS, UploadStage
from ..utils.logging import get_logger


logger = get_logger(__name__)

STAGE_ORDER = [
    UploadStage.VALIDATION,
    UploadStage.PARSING,
    UploadStage.DUPLICATE_CHECK,
    UploadStage.STORING_DATA,
    UploadStage.STORING_RECORDS,
    UploadStage.FILE_STORAGE,
    UploadStage.COMPLETE,
]

TERMINAL_STAGES = {UploadStage.COMPLETE.value, UploadStage.ERROR.value}

RECORDS_PROGRESS_START = 40
RECORDS_PROGRESS_SPAN = 40


class ProgressObserver(ABC):
    """Receives progress events"""

    @abstractmethod
    def notify(self, event: ProgressEvent) -> None:
        pass


class CallbackObserver(ProgressObserver):
    """Forwards events to a plain callable"""

    def __init__(self, callback: Callable[[ProgressEvent], None]):
        self.callback = callback

    def notify(self, event: ProgressEvent) -> None:
        self.callback(event)


class QueueObserver(ProgressObserver):
    """
    Buffers events on an asyncio.Queue for a concurrent consumer.

    Example:
        observer = QueueObserver()
        task = asyncio.create_task(uploader.upload(data, name, user, UploadOptions(observers=[observer])))
        async for event in observer.events():
            print(event.stage, event.progress)
    """

    def __init__(self, maxsize: int = 0):
        self.queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue(maxsize=maxsize)

    def notify(self, event: ProgressEvent) -> None:
        self.queue.put_nowait(event)

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Yield events until a terminal one (complete or error)."""
        while True:
            event = await self.queue.get()
            yield event
            if event.stage in TERMINAL_STAGES:
                return


class ProgressReporter:
    """Stage-ordered, monotonic progress for one upload"""

    def __init__(self, observers: Optional[List[ProgressObserver]] = None, **log_context):
        self.observers: List[ProgressObserver] = list(observers or [])
        self.logger = get_logger(__name__, **log_context)
        self.current_stage: Optional[UploadStage] = None
        self.progress: float = 0

    def stage(self, stage: UploadStage) -> ProgressEvent:
        """
        Enter a stage at its fixed progress value.

        Raises:
            ValueError: If the stage comes before the current one
        """
        self._check_order(stage)
        self.logger.info("Upload stage", stage=stage.value)
        return self._publish(stage, STAGE_PROGRESS[stage])

    def records(self, processed: int, total: int, percentage: int) -> ProgressEvent:
        """Report record batch progress inside the storing_records stage."""
        self._check_order(UploadStage.STORING_RECORDS)
        progress = RECORDS_PROGRESS_START + percentage * RECORDS_PROGRESS_SPAN / 100
        return self._publish(
            UploadStage.STORING_RECORDS,
            progress,
            records_processed=processed,
            total_records=total,
        )

    def error(self, message: str) -> ProgressEvent:
        """Terminal failure event; progress drops to 0."""
        self.current_stage = UploadStage.ERROR
        self.progress = 0
        event = ProgressEvent(stage=UploadStage.ERROR, progress=0, error=message)
        self._dispatch(event)
        return event

    def _check_order(self, stage: UploadStage) -> None:
        if self.current_stage is None:
            return
        if self.current_stage == UploadStage.ERROR:
            raise ValueError(f"Upload already failed, cannot enter {stage.value}")
        if STAGE_ORDER.index(stage) < STAGE_ORDER.index(self.current_stage):
            raise ValueError(f"Stage {stage.value} cannot follow {self.current_stage.value}")

    def _publish(self, stage: UploadStage, progress: float, **fields) -> ProgressEvent:
        self.current_stage = stage
        self.progress = max(self.progress, min(progress, 100))
        event = ProgressEvent(stage=stage, progress=self.progress, **fields)
        self._dispatch(event)
        return event

    def _dispatch(self, event: ProgressEvent) -> None:
        for observer in self.observers:
            try:
                observer.notify(event)
            except Exception as e:
                self.logger.warning(
                    "Progress observer failed",
                    observer=type(observer).__name__,
                    error=str(e),
                )
