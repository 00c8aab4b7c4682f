"""
FitFlow data models.
"""

from .tree import (
    MessageTree, FitActivityMessage, FitSessionMessage, FitLapMessage,
    FitRecordMessage, FitDeviceInfo,
)
from .activity import (
    ProcessedActivity, ProcessedLap, ProcessedRecord, ActivityStats,
    ProcessedFitData, StoreResult,
)
from .upload import (
    UploadStage, STAGE_PROGRESS, ProgressEvent, BatchProgress, FileMetadata,
    UploadStats, UploadResult,
)

__all__ = [
    'MessageTree', 'FitActivityMessage', 'FitSessionMessage', 'FitLapMessage',
    'FitRecordMessage', 'FitDeviceInfo',
    'ProcessedActivity', 'ProcessedLap', 'ProcessedRecord', 'ActivityStats',
    'ProcessedFitData', 'StoreResult',
    'UploadStage', 'STAGE_PROGRESS', 'ProgressEvent', 'BatchProgress',
    'FileMetadata', 'UploadStats', 'UploadResult',
]
