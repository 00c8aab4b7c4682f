"""
Ingestion services: duplicate detection, storage and upload orchestration.
"""

from .duplicates import DuplicateDetector
from .progress import CallbackObserver, ProgressObserver, ProgressReporter, QueueObserver
from .saga import Saga
from .storage import FitDataStorage
from .upload import FitFileUploader, UploadOptions, create_uploader

__all__ = [
    'DuplicateDetector',
    'CallbackObserver',
    'ProgressObserver',
    'ProgressReporter',
    'QueueObserver',
    'Saga',
    'FitDataStorage',
    'FitFileUploader',
    'UploadOptions',
    'create_uploader',
]
