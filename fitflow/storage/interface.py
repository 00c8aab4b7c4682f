#!/usr/bin/env python3
"""
Storage Layer Abstract Interface - separates the ingestion pipeline from the
activity store and the raw-file blob store
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional


class DataType(Enum):
    """Persisted collections"""

    ACTIVITY = "activity"
    LAP = "lap"
    RECORD = "record"


class ActivityStore(ABC):
    """
    Async store for activities, laps and records.

    Implementations raise ConflictError when an activity for the same user and
    timestamp already exists and StorageError for every other failure.
    """

    @abstractmethod
    async def insert_activity(self, document: Dict[str, Any]) -> str:
        """Insert an activity document and return its id"""
        pass

    @abstractmethod
    async def insert_laps(self, activity_id: str, documents: List[Dict[str, Any]]) -> List[str]:
        """Insert lap documents; returned ids are aligned with the input order"""
        pass

    @abstractmethod
    async def insert_records(self, documents: List[Dict[str, Any]]) -> int:
        """Insert one batch of record documents and return the number stored"""
        pass

    @abstractmethod
    async def delete_activity(self, activity_id: str) -> None:
        pass

    @abstractmethod
    async def delete_laps(self, activity_id: str) -> int:
        pass

    @abstractmethod
    async def delete_records(self, activity_id: str) -> int:
        pass

    @abstractmethod
    async def find_activity_id(self, user_id: str, activity_timestamp: str) -> Optional[str]:
        """Id of the activity with exactly this user and canonical timestamp, or None"""
        pass

    @abstractmethod
    async def get_activity_summary(self, activity_id: str) -> Optional[Dict[str, Any]]:
        """Activity document with lap/record counts and record time span"""
        pass

    async def close(self) -> None:
        """Release connections"""
        pass


class BlobStorage(ABC):
    """Async store for raw uploaded files"""

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> str:
        """
        Store bytes at path unless something is already there.

        Raises:
            StorageError: The path exists or the write failed
        """
        pass

    @abstractmethod
    async def list_files(self, user_id: str, limit: int = 50, offset: int = 0,
                         year: Optional[int] = None, month: Optional[int] = None) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def delete_files(self, paths: List[str]) -> Dict[str, Any]:
        pass
