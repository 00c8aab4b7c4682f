"""
Duplicate activity detection.
"""
from typing import Any

from ..exceptions import FitFlowError, storage_error
from ..storage.interface import ActivityStore
from ..utils.logging import get_logger
from ..utils.timestamps import normalize_timestamp


logger = get_logger(__name__)


class DuplicateDetector:
    """
    Advisory check for an existing activity with the same user and start.

    The store's uniqueness constraint stays authoritative; two concurrent
    uploads can both pass this check.
    """

    def __init__(self, store: ActivityStore):
        self.store = store

    async def exists(self, user_id: str, raw_timestamp: Any) -> bool:
        """
        Args:
            user_id: Owner
            raw_timestamp: Activity start, any form parse_timestamp accepts

        Raises:
            ValidationError: If the timestamp cannot be parsed
            StorageError: If the lookup fails
        """
        timestamp = normalize_timestamp(raw_timestamp)
        try:
            activity_id = await self.store.find_activity_id(user_id, timestamp)
        except FitFlowError:
            raise
        except Exception as e:
            raise storage_error(f"Duplicate check failed: {e}", user_id=user_id) from e

        if activity_id is not None:
            logger.info("Duplicate activity found", user_id=user_id,
                        activity_timestamp=timestamp, activity_id=activity_id)
        return activity_id is not None
