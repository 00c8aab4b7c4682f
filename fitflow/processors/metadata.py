"""
File metadata summary shown to the uploader after a successful ingest.
"""
from typing import Optional

from ..models import FileMetadata, MessageTree, ProcessedFitData
from ..utils.timestamps import format_timestamp


WORKOUT_TYPES = ('run', 'swim', 'bike', 'yoga', 'strength', 'other', 'rest')

SPORT_TO_WORKOUT_TYPE = {
    'cycling': 'bike',
    'running': 'run',
    'swimming': 'swim',
    'strength_training': 'strength',
    'yoga': 'yoga',
    'generic': 'other',
    'unknown': 'other',
}


def convert_sport_to_workout_type(sport: Optional[str]) -> str:
    """Map a FIT sport name onto a calendar workout type."""
    if not sport:
        return 'other'
    sport = sport.lower()
    if sport in SPORT_TO_WORKOUT_TYPE:
        return SPORT_TO_WORKOUT_TYPE[sport]
    if sport in WORKOUT_TYPES:
        return sport
    return 'other'


def _device_name(tree: MessageTree) -> str:
    devices = tree.activity.device_infos
    if not devices:
        return "unknown"
    device = devices[0]
    return device.manufacturer or device.product_name or device.device_type or "unknown"


def build_file_metadata(tree: MessageTree, processed: ProcessedFitData) -> FileMetadata:
    """
    Summarize an uploaded file.

    Args:
        tree: Decoded message tree, for device information
        processed: Processor output

    Returns:
        FileMetadata for the success envelope
    """
    activity = processed.activity
    return FileMetadata(
        activity_date=format_timestamp(activity.activity_timestamp),
        activity_type=activity.sub_sport,
        sport=convert_sport_to_workout_type(activity.sport),
        duration=activity.total_timer_time or activity.total_elapsed_time or 0,
        distance=activity.total_distance or 0,
        device_name=_device_name(tree),
        record_count=processed.stats.total_records,
        lap_count=processed.stats.total_laps,
    )
