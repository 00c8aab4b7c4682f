"""
Normalized activity, lap and record entities produced by the processor.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Tuple

from pydantic import AfterValidator, BaseModel, ConfigDict, PlainSerializer

from ..exceptions import SizeWarning
from ..utils.timestamps import ensure_utc, format_timestamp

UTCDateTime = Annotated[
    datetime,
    AfterValidator(ensure_utc),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]


class _Entity(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the store (canonical timestamps, plain JSON types)."""
        return self.model_dump(mode="json")


class ProcessedActivity(_Entity):
    user_id: str
    activity_timestamp: UTCDateTime
    name: str
    sport: str
    sub_sport: str
    total_distance: Optional[float] = None
    total_timer_time: Optional[float] = None
    total_elapsed_time: Optional[float] = None
    start_lat: Optional[float] = None
    start_lng: Optional[float] = None
    end_lat: Optional[float] = None
    end_lng: Optional[float] = None
    avg_speed: Optional[float] = None
    max_speed: Optional[float] = None
    avg_power: Optional[int] = None
    max_power: Optional[float] = None
    avg_heart_rate: Optional[int] = None
    max_heart_rate: Optional[float] = None


class ProcessedLap(_Entity):
    lap_index: int
    start_time: Optional[UTCDateTime] = None
    end_time: Optional[UTCDateTime] = None
    total_distance: Optional[float] = None
    total_elapsed_time: Optional[float] = None
    total_timer_time: Optional[float] = None
    start_lat: Optional[float] = None
    start_lng: Optional[float] = None
    end_lat: Optional[float] = None
    end_lng: Optional[float] = None
    avg_speed: Optional[float] = None
    max_speed: Optional[float] = None
    avg_power: Optional[int] = None
    max_power: Optional[float] = None
    avg_cadence: Optional[int] = None
    avg_heart_rate: Optional[int] = None
    trigger: str = "manual"


class ProcessedRecord(_Entity):
    time: UTCDateTime
    elapsed_time: Optional[float] = None
    timer_time: Optional[float] = None
    distance: Optional[float] = None
    speed: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    power: Optional[int] = None
    cadence: Optional[int] = None
    heart_rate: Optional[int] = None
    temperature: Optional[float] = None
    record_type: str = "data"
    data_quality: int = 100
    lap_index: Optional[int] = None


class ActivityStats(_Entity):
    total_records: int
    total_laps: int
    sport: Optional[str] = None
    sub_sport: Optional[str] = None


@dataclass(frozen=True)
class ProcessedFitData:
    """Everything the processor derived from one FIT file."""

    activity: ProcessedActivity
    laps: Tuple[ProcessedLap, ...]
    records: Tuple[ProcessedRecord, ...]
    stats: ActivityStats
    warnings: Tuple[SizeWarning, ...] = ()


@dataclass
class StoreResult:
    """Outcome of persisting one ProcessedFitData."""

    success: bool
    activity_id: Optional[str] = None
    records_stored: int = 0
    laps_stored: int = 0
    error: Optional[Exception] = None
    warnings: List[Warning] = field(default_factory=list)

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if hasattr(self.error, 'message') else (
            str(self.error) if self.error else None
        )

    @property
    def error_type(self) -> Optional[str]:
        return type(self.error).__name__ if self.error is not None else None
