"""
Decoded FIT message tree.

The decoder hands over a cascade structure (activity → sessions → laps →
records). It is validated into these frozen models exactly once, right after
decoding, so the processor never has to guess whether a field is absent,
null or malformed.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import InvalidInputError


class _TreeNode(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class FitRecordMessage(_TreeNode):
    """One sensor sample."""

    timestamp: Optional[datetime] = None
    elapsed_time: Optional[float] = None
    timer_time: Optional[float] = None
    distance: Optional[float] = None
    speed: Optional[float] = None
    position_lat: Optional[float] = None
    position_long: Optional[float] = None
    altitude: Optional[float] = None
    power: Optional[float] = None
    cadence: Optional[float] = None
    heart_rate: Optional[float] = None
    temperature: Optional[float] = None


class FitLapMessage(_TreeNode):
    """A lap and the samples recorded during it."""

    start_time: Optional[datetime] = None
    timestamp: Optional[datetime] = None
    total_distance: Optional[float] = None
    total_elapsed_time: Optional[float] = None
    total_timer_time: Optional[float] = None
    start_position_lat: Optional[float] = None
    start_position_long: Optional[float] = None
    end_position_lat: Optional[float] = None
    end_position_long: Optional[float] = None
    lap_trigger: Optional[str] = None
    records: Tuple[FitRecordMessage, ...] = Field(default_factory=tuple)


class FitSessionMessage(_TreeNode):
    sport: Optional[str] = None
    sub_sport: Optional[str] = None
    total_distance: Optional[float] = None
    total_timer_time: Optional[float] = None
    total_elapsed_time: Optional[float] = None
    laps: Tuple[FitLapMessage, ...] = Field(default_factory=tuple)


class FitDeviceInfo(_TreeNode):
    manufacturer: Optional[str] = None
    product_name: Optional[str] = None
    device_type: Optional[str] = None


class FitActivityMessage(_TreeNode):
    timestamp: Optional[datetime] = None
    sessions: Tuple[FitSessionMessage, ...] = Field(default_factory=tuple)
    device_infos: Tuple[FitDeviceInfo, ...] = Field(default_factory=tuple)


class MessageTree(_TreeNode):
    """Root of a decoded FIT file."""

    activity: FitActivityMessage = Field(default_factory=FitActivityMessage)

    @classmethod
    def from_raw(cls, data: Dict[str, Any]) -> "MessageTree":
        """
        Validate a loosely-typed decoded structure.

        Raises:
            InvalidInputError: If a field has a type that cannot be coerced
        """
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise InvalidInputError(
                "Invalid FIT file: decoded data does not match the expected structure",
                {"errors": e.error_count(), "first_error": str(e.errors()[0]["loc"]) if e.errors() else None},
            ) from e
