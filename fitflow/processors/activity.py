#!/usr/bin/env python3
"""
Activity Processor - turns a decoded FIT message tree into activity, lap and
record entities with validated fields and aggregate statistics
"""
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..exceptions import SizeWarning, invalid_input_error
from ..models import (
    MessageTree, FitLapMessage, FitRecordMessage, FitSessionMessage,
    ProcessedActivity, ProcessedLap, ProcessedRecord, ActivityStats,
    ProcessedFitData,
)
from ..utils.logging import get_logger
from .interface import ProcessingOptions
from .validators import (
    is_valid, round_half_up, round_coordinate, validate_speed, validate_power,
    validate_cadence, validate_heart_rate, validate_temperature,
)


logger = get_logger(__name__)

_EXTENSION_RE = re.compile(r"\.[^/.]+$")

# Points removed from the data-quality score when a raw field is missing
QUALITY_PENALTIES = (
    (('position_lat', 'position_long'), 20),
    (('speed',), 15),
    (('distance',), 10),
    (('power',), 15),
    (('heart_rate',), 10),
)


def format_activity_name(filename: Optional[str]) -> str:
    """Human-readable activity name from the uploaded file name."""
    if not filename:
        return "Activity"
    name = _EXTENSION_RE.sub("", filename)
    name = name.replace("_", " ").strip()
    return name or "Activity"


def _present(value: Any) -> bool:
    """Raw-sample presence: None, zero and NaN all count as missing."""
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


def assess_data_quality(record: FitRecordMessage) -> int:
    """Completeness score in [0, 100] for one raw sample."""
    quality = 100
    for fields, penalty in QUALITY_PENALTIES:
        if not all(_present(getattr(record, f)) for f in fields):
            quality -= penalty
    return max(0, quality)


def _aggregate(values: Iterable[float], decimals: int) -> Tuple[Optional[float], Optional[float]]:
    """Rounded average and raw maximum; (None, None) for an empty set."""
    values = list(values)
    if not values:
        return None, None
    return round_half_up(sum(values) / len(values), decimals), max(values)


def _positive_valid(records: Sequence[FitRecordMessage], field_name: str,
                    rule_name: Optional[str] = None) -> List[float]:
    """Raw values that pass the field's range check and are strictly positive."""
    rule_name = rule_name or field_name
    values = []
    for record in records:
        value = getattr(record, field_name)
        if is_valid(rule_name, value) and value > 0:
            values.append(value)
    return values


def calculate_stats(records: Sequence[FitRecordMessage], include_cadence: bool = False) -> Dict[str, Any]:
    """
    Average/maximum speed, power and heart rate over a set of samples.

    Samples are range-validated and filtered to positive values before
    aggregation, so a 300 m/s glitch never reaches an average.
    """
    avg_speed, max_speed = _aggregate(_positive_valid(records, 'speed'), 2)
    avg_power, max_power = _aggregate(_positive_valid(records, 'power'), 0)
    avg_hr, max_hr = _aggregate(_positive_valid(records, 'heart_rate'), 0)

    stats = {
        'avg_speed': avg_speed,
        'max_speed': max_speed,
        'avg_power': avg_power,
        'max_power': max_power,
        'avg_heart_rate': avg_hr,
        'max_heart_rate': max_hr,
    }
    if include_cadence:
        stats['avg_cadence'], _ = _aggregate(_positive_valid(records, 'cadence'), 0)
    return stats


def calculate_bounds(laps: Sequence[FitLapMessage]) -> Dict[str, Optional[float]]:
    """
    Start point of the first lap with a valid start position and end point of
    the last such lap.
    """
    first_valid = None
    last_valid = None
    for lap in laps:
        if _present(lap.start_position_lat) and _present(lap.start_position_long):
            if first_valid is None:
                first_valid = lap
            last_valid = lap

    if first_valid is None:
        return {'start_lat': None, 'start_lng': None, 'end_lat': None, 'end_lng': None}

    return {
        'start_lat': round_coordinate(first_valid.start_position_lat),
        'start_lng': round_coordinate(first_valid.start_position_long),
        'end_lat': round_coordinate(last_valid.end_position_lat),
        'end_lng': round_coordinate(last_valid.end_position_long),
    }


class ActivityDataProcessor:
    """Normalizes a decoded FIT tree for storage"""

    def __init__(self, options: Optional[ProcessingOptions] = None):
        self.options = options or ProcessingOptions()

    def process(self, tree: MessageTree, user_id: str, filename: Optional[str] = None) -> ProcessedFitData:
        """
        Process a decoded FIT file.

        Args:
            tree: Validated message tree
            user_id: Owner of the activity
            filename: Original file name, used for the activity name

        Returns:
            ProcessedFitData with activity, laps, time-ordered records and stats

        Raises:
            InvalidInputError: No session, or the first session has no laps
        """
        session = self._first_session(tree)
        warnings: List[SizeWarning] = []

        total_samples = sum(len(lap.records) for lap in session.laps)
        if total_samples > self.options.large_dataset_threshold:
            warning = SizeWarning(
                f"Large dataset detected: {total_samples} records. Processing may take longer.",
                {'total_records': total_samples, 'threshold': self.options.large_dataset_threshold},
            )
            logger.warning(warning.message, total_records=total_samples)
            warnings.append(warning)

        activity = self._extract_activity(tree, session, user_id, filename)
        laps = self._process_laps(session.laps)
        records = self._process_records(session.laps, warnings)
        stats = ActivityStats(
            total_records=total_samples,
            total_laps=len(session.laps),
            sport=session.sport,
            sub_sport=session.sub_sport,
        )

        logger.info(
            "Processed FIT data",
            user_id=user_id,
            laps=len(laps),
            records=len(records),
            dropped=total_samples - len(records),
        )
        return ProcessedFitData(
            activity=activity,
            laps=tuple(laps),
            records=tuple(records),
            stats=stats,
            warnings=tuple(warnings),
        )

    def _first_session(self, tree: MessageTree) -> FitSessionMessage:
        sessions = tree.activity.sessions
        if not sessions:
            raise invalid_input_error("Invalid FIT file: No session data found")
        session = sessions[0]
        if not session.laps:
            raise invalid_input_error("Invalid FIT file: No session data found",
                                      reason='first session has no laps')
        if len(sessions) > 1:
            logger.info("Multiple sessions found, only the first is processed", sessions=len(sessions))
        return session

    def _extract_activity(self, tree: MessageTree, session: FitSessionMessage,
                          user_id: str, filename: Optional[str]) -> ProcessedActivity:
        timestamp = tree.activity.timestamp or session.laps[0].start_time
        if timestamp is None:
            raise invalid_input_error("Invalid FIT file: activity has no timestamp")

        all_records = [record for lap in session.laps for record in lap.records]
        stats = calculate_stats(all_records)

        return ProcessedActivity(
            user_id=user_id,
            activity_timestamp=timestamp,
            name=format_activity_name(filename),
            sport=session.sport or "unknown",
            sub_sport=session.sub_sport or "generic",
            total_distance=_finite_or_none(session.total_distance),
            total_timer_time=_finite_or_none(session.total_timer_time),
            total_elapsed_time=_finite_or_none(session.total_elapsed_time),
            **calculate_bounds(session.laps),
            **stats,
        )

    def _process_laps(self, laps: Sequence[FitLapMessage]) -> List[ProcessedLap]:
        processed = []
        for index, lap in enumerate(laps):
            stats = calculate_stats(lap.records, include_cadence=True)
            stats.pop('max_heart_rate')
            processed.append(ProcessedLap(
                lap_index=index,
                start_time=lap.start_time,
                end_time=lap.timestamp,
                total_distance=_finite_or_none(lap.total_distance),
                total_elapsed_time=_finite_or_none(lap.total_elapsed_time),
                total_timer_time=_finite_or_none(lap.total_timer_time),
                start_lat=round_coordinate(lap.start_position_lat),
                start_lng=round_coordinate(lap.start_position_long),
                end_lat=round_coordinate(lap.end_position_lat),
                end_lng=round_coordinate(lap.end_position_long),
                trigger=lap.lap_trigger or "manual",
                **stats,
            ))
        return processed

    def _process_records(self, laps: Sequence[FitLapMessage],
                         warnings: List[SizeWarning]) -> List[ProcessedRecord]:
        cap = self.options.max_records_per_lap
        all_records: List[ProcessedRecord] = []

        for lap_index, lap in enumerate(laps):
            samples = lap.records
            if len(samples) > cap:
                warning = SizeWarning(
                    f"Lap {lap_index} has {len(samples)} records, limiting to {cap}",
                    {'lap_index': lap_index, 'records': len(samples), 'limit': cap},
                )
                logger.warning(warning.message, lap_index=lap_index)
                warnings.append(warning)
                samples = samples[:cap]

            for sample in samples:
                record = self._process_record(sample, lap_index)
                if record is not None:
                    all_records.append(record)

        # sorted() is stable, equal instants keep lap/sample order
        return sorted(all_records, key=lambda r: r.time)

    def _process_record(self, sample: FitRecordMessage, lap_index: int) -> Optional[ProcessedRecord]:
        if sample.timestamp is None:
            return None

        return ProcessedRecord(
            time=sample.timestamp,
            elapsed_time=_finite_or_none(sample.elapsed_time),
            timer_time=_finite_or_none(sample.timer_time),
            distance=_finite_or_none(sample.distance),
            speed=validate_speed(sample.speed),
            latitude=round_coordinate(sample.position_lat),
            longitude=round_coordinate(sample.position_long),
            altitude=_finite_or_none(sample.altitude),
            power=validate_power(sample.power),
            cadence=validate_cadence(sample.cadence),
            heart_rate=validate_heart_rate(sample.heart_rate),
            temperature=validate_temperature(sample.temperature),
            record_type="data",
            data_quality=assess_data_quality(sample),
            lap_index=lap_index,
        )
