"""
Field Validator - range checks and rounding for sensor fields.

FIELD_RULES is the single table every record field goes through; nothing else
in the package checks sensor ranges on its own.
"""
import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Optional, Union

Number = Union[int, float]

COORDINATE_PRECISION = 7  # ~1.1 cm


@dataclass(frozen=True)
class FieldRule:
    """Valid closed range and rounding precision for one field."""

    minimum: Optional[float]
    maximum: Optional[float]
    decimals: int

    def accepts(self, value: float) -> bool:
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True


FIELD_RULES: Dict[str, FieldRule] = {
    'speed': FieldRule(0, 200, 2),
    'power': FieldRule(0, 2000, 0),
    'cadence': FieldRule(0, 300, 0),
    'heart_rate': FieldRule(30, 250, 0),
    'temperature': FieldRule(-50, 60, 1),
    'latitude': FieldRule(None, None, COORDINATE_PRECISION),
    'longitude': FieldRule(None, None, COORDINATE_PRECISION),
}


def _as_finite(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, Decimal)):
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    return value


def round_half_up(value: float, decimals: int) -> Number:
    """
    Round on the decimal representation, halves away from zero.

    Working on repr() rather than the binary value keeps the operation
    idempotent: rounding an already rounded value returns it unchanged.
    """
    try:
        quantum = Decimal(1).scaleb(-decimals)
        rounded = Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return value
    if decimals == 0:
        return int(rounded)
    return float(rounded)


def is_valid(field_name: str, value: Any) -> bool:
    """True when the raw value survives validation for the field."""
    number = _as_finite(value)
    return number is not None and FIELD_RULES[field_name].accepts(number)


def validate_field(field_name: str, value: Any) -> Optional[Number]:
    """
    Validate and round a raw value according to FIELD_RULES.

    Returns:
        The rounded value, or None when the value is missing, non-finite or
        outside the field's range
    """
    rule = FIELD_RULES[field_name]
    number = _as_finite(value)
    if number is None or not rule.accepts(number):
        return None
    return round_half_up(number, rule.decimals)


def validate_speed(value: Any) -> Optional[float]:
    return validate_field('speed', value)


def validate_power(value: Any) -> Optional[int]:
    return validate_field('power', value)


def validate_cadence(value: Any) -> Optional[int]:
    return validate_field('cadence', value)


def validate_heart_rate(value: Any) -> Optional[int]:
    return validate_field('heart_rate', value)


def validate_temperature(value: Any) -> Optional[float]:
    return validate_field('temperature', value)


def round_coordinate(value: Any) -> Optional[float]:
    """Round a latitude or longitude to 7 decimals; None if missing or non-finite."""
    return validate_field('latitude', value)
