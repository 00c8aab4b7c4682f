#!/usr/bin/env python3
"""
FIT decoder using fitparse - reads session, lap, record and device messages
and assembles them into the cascade message tree
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fitparse import FitFile, FitParseError

from ..exceptions import fit_parsing_error
from ..models import MessageTree
from ..utils.logging import get_logger
from .interface import FitDecoder


logger = get_logger(__name__)

SEMICIRCLE_TO_DEGREES = 180 / 2**31

# Enum-valued fields fitparse may hand back as raw integers
_STRING_FIELDS = {'sport', 'sub_sport', 'lap_trigger', 'manufacturer', 'product_name', 'device_type'}

# Fallbacks when the primary field is absent
_ENHANCED_FIELDS = {
    'speed': 'enhanced_speed',
    'altitude': 'enhanced_altitude',
}


def _normalize_value(name: str, value: Any) -> Any:
    if value is None:
        return None
    if 'position' in name and isinstance(value, int):
        return value * SEMICIRCLE_TO_DEGREES
    if name in _STRING_FIELDS:
        return str(value)
    return value


def _message_values(message) -> Dict[str, Any]:
    """Non-null field values of a fitparse message, normalized."""
    values = {}
    for field_data in message.fields:
        if field_data.name is None or field_data.value is None:
            continue
        values[field_data.name] = _normalize_value(field_data.name, field_data.value)

    for primary, enhanced in _ENHANCED_FIELDS.items():
        if values.get(primary) is None and values.get(enhanced) is not None:
            values[primary] = values[enhanced]
    return values


def _assign_children(parents: List[Dict[str, Any]], children: List[Dict[str, Any]],
                     key: str, time_field: str = 'timestamp') -> None:
    """
    Attach children to the parent whose [start_time, timestamp] window holds
    their instant.

    Both lists are in file order. Children after the last window go to the
    last parent; children without an instant follow the previous child.
    """
    for parent in parents:
        parent.setdefault(key, [])
    if not parents:
        return

    current = 0
    last = len(parents) - 1
    for child in children:
        instant: Optional[datetime] = child.get(time_field)
        if instant is not None:
            while current < last:
                end = parents[current].get('timestamp')
                if end is None or instant <= end:
                    break
                current += 1
        parents[current][key].append(child)


class FitParseDecoder(FitDecoder):
    """Decode FIT bytes with fitparse"""

    def decode(self, data: bytes) -> MessageTree:
        """
        Decode a FIT file into a validated MessageTree.

        Args:
            data: Raw FIT file bytes

        Returns:
            MessageTree with sessions, laps and records nested by time

        Raises:
            FitParsingError: If fitparse cannot read the file
            InvalidInputError: If decoded values do not fit the tree models
        """
        try:
            fitfile = FitFile(data)
            messages = self._collect(fitfile)
        except (FitParseError, EOFError, ValueError) as e:
            raise fit_parsing_error(f"FIT parsing failed: {e}", size=len(data)) from e

        sessions = messages['session']
        _assign_children(sessions, messages['lap'], 'laps', time_field='start_time')
        laps = [lap for session in sessions for lap in session['laps']]
        _assign_children(laps, messages['record'], 'records')

        activity = messages['activity'][0] if messages['activity'] else {}
        file_id = messages['file_id'][0] if messages['file_id'] else {}
        timestamp = (
            activity.get('timestamp')
            or file_id.get('time_created')
            or (sessions[0].get('start_time') if sessions else None)
        )

        logger.debug(
            "Decoded FIT file",
            sessions=len(sessions),
            laps=len(messages['lap']),
            records=len(messages['record']),
        )
        return MessageTree.from_raw({
            'activity': {
                'timestamp': timestamp,
                'sessions': sessions,
                'device_infos': messages['device_info'],
            }
        })

    def _collect(self, fitfile: FitFile) -> Dict[str, List[Dict[str, Any]]]:
        wanted = ('file_id', 'activity', 'session', 'lap', 'record', 'device_info')
        messages: Dict[str, List[Dict[str, Any]]] = {name: [] for name in wanted}
        for message in fitfile.get_messages(list(wanted)):
            messages[message.name].append(_message_values(message))
        return messages
