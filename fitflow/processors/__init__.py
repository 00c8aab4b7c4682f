"""
FIT decoding, validation and processing.
"""

from .interface import FitDecoder, ProcessingOptions
from .activity import ActivityDataProcessor
from .decoder import FitParseDecoder
from .metadata import build_file_metadata, convert_sport_to_workout_type

__all__ = [
    'FitDecoder',
    'ProcessingOptions',
    'ActivityDataProcessor',
    'FitParseDecoder',
    'build_file_metadata',
    'convert_sport_to_workout_type',
]
