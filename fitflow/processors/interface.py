"""
Processor interfaces - decoder contract and processing options.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..models import MessageTree


@dataclass(frozen=True)
class ProcessingOptions:
    """Processing limits"""
    max_records_per_lap: int = 10_000
    large_dataset_threshold: int = 50_000


class FitDecoder(ABC):
    """Turns raw FIT bytes into a validated message tree"""

    @abstractmethod
    def decode(self, data: bytes) -> MessageTree:
        """
        Decode a FIT file.

        Raises:
            FitParsingError: The bytes are not a readable FIT file
        """
        pass
