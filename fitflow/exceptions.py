"""
Custom exception and warning classes for FitFlow.

This module defines the exception hierarchy used throughout the ingestion
pipeline. Errors abort an upload at the stage where they occur; warnings are
collected on results and logged, never raised.
"""

from typing import Optional, Any, Dict


class FitFlowError(Exception):
    """
    Base exception for all FitFlow errors.

    All custom exceptions in this package should inherit from this class.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationError(FitFlowError):
    """
    Raised when there are configuration-related errors.

    Examples:
    - Missing required environment variables
    - Invalid configuration values
    """
    pass


class ValidationError(FitFlowError):
    """
    Raised when upload input is rejected before any work is done.

    Examples:
    - File name without the .fit suffix
    - File larger than the configured cap
    - Missing user ID
    - Activity timestamp that cannot be parsed
    """
    pass


class InvalidInputError(FitFlowError):
    """
    Raised when a decoded FIT tree has no usable content.

    Examples:
    - No session in the activity
    - First session without laps
    """
    pass


class FitParsingError(FitFlowError):
    """
    Raised when the binary decoder cannot turn file bytes into a message tree.

    Examples:
    - Corrupted FIT files
    - Truncated headers or CRC mismatches
    """
    pass


class ConflictError(FitFlowError):
    """
    Raised when an activity for the same user and timestamp already exists.

    Raised both by the advisory duplicate check and by the store's uniqueness
    constraint when two uploads race.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 conflicting_date: Optional[str] = None):
        super().__init__(message, details)
        self.conflicting_date = conflicting_date


class StorageError(FitFlowError):
    """
    Raised when storage operations fail.

    Examples:
    - Elasticsearch connection errors
    - Bulk insert item failures
    - Query execution errors
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 batch_index: Optional[int] = None):
        super().__init__(message, details)
        self.batch_index = batch_index


class FitFlowWarning(UserWarning):
    """
    Base class for non-fatal conditions.

    Warnings never flip an upload's success flag.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class CleanupWarning(FitFlowWarning):
    """A compensating delete failed after a storage error."""
    pass


class SizeWarning(FitFlowWarning):
    """A lap exceeded the sample cap or the file is unusually large."""
    pass


# Convenience functions for creating common exceptions

def validation_error(message: str, **details) -> ValidationError:
    """Create a validation error with details."""
    return ValidationError(message, details)


def invalid_input_error(message: str, **details) -> InvalidInputError:
    """Create an invalid input error with details."""
    return InvalidInputError(message, details)


def fit_parsing_error(message: str, **details) -> FitParsingError:
    """Create a FIT parsing error with details."""
    return FitParsingError(message, details)


def storage_error(message: str, batch_index: Optional[int] = None, **details) -> StorageError:
    """Create a storage error with details."""
    return StorageError(message, details, batch_index=batch_index)


def conflict_error(message: str, conflicting_date: Optional[str] = None, **details) -> ConflictError:
    """Create a conflict error with details."""
    return ConflictError(message, details, conflicting_date=conflicting_date)
