"""
Upload progress events and the final result envelope.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UploadStage(str, Enum):
    """Pipeline stages in execution order."""

    VALIDATION = "validation"
    PARSING = "parsing"
    DUPLICATE_CHECK = "duplicate_check"
    STORING_DATA = "storing_data"
    STORING_RECORDS = "storing_records"
    FILE_STORAGE = "file_storage"
    COMPLETE = "complete"
    ERROR = "error"


STAGE_PROGRESS = {
    UploadStage.VALIDATION: 0,
    UploadStage.PARSING: 10,
    UploadStage.DUPLICATE_CHECK: 30,
    UploadStage.STORING_DATA: 40,
    UploadStage.STORING_RECORDS: 40,
    UploadStage.FILE_STORAGE: 80,
    UploadStage.COMPLETE: 100,
    UploadStage.ERROR: 0,
}


class ProgressEvent(BaseModel):
    """Transient progress notification."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    stage: UploadStage
    progress: float = Field(..., ge=0, le=100)
    records_processed: Optional[int] = None
    total_records: Optional[int] = None
    error: Optional[str] = None


class BatchProgress(BaseModel):
    """Progress of the record batch loop."""

    model_config = ConfigDict(frozen=True)

    batch: int
    processed: int
    total: int
    percentage: int = Field(..., ge=0, le=100)


class FileMetadata(BaseModel):
    """Summary of an uploaded file for display."""

    model_config = ConfigDict(frozen=True)

    activity_date: str
    activity_type: str
    sport: str
    duration: float = 0
    distance: float = 0
    device_name: str = "unknown"
    record_count: int = 0
    lap_count: int = 0


class UploadStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    records_stored: int
    laps_stored: int
    total_records: int
    total_laps: int


class UploadResult(BaseModel):
    """
    Immutable upload envelope.

    Success results carry activity_id, file_metadata, file_path and stats;
    failures carry error and error_type. Which branch is populated is decided
    solely by ``success``.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    upload_time_ms: int
    activity_id: Optional[str] = None
    file_metadata: Optional[FileMetadata] = None
    file_path: Optional[str] = None
    stats: Optional[UploadStats] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_branches(self) -> "UploadResult":
        if self.success:
            if self.error is not None or self.error_type is not None:
                raise ValueError("successful upload cannot carry an error")
            if self.activity_id is None:
                raise ValueError("successful upload requires activity_id")
        else:
            if self.error is None:
                raise ValueError("failed upload requires an error message")
            if any(v is not None for v in (self.activity_id, self.file_metadata, self.file_path, self.stats)):
                raise ValueError("failed upload cannot carry success fields")
        return self

    @classmethod
    def succeeded(cls, activity_id: str, upload_time_ms: int, file_metadata: FileMetadata,
                  stats: UploadStats, file_path: Optional[str] = None,
                  warnings: Optional[List[str]] = None) -> "UploadResult":
        return cls(
            success=True,
            activity_id=activity_id,
            upload_time_ms=upload_time_ms,
            file_metadata=file_metadata,
            file_path=file_path,
            stats=stats,
            warnings=warnings or [],
        )

    @classmethod
    def failed(cls, error: Exception, upload_time_ms: int,
               warnings: Optional[List[str]] = None) -> "UploadResult":
        message = getattr(error, 'message', None) or str(error) or type(error).__name__
        return cls(
            success=False,
            upload_time_ms=upload_time_ms,
            error=message,
            error_type=type(error).__name__,
            warnings=warnings or [],
        )
