"""Audio Transcriber - Pydantic models for API responses.

Used by FastAPI for response validation and OpenAPI docs. Job responses
are built from ORM objects (from_attributes) and never carry file_path.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.job_state import JobStatus


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; every stored timestamp is UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# --- Response Models ---


class JobResponse(BaseModel):
    """Public view of a transcription job."""

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: str = Field(..., description="Job identifier")
    file_name: str = Field(..., description="Sanitized original file name")
    status: JobStatus = Field(..., description="UPLOADED, PROCESSING, DONE or ERROR")
    transcription_text: str | None = Field(
        default=None, description="Assembled transcript (DONE only)"
    )
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    completed_at: datetime | None = Field(
        default=None, description="Completion timestamp (DONE or ERROR only)"
    )
    error_message: str | None = Field(default=None, description="Failure reason (ERROR only)")
    language: str | None = Field(default=None, description="Language hint, or null for auto")
    file_size_bytes: int = Field(..., ge=0, description="Original upload size in bytes")

    @field_validator("created_at", "completed_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class JobStatisticsResponse(BaseModel):
    """Aggregate job counts."""

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    total: int = Field(..., ge=0)
    pending: int = Field(..., ge=0, description="Jobs waiting in UPLOADED")
    processing: int = Field(..., ge=0)
    completed: int = Field(..., ge=0)
    errors: int = Field(..., ge=0)
    success_rate: float = Field(..., description="Completed jobs, percent of total")
    error_rate: float = Field(..., description="Failed jobs, percent of total")
    has_jobs_processing: bool


class ErrorResponse(BaseModel):
    """Error response body."""

    model_config = ConfigDict(extra="forbid")

    status: int = Field(..., description="HTTP status code")
    error_code: str = Field(..., description="Stable machine-readable code")
    error_message: str = Field(..., description="Human-readable message")


class HealthResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str
    service: str
    version: str
