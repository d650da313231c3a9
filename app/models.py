"""Audio Transcriber - SQLAlchemy ORM models.

Single table: transcription_jobs.

Status changes go through the mark_* methods, which validate the change
with app.job_state.transition() and keep the invariants:
- completed_at is set iff status is DONE or ERROR
- DONE carries transcription_text, ERROR carries error_message, never both
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.config import ERROR_MESSAGE_MAX_LENGTH
from app.job_state import TERMINAL_STATUSES, JobStatus, transition


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def truncate_error_message(message: str | None) -> str:
    """Bound an error message to the stored column length."""
    if not message:
        return "Unknown error"
    if len(message) <= ERROR_MESSAGE_MAX_LENGTH:
        return message
    return message[: ERROR_MESSAGE_MAX_LENGTH - 3] + "..."


class TranscriptionJob(Base):
    """One uploaded audio file and its transcription lifecycle."""

    __tablename__ = "transcription_jobs"

    # Opaque identifier (uuid4 hex), immutable
    id: Mapped[str] = mapped_column(String(32), primary_key=True)

    # Sanitized original filename (display only)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Storage path of the original upload. Internal, never serialized to clients.
    file_path: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=JobStatus.UPLOADED.value, index=True
    )

    transcription_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    error_message: Mapped[str | None] = mapped_column(
        String(ERROR_MESSAGE_MAX_LENGTH), nullable=True
    )

    # Normalized 2-3 letter language code, or None for provider auto-detect
    language: Mapped[str | None] = mapped_column(String(3), nullable=True)

    file_size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (Index("ix_jobs_status_created", "status", "created_at"),)

    # --- Status helpers ---

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status) in TERMINAL_STATUSES

    @property
    def is_processing(self) -> bool:
        return self.status == JobStatus.PROCESSING

    @property
    def is_completed(self) -> bool:
        return self.status == JobStatus.DONE

    @property
    def has_error(self) -> bool:
        return self.status == JobStatus.ERROR

    # --- Transitions ---

    def mark_processing(self) -> None:
        self.status = transition(self.status, JobStatus.PROCESSING).value

    def mark_completed(self, text: str) -> None:
        self.status = transition(self.status, JobStatus.DONE).value
        self.transcription_text = text
        self.error_message = None
        self.completed_at = utc_now()

    def mark_error(self, message: str | None) -> None:
        self.status = transition(self.status, JobStatus.ERROR).value
        self.error_message = truncate_error_message(message)
        self.transcription_text = None
        self.completed_at = utc_now()

    def reset_for_retry(self) -> None:
        """ERROR -> UPLOADED, clearing every result field."""
        self.status = transition(self.status, JobStatus.UPLOADED).value
        self.error_message = None
        self.transcription_text = None
        self.completed_at = None

    def __repr__(self) -> str:
        return f"<TranscriptionJob id={self.id} status={self.status} file_name={self.file_name!r}>"
