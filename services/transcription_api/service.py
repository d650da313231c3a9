"""Audio Transcriber - Job service logic.

Operations behind the HTTP surface:
- create_job: validate, persist the upload atomically, insert UPLOADED, dispatch
- get_job / delete_job
- retry_job: ERROR -> UPLOADED, re-dispatch
- get_statistics: derived counts and rates

Dispatch goes through an injected callable (the huey enqueue function in
production); the caller polls get_job for progress. A job whose dispatch
fails is returned in ERROR rather than left UPLOADED with nothing queued.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from app.cleanup import FileCleanup
from app.config import MAX_SEGMENT_SECONDS, MIN_SEGMENT_SECONDS, Settings
from app.errors import InvalidRequestError, InvalidStateError, JobNotFoundError, StorageError
from app.job_state import JobStatus
from app.models import TranscriptionJob
from app.repository import JobRepository
from app.utils.atomic_io import atomic_write_bytes
from app.utils.paths import upload_path
from app.utils.validation import (
    get_extension,
    normalize_language,
    sanitize_filename,
    validate_upload,
)

logger = logging.getLogger(__name__)

# dispatch(job_id, max_segment_seconds)
Dispatcher = Callable[[str, int | None], None]

DISPATCH_FAILED_MESSAGE = "Failed to queue the job for processing. Retry the job to try again."


# --- Result Types ---


@dataclass
class JobStatistics:
    """Job counts by status with derived rates."""

    total: int
    processing: int
    completed: int
    errors: int

    @property
    def pending(self) -> int:
        return max(self.total - self.processing - self.completed - self.errors, 0)

    @property
    def success_rate(self) -> float:
        return round(self.completed * 100.0 / self.total, 2) if self.total else 0.0

    @property
    def error_rate(self) -> float:
        return round(self.errors * 100.0 / self.total, 2) if self.total else 0.0

    @property
    def has_jobs_processing(self) -> bool:
        return self.processing > 0


def generate_job_id() -> str:
    """Generate a unique job ID.

    Uses UUID4 for uniqueness. Format: uuid4 hex (32 chars).
    """
    return uuid.uuid4().hex


def check_segment_seconds(max_segment_seconds: int | None) -> None:
    """Reject a segment duration outside the accepted bounds (None is allowed)."""
    if max_segment_seconds is None:
        return
    if not MIN_SEGMENT_SECONDS <= max_segment_seconds <= MAX_SEGMENT_SECONDS:
        raise InvalidRequestError(
            f"maxSegmentSeconds must be between {MIN_SEGMENT_SECONDS} "
            f"and {MAX_SEGMENT_SECONDS}, got {max_segment_seconds}"
        )


# --- Job Service ---


class JobService:
    """Creates, queries, retries and deletes transcription jobs."""

    def __init__(
        self,
        repository: JobRepository,
        cleanup: FileCleanup,
        settings: Settings,
        dispatch: Dispatcher,
    ):
        self.repository = repository
        self.cleanup = cleanup
        self.settings = settings
        self.dispatch = dispatch

    def _dispatch(
        self, job: TranscriptionJob, max_segment_seconds: int | None
    ) -> TranscriptionJob:
        """Hand a job to the worker pool.

        If enqueueing fails the job is stored as ERROR, so the caller sees the
        failure and retry_job can re-drive it.
        """
        try:
            self.dispatch(job.id, max_segment_seconds)
        except Exception:
            logger.error("Failed to dispatch job %s", job.id, exc_info=True)
            # UPLOADED has no direct edge to ERROR
            job.mark_processing()
            job.mark_error(DISPATCH_FAILED_MESSAGE)
            return self.repository.save(job)
        return job

    def create_job(
        self,
        data: bytes,
        filename: str | None,
        language: str | None = None,
        max_segment_seconds: int | None = None,
        content_type: str | None = None,
    ) -> TranscriptionJob:
        """Validate and store an upload, then dispatch processing.

        Returns:
            The new job, status UPLOADED (ERROR if it could not be queued).

        Raises:
            InvalidFileError: If the upload fails validation.
            InvalidRequestError: If max_segment_seconds is out of bounds.
            StorageError: If the bytes could not be written (no job is created).
        """
        check_segment_seconds(max_segment_seconds)
        validate_upload(
            data,
            filename,
            content_type=content_type,
            max_size_bytes=self.settings.max_file_size_bytes,
        )

        display_name = sanitize_filename(filename)
        stored_path = upload_path(self.settings.upload_dir, get_extension(display_name).lower())
        try:
            atomic_write_bytes(stored_path, data)
        except OSError as e:
            logger.error("Failed to store upload %s: %s", stored_path, e)
            raise StorageError("Failed to save the uploaded file") from e

        job = TranscriptionJob(
            id=generate_job_id(),
            file_name=display_name,
            file_path=str(stored_path),
            status=JobStatus.UPLOADED.value,
            language=normalize_language(language),
            file_size_bytes=len(data),
        )
        try:
            job = self.repository.add(job)
        except Exception:
            # Do not leave an upload with no job pointing at it
            self.cleanup.delete_audio_file(str(stored_path))
            raise

        logger.info(
            "Created job %s for %s (%d bytes, language=%s)",
            job.id,
            display_name,
            len(data),
            job.language or "auto",
        )
        return self._dispatch(job, max_segment_seconds)

    def get_job(self, job_id: str) -> TranscriptionJob:
        job = self.repository.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def delete_job(self, job_id: str) -> None:
        """Delete a job record, then (best-effort) its files.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        job = self.get_job(job_id)
        if not self.repository.delete(job_id):
            raise JobNotFoundError(job_id)
        self.cleanup.delete_file_and_chunks(job.file_path)
        logger.info("Deleted job %s", job_id)

    def retry_job(self, job_id: str, max_segment_seconds: int | None = None) -> TranscriptionJob:
        """Reset a failed job to UPLOADED and re-dispatch it.

        Raises:
            JobNotFoundError: If the job does not exist.
            InvalidStateError: If the job is not in ERROR (job left untouched).
            InvalidRequestError: If max_segment_seconds is out of bounds.
        """
        check_segment_seconds(max_segment_seconds)
        job = self.get_job(job_id)

        if job.status == JobStatus.PROCESSING:
            raise InvalidStateError("The job is still processing")
        if job.status == JobStatus.DONE:
            raise InvalidStateError("The job has already completed successfully")
        if job.status != JobStatus.ERROR:
            raise InvalidStateError(
                f"Only failed jobs can be retried (current status: {job.status})"
            )

        self.cleanup.delete_chunk_directory(job.file_path)
        if not Path(job.file_path).exists():
            logger.warning("Retrying job %s but its upload is missing: %s", job_id, job.file_path)

        job.reset_for_retry()
        job = self.repository.save(job)
        logger.info("Job %s reset for retry", job_id)

        return self._dispatch(job, max_segment_seconds)

    def get_statistics(self) -> JobStatistics:
        return JobStatistics(
            total=self.repository.count(),
            processing=self.repository.count_by_status(JobStatus.PROCESSING),
            completed=self.repository.count_by_status(JobStatus.DONE),
            errors=self.repository.count_by_status(JobStatus.ERROR),
        )
