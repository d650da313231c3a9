"""Audio Transcriber - Retention sweeps.

Periodic housekeeping run by the huey scheduler (see app.huey_app):
- clean_old_jobs: jobs older than retention_days (record + files)
- clean_old_error_jobs: ERROR jobs older than error_retention_days
- clean_completed_job_chunks: leftover chunk dirs of DONE jobs
- clean_orphaned_chunks: *_chunks dirs not owned by an UPLOADED or PROCESSING job
- storage_report: disk usage and job counts, logged

A failure on one job is logged and the sweep moves on. Every sweep is a
no-op when cleanup is disabled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.cleanup import FileCleanup
from app.config import Settings
from app.job_state import JobStatus
from app.repository import JobRepository
from app.utils.paths import chunk_dir_for

logger = logging.getLogger(__name__)


@dataclass
class StorageReport:
    uploads_bytes: int
    total_jobs: int
    processing_jobs: int
    completed_jobs: int
    error_jobs: int

    @property
    def uploads_mb(self) -> float:
        return round(self.uploads_bytes / (1024 * 1024), 2)


class RetentionSweeper:
    """Deletes expired jobs and stray files under the upload root."""

    def __init__(self, repository: JobRepository, cleanup: FileCleanup, settings: Settings):
        self.repository = repository
        self.cleanup = cleanup
        self.enabled = settings.cleanup_enabled
        self.retention_days = settings.retention_days
        self.error_retention_days = settings.error_retention_days

    def _purge(self, jobs, reason: str) -> int:
        deleted = 0
        for job in jobs:
            if job.status == JobStatus.PROCESSING:
                logger.info("Retention: skipping job %s, still processing", job.id)
                continue
            try:
                if self.repository.delete(job.id):
                    self.cleanup.delete_file_and_chunks(job.file_path)
                    deleted += 1
                    logger.debug("Retention: deleted %s job %s", reason, job.id)
            except Exception:
                logger.error("Retention: failed to delete job %s", job.id, exc_info=True)
        return deleted

    def clean_old_jobs(self, now: datetime | None = None) -> int:
        """Delete every non-processing job older than retention_days."""
        if not self.enabled:
            return 0
        cutoff = (now or datetime.now(UTC)) - timedelta(days=self.retention_days)
        jobs = self.repository.find_created_before(cutoff)
        deleted = self._purge(jobs, "expired")
        if deleted:
            logger.info(
                "Retention: deleted %d job(s) older than %d day(s)", deleted, self.retention_days
            )
        return deleted

    def clean_old_error_jobs(self, now: datetime | None = None) -> int:
        """Delete ERROR jobs older than error_retention_days."""
        if not self.enabled:
            return 0
        cutoff = (now or datetime.now(UTC)) - timedelta(days=self.error_retention_days)
        jobs = self.repository.find_by_status_created_before(JobStatus.ERROR, cutoff)
        deleted = self._purge(jobs, "failed")
        if deleted:
            logger.info(
                "Retention: deleted %d failed job(s) older than %d day(s)",
                deleted,
                self.error_retention_days,
            )
        return deleted

    def clean_completed_job_chunks(self) -> int:
        """Remove chunk directories still attached to DONE jobs."""
        if not self.enabled:
            return 0
        removed = 0
        for job in self.repository.find_by_status(JobStatus.DONE):
            if self.cleanup.delete_chunk_directory(job.file_path):
                removed += 1
        if removed:
            logger.info("Retention: removed %d leftover chunk director(ies)", removed)
        return removed

    def clean_orphaned_chunks(self) -> int:
        """Remove *_chunks directories that no queued or running job owns."""
        if not self.enabled:
            return 0
        active = [
            *self.repository.find_by_status(JobStatus.UPLOADED),
            *self.repository.find_by_status(JobStatus.PROCESSING),
        ]
        keep = {chunk_dir_for(job.file_path).name for job in active}
        if keep:
            logger.info("Retention: keeping chunk directories of %d active job(s)", len(keep))
        return self.cleanup.clean_orphaned_chunk_dirs(keep=keep)

    def storage_report(self) -> StorageReport | None:
        """Log disk usage of the upload root and job counts."""
        if not self.enabled:
            return None
        report = StorageReport(
            uploads_bytes=self.cleanup.uploads_dir_size(),
            total_jobs=self.repository.count(),
            processing_jobs=self.repository.count_by_status(JobStatus.PROCESSING),
            completed_jobs=self.repository.count_by_status(JobStatus.DONE),
            error_jobs=self.repository.count_by_status(JobStatus.ERROR),
        )
        logger.info(
            "Storage report: uploads=%.2f MB, jobs=%d (processing=%d, done=%d, error=%d)",
            report.uploads_mb,
            report.total_jobs,
            report.processing_jobs,
            report.completed_jobs,
            report.error_jobs,
        )
        return report
