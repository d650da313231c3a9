"""Audio Transcriber - Job repository.

Thin persistence layer over the transcription_jobs table. Each call runs
in its own session and commits before returning, so a status written by a
worker is visible to the next API read (read-your-writes).

Writes to the same job id are serialized through a fixed pool of striped
locks (the id hash picks the stripe), so the lock set never grows with the
number of jobs; writes to jobs on different stripes proceed concurrently.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.job_state import JobStatus
from app.models import TranscriptionJob

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

# Number of write locks shared by all job ids
LOCK_STRIPES = 64


class JobRepository:
    """Store for TranscriptionJob records."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))

    # --- Session / lock plumbing ---

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _lock_for(self, job_id: str) -> threading.Lock:
        return self._locks[hash(job_id) % LOCK_STRIPES]

    # --- Reads ---

    def get(self, job_id: str) -> TranscriptionJob | None:
        with self._session() as session:
            return session.get(TranscriptionJob, job_id)

    def count(self) -> int:
        with self._session() as session:
            return session.execute(select(func.count()).select_from(TranscriptionJob)).scalar_one()

    def count_by_status(self, status: JobStatus) -> int:
        stmt = (
            select(func.count())
            .select_from(TranscriptionJob)
            .where(TranscriptionJob.status == JobStatus(status).value)
        )
        with self._session() as session:
            return session.execute(stmt).scalar_one()

    def find_by_status(self, status: JobStatus) -> list[TranscriptionJob]:
        stmt = (
            select(TranscriptionJob)
            .where(TranscriptionJob.status == JobStatus(status).value)
            .order_by(TranscriptionJob.created_at)
        )
        with self._session() as session:
            return list(session.execute(stmt).scalars().all())

    def find_created_before(self, cutoff: datetime) -> list[TranscriptionJob]:
        stmt = (
            select(TranscriptionJob)
            .where(TranscriptionJob.created_at < cutoff)
            .order_by(TranscriptionJob.created_at)
        )
        with self._session() as session:
            return list(session.execute(stmt).scalars().all())

    def find_by_status_created_before(
        self, status: JobStatus, cutoff: datetime
    ) -> list[TranscriptionJob]:
        stmt = (
            select(TranscriptionJob)
            .where(
                TranscriptionJob.status == JobStatus(status).value,
                TranscriptionJob.created_at < cutoff,
            )
            .order_by(TranscriptionJob.created_at)
        )
        with self._session() as session:
            return list(session.execute(stmt).scalars().all())

    # --- Writes ---

    def add(self, job: TranscriptionJob) -> TranscriptionJob:
        """Insert a new job and return it (detached, fully loaded)."""
        with self._lock_for(job.id):
            with self._session() as session:
                session.add(job)
                session.flush()
        logger.debug("Inserted job %s", job.id)
        return job

    def save(self, job: TranscriptionJob) -> TranscriptionJob:
        """Persist the current state of a job and return the stored copy."""
        with self._lock_for(job.id):
            with self._session() as session:
                merged = session.merge(job)
                session.flush()
        logger.debug("Saved job %s status=%s", job.id, job.status)
        return merged

    def delete(self, job_id: str) -> bool:
        """Delete a job record.

        Returns:
            True if a record was deleted, False if none existed.
        """
        with self._lock_for(job_id):
            with self._session() as session:
                job = session.get(TranscriptionJob, job_id)
                if job is None:
                    return False
                session.delete(job)
        logger.debug("Deleted job %s", job_id)
        return True
