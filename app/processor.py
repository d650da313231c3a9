"""Audio Transcriber - Job processor.

Drives one job through segmentation, sequential per-chunk transcription,
text assembly and cleanup.

Processing flow:
1. Load job (JobNotFoundError if absent)
2. UPLOADED -> PROCESSING, persisted before any chunk work
3. Split the stored upload into chunks
4. Transcribe chunks strictly in index order, appending text + "\n"
5. PROCESSING -> DONE with the assembled text
6. Any failure in 3-5: PROCESSING -> ERROR with a bounded message
7. Always remove the chunk directory (failures logged, never fatal)
8. Persist the final record (retried, then a bare ERROR write if it keeps failing)

There is no partial success: a failure on any chunk fails the whole job,
and retry restarts from chunk 0 using the original upload.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from app.errors import JobNotFoundError, TranscriberError
from app.job_state import JobStatus

if TYPE_CHECKING:
    from app.cleanup import FileCleanup
    from app.config import Settings
    from app.models import TranscriptionJob
    from app.repository import JobRepository
    from services.whisper_client.client import TranscriptionClient
    from services.worker_split.run import Chunk, Segmenter

logger = logging.getLogger(__name__)

# Stored when an unexpected exception carries no message
GENERIC_FAILURE_MESSAGE = "Unexpected error while processing the audio file."

# Stored when the outcome itself could not be written
SAVE_FAILED_MESSAGE = "Failed to save the transcription result. Retry the job."

# Writes of the final status before falling back to a bare ERROR record
FINAL_SAVE_ATTEMPTS = 3
FINAL_SAVE_RETRY_DELAY_SECONDS = 0.5


@dataclass
class ProcessResult:
    """Outcome of one processing attempt (for task logs)."""

    job_id: str
    status: str
    chunk_count: int = 0
    error_message: str | None = None
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "chunk_count": self.chunk_count,
            "error_message": self.error_message,
            "skipped": self.skipped,
        }


def _failure_message(exc: Exception) -> str:
    if isinstance(exc, TranscriberError):
        return exc.message
    return str(exc) or GENERIC_FAILURE_MESSAGE


class JobProcessor:
    """Runs the transcription pipeline for a single job at a time."""

    def __init__(
        self,
        repository: JobRepository,
        segmenter: Segmenter,
        transcriber: TranscriptionClient,
        cleanup: FileCleanup,
        settings: Settings,
    ):
        self.repository = repository
        self.segmenter = segmenter
        self.transcriber = transcriber
        self.cleanup = cleanup
        self.default_segment_seconds = settings.default_segment_seconds

    def process(self, job_id: str, max_segment_seconds: int | None = None) -> ProcessResult:
        """Process one job to DONE or ERROR.

        Args:
            job_id: Job to process.
            max_segment_seconds: Chunk duration; settings default when None.

        Returns:
            ProcessResult describing the final state.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        segment_seconds = max_segment_seconds or self.default_segment_seconds

        job = self.repository.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.status != JobStatus.UPLOADED:
            # Duplicate delivery or a job already picked up elsewhere
            logger.warning("Skipping job %s: status is %s, expected UPLOADED", job_id, job.status)
            return ProcessResult(job_id=job_id, status=job.status, skipped=True)

        job.mark_processing()
        job = self.repository.save(job)
        logger.info(
            "Processing job %s (%s, segment=%ds, language=%s)",
            job_id,
            job.file_name,
            segment_seconds,
            job.language or "auto",
        )

        start = time.monotonic()
        chunk_count = 0
        try:
            chunks = self.segmenter.split(job.file_path, segment_seconds)
            chunk_count = len(chunks)
            text = self._transcribe_chunks(job_id, chunks, job.language)
            job.mark_completed(text)
            logger.info(
                "Job %s completed: %d chunk(s), %d chars in %.1fs",
                job_id,
                chunk_count,
                len(text),
                time.monotonic() - start,
            )
        except TranscriberError as e:
            logger.error("Job %s failed [%s]: %s", job_id, e.error_code, e.message)
            job.mark_error(_failure_message(e))
        except Exception as e:
            logger.exception("Unexpected error processing job %s", job_id)
            job.mark_error(_failure_message(e))
        finally:
            # Chunks never outlive one attempt; the original upload is kept for retry
            self.cleanup.delete_chunk_directory(job.file_path)

        job = self._save_outcome(job)
        return ProcessResult(
            job_id=job_id,
            status=job.status,
            chunk_count=chunk_count,
            error_message=job.error_message,
        )

    def _save_outcome(self, job: TranscriptionJob) -> TranscriptionJob:
        """Persist a DONE/ERROR outcome so the row never stays PROCESSING.

        The write is retried; if it keeps failing, a fresh copy of the row is
        marked ERROR (no transcript) and written instead. Re-raises only when
        that fallback fails too.
        """
        for attempt in range(1, FINAL_SAVE_ATTEMPTS + 1):
            try:
                return self.repository.save(job)
            except Exception:
                logger.warning(
                    "Job %s: saving status %s failed (attempt %d/%d)",
                    job.id,
                    job.status,
                    attempt,
                    FINAL_SAVE_ATTEMPTS,
                    exc_info=True,
                )
                if attempt < FINAL_SAVE_ATTEMPTS:
                    time.sleep(FINAL_SAVE_RETRY_DELAY_SECONDS)

        logger.error("Job %s: falling back to a bare ERROR record", job.id)
        fallback = self.repository.get(job.id)
        if fallback is None:
            raise JobNotFoundError(job.id)
        if fallback.status == JobStatus.PROCESSING:
            fallback.mark_error(job.error_message if job.has_error else SAVE_FAILED_MESSAGE)
        return self.repository.save(fallback)

    def _transcribe_chunks(self, job_id: str, chunks: list[Chunk], language: str | None) -> str:
        parts: list[str] = []
        for chunk in chunks:
            logger.info("Job %s: transcribing chunk %d/%d", job_id, chunk.index + 1, len(chunks))
            try:
                audio = Path(chunk.path).read_bytes()
                text = self.transcriber.transcribe(audio, language, Path(chunk.path).name)
            except Exception:
                logger.error("Job %s: chunk %d failed", job_id, chunk.index)
                raise
            parts.append(text)
            parts.append("\n")
        return "".join(parts)
