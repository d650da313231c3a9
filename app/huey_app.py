"""Audio Transcriber - Huey task queue configuration.

Huey setup with SQLite backend: job ids are queued durably and survive a
restart of either the API or the consumer.

How to run:
1. Start the transcription API:
   uvicorn services.transcription_api.main:app --reload

2. Start the Huey consumer (processes queued jobs):
   huey_consumer app.huey_app.huey -w 4

The consumer's worker count is the concurrency ceiling: at most N jobs are
processed at once, the rest wait in the queue. SIGINT drains in-flight
tasks before exiting.
"""

from __future__ import annotations

import logging
import threading

from huey import SqliteHuey, crontab

from app.config import load_settings

logger = logging.getLogger(__name__)

_settings = load_settings()

# Ensure queue directory exists before creating Huey instance
_settings.queue_db_path.parent.mkdir(parents=True, exist_ok=True)

huey = SqliteHuey(
    name="audio_transcriber",
    filename=str(_settings.queue_db_path),
    immediate=False,  # Tasks queued for consumer processing
)


# --- Lazily built collaborators (one set per consumer process) ---

_processor = None
_sweeper = None
_build_lock = threading.Lock()


def _build_components():
    # Imported here so importing this module stays cheap for the API process
    from app.cleanup import FileCleanup
    from app.db import init_db
    from app.processor import JobProcessor
    from app.repository import JobRepository
    from app.retention import RetentionSweeper
    from services.whisper_client.client import WhisperClient
    from services.worker_split.run import Segmenter

    _, session_factory = init_db(_settings.db_path)
    repository = JobRepository(session_factory)
    cleanup = FileCleanup(_settings.upload_dir)
    processor = JobProcessor(
        repository=repository,
        segmenter=Segmenter(_settings),
        transcriber=WhisperClient(_settings),
        cleanup=cleanup,
        settings=_settings,
    )
    sweeper = RetentionSweeper(repository, cleanup, _settings)
    return processor, sweeper


def get_processor():
    global _processor, _sweeper
    with _build_lock:
        if _processor is None:
            _processor, _sweeper = _build_components()
        return _processor


def get_sweeper():
    global _processor, _sweeper
    with _build_lock:
        if _sweeper is None:
            _processor, _sweeper = _build_components()
        return _sweeper


def override_components(processor=None, sweeper=None) -> None:
    """Override the processor and/or sweeper (for testing)."""
    global _processor, _sweeper
    with _build_lock:
        _processor = processor
        _sweeper = sweeper


# --- Tasks ---


@huey.task()
def process_job_task(job_id: str, max_segment_seconds: int | None = None) -> dict:
    """Huey task to process one transcription job.

    Nothing escapes: processing errors are recorded on the job by the
    processor, anything else is logged here.

    Returns:
        Dict with the processing result (for logging/debugging).
    """
    from app.errors import JobNotFoundError

    logger.info("Process task started for job_id=%s", job_id)
    try:
        result = get_processor().process(job_id, max_segment_seconds)
    except JobNotFoundError:
        logger.warning("Process task: job %s no longer exists", job_id)
        return {"job_id": job_id, "status": None, "error_message": "not found"}
    except Exception:
        logger.exception("Process task crashed for job_id=%s", job_id)
        return {"job_id": job_id, "status": None, "error_message": "crashed"}

    logger.info("Process task completed for job_id=%s: %s", job_id, result.to_dict())
    return result.to_dict()


def enqueue_job_processing(job_id: str, max_segment_seconds: int | None = None) -> None:
    """Enqueue processing for the given job.

    Non-blocking: returns immediately even if the Huey consumer is not
    running. The task is persisted in SQLite and processed when the
    consumer starts.
    """
    logger.info(
        "Enqueueing job processing for job_id=%s (segment=%s)", job_id, max_segment_seconds
    )
    process_job_task(job_id, max_segment_seconds)


# --- Periodic retention sweeps ---


@huey.periodic_task(crontab(hour="2", minute="0"))
def clean_old_error_jobs_task() -> int:
    return get_sweeper().clean_old_error_jobs()


@huey.periodic_task(crontab(hour="3", minute="0"))
def clean_old_jobs_task() -> int:
    sweeper = get_sweeper()
    deleted = sweeper.clean_old_jobs()
    sweeper.clean_completed_job_chunks()
    return deleted


@huey.periodic_task(crontab(hour="*/6", minute="0"))
def clean_orphaned_chunks_task() -> int:
    return get_sweeper().clean_orphaned_chunks()


@huey.periodic_task(crontab(hour="8", minute="0"))
def storage_report_task() -> None:
    get_sweeper().storage_report()
