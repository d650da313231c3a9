"""Audio Transcriber - Transcription API FastAPI application.

FastAPI service for uploading audio, polling transcription jobs, retrying
failed jobs and reading aggregate statistics.

Accepted uploads are stored and queued for background processing (huey);
every endpoint returns immediately and clients poll GET /{id}.

Run with:
    uvicorn services.transcription_api.main:app --reload  # dev server only
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, File, Form, Query, Response, UploadFile
from fastapi.responses import JSONResponse

from app import __version__
from app.cleanup import FileCleanup
from app.config import MAX_SEGMENT_SECONDS, MIN_SEGMENT_SECONDS, load_settings
from app.db import init_db
from app.errors import ErrorCode, TranscriberError
from app.repository import JobRepository
from app.schemas import ErrorResponse, HealthResponse, JobResponse, JobStatisticsResponse
from services.transcription_api.service import JobService

logger = logging.getLogger(__name__)

SERVICE_NAME = "transcription-api"

# --- Service Setup ---

# Module-level service (initialized on startup)
_service: JobService | None = None


def get_service() -> JobService:
    """Get the job service.

    Raises:
        RuntimeError: If the service is not initialized (app lifespan not invoked).
    """
    if _service is None:
        raise RuntimeError("Job service not initialized. App lifespan not invoked?")
    return _service


def _default_dispatch(job_id: str, max_segment_seconds: int | None) -> None:
    # Imported lazily: importing huey_app opens the queue database
    from app.huey_app import enqueue_job_processing

    enqueue_job_processing(job_id, max_segment_seconds)


# --- Lifespan ---


def _cleanup_orphan_temp_files_safe(upload_dir) -> None:
    """Remove temp files left by interrupted uploads (best-effort)."""
    from app.utils.atomic_io import cleanup_orphan_temp_files

    try:
        removed = cleanup_orphan_temp_files(upload_dir)
        if removed > 0:
            logger.info("Startup cleanup: removed %d orphan temp files", removed)
    except Exception:
        # Best-effort: never crash startup
        logger.warning("Startup cleanup failed (non-fatal)", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Builds the job service on startup (unless overridden for tests) and
    cleans up orphan temp files.
    """
    global _service
    if _service is None:
        settings = load_settings()
        logging.basicConfig(level=settings.log_level)
        settings.upload_dir.mkdir(parents=True, exist_ok=True)
        _, session_factory = init_db(settings.db_path)
        _service = JobService(
            repository=JobRepository(session_factory),
            cleanup=FileCleanup(settings.upload_dir),
            settings=settings,
            dispatch=_default_dispatch,
        )
        logger.info("Transcription API ready (uploads=%s)", settings.upload_dir)

    _cleanup_orphan_temp_files_safe(get_service().settings.upload_dir)

    yield


# --- FastAPI App ---


app = FastAPI(
    title="Audio Transcriber - Transcription API",
    description="Chunked audio transcription with asynchronous job processing.",
    version=__version__,
    lifespan=lifespan,
)


# --- Error Handling ---

_STATUS_BY_ERROR_CODE = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_STATE: 409,
    ErrorCode.INVALID_FILE: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.STORAGE_FAILED: 500,
}


def error_code_to_status(error_code: str) -> int:
    """Map error codes to HTTP status codes (500 for anything unlisted)."""
    return _STATUS_BY_ERROR_CODE.get(error_code, 500)


def make_error_response(error_code: str, error_message: str) -> JSONResponse:
    """Create a JSON error response."""
    status = error_code_to_status(error_code)
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(
            status=status,
            error_code=error_code,
            error_message=error_message,
        ).model_dump(),
    )


@app.exception_handler(TranscriberError)
async def transcriber_error_handler(request, exc: TranscriberError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.error_code, exc.message)
    return make_error_response(exc.error_code, exc.message)


@app.exception_handler(Exception)
async def unexpected_error_handler(request, exc: Exception):
    # Log full exception server-side, return generic message to client
    logger.exception("Unexpected error on %s %s", request.method, request.url.path)
    return make_error_response(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")


_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid file or parameter"},
    404: {"model": ErrorResponse, "description": "Job not found"},
    409: {"model": ErrorResponse, "description": "Job is in the wrong state"},
    500: {"model": ErrorResponse, "description": "Internal error"},
}

SegmentSeconds = Annotated[
    int | None,
    Query(
        alias="maxSegmentSeconds",
        ge=MIN_SEGMENT_SECONDS,
        le=MAX_SEGMENT_SECONDS,
        description="Maximum chunk duration in seconds",
    ),
]


# --- Endpoints ---


@app.post(
    "/api/transcriptions",
    status_code=201,
    response_model=JobResponse,
    responses={k: _ERROR_RESPONSES[k] for k in (400, 500)},
    summary="Upload an audio file for transcription",
)
async def create_transcription(
    file: Annotated[UploadFile, File(description="Audio file to transcribe")],
    language: Annotated[
        str | None, Form(description="Optional 2-3 letter language code (e.g. pt, en)")
    ] = None,
    max_segment_seconds: Annotated[
        int | None,
        Form(
            alias="maxSegmentSeconds",
            ge=MIN_SEGMENT_SECONDS,
            le=MAX_SEGMENT_SECONDS,
            description="Maximum chunk duration in seconds",
        ),
    ] = None,
):
    """Store the upload and queue it. Returns the job with status UPLOADED."""
    data = await file.read()
    job = get_service().create_job(
        data,
        file.filename,
        language=language,
        max_segment_seconds=max_segment_seconds,
        content_type=file.content_type,
    )
    return JobResponse.model_validate(job)


@app.get(
    "/api/transcriptions/stats",
    response_model=JobStatisticsResponse,
    summary="Job statistics",
)
def get_statistics():
    return JobStatisticsResponse.model_validate(get_service().get_statistics())


@app.get(
    "/api/transcriptions/{job_id}",
    response_model=JobResponse,
    responses={404: _ERROR_RESPONSES[404]},
    summary="Get a transcription job",
)
def get_transcription(job_id: str):
    return JobResponse.model_validate(get_service().get_job(job_id))


@app.delete(
    "/api/transcriptions/{job_id}",
    status_code=204,
    responses={404: _ERROR_RESPONSES[404]},
    summary="Delete a transcription job and its files",
)
def delete_transcription(job_id: str):
    get_service().delete_job(job_id)
    return Response(status_code=204)


@app.post(
    "/api/transcriptions/{job_id}/retry",
    response_model=JobResponse,
    responses={k: _ERROR_RESPONSES[k] for k in (400, 404, 409)},
    summary="Retry a failed transcription job",
)
def retry_transcription(job_id: str, max_segment_seconds: SegmentSeconds = None):
    """Only jobs in ERROR can be retried; processing restarts from the first chunk."""
    job = get_service().retry_job(job_id, max_segment_seconds=max_segment_seconds)
    return JobResponse.model_validate(job)


@app.get("/health", response_model=HealthResponse, summary="Health check")
def health_check():
    """Simple health check endpoint."""
    return HealthResponse(status="ok", service=SERVICE_NAME, version=__version__)


# --- For testing: allow overriding the service ---


def override_service(service: JobService | None) -> None:
    """Override the job service for testing."""
    global _service
    _service = service
