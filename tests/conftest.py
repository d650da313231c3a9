"""Shared pytest fixtures for Audio Transcriber tests.

This module contains common fixtures used across multiple test files:
isolated settings and database, fakes for the external tool and the
transcription provider, and a FastAPI test client.
"""

import io
import os
import tempfile
import wave
from pathlib import Path

# Keep the huey queue database out of the repository during tests
os.environ.setdefault("TRANSCRIBER_DATA_DIR", tempfile.mkdtemp(prefix="transcriber-tests-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.cleanup import FileCleanup  # noqa: E402
from app.config import settings_for_data_dir  # noqa: E402
from app.db import init_db  # noqa: E402
from app.errors import TranscriptionProviderError  # noqa: E402
from app.repository import JobRepository  # noqa: E402
from services.transcription_api.main import app, override_service  # noqa: E402
from services.transcription_api.service import JobService  # noqa: E402
from services.worker_split.run import CommandResult  # noqa: E402


def make_wav_bytes(seconds: float = 1.0, framerate: int = 8000) -> bytes:
    """Create a minimal valid WAV file (silence, mono, 16-bit)."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(framerate)
        wf.writeframes(b"\x00" * int(framerate * seconds) * 2)
    return buf.getvalue()


# ID3v2 header followed by padding; enough for signature detection
MP3_BYTES = b"ID3\x04\x00\x00\x00\x00\x00\x00" + b"\x00" * 2048


class FakeRunner:
    """Stands in for ffmpeg: writes one chunk file per segment.

    Args:
        duration_seconds: Pretend duration of the source audio.
        returncode: Exit code to report.
        produce: If False, report success but write nothing.
    """

    def __init__(self, duration_seconds: int = 1500, returncode: int = 0, produce: bool = True):
        self.duration_seconds = duration_seconds
        self.returncode = returncode
        self.produce = produce
        self.calls: list[list[str]] = []

    def __call__(self, cmd: list[str], timeout: int) -> CommandResult:
        self.calls.append(cmd)
        if self.returncode != 0:
            return CommandResult(returncode=self.returncode, output="Invalid data found")
        if self.produce:
            segment = int(cmd[cmd.index("-segment_time") + 1])
            pattern = cmd[-1]
            count = -(-self.duration_seconds // segment)  # ceil
            for i in range(count):
                Path(pattern % i).write_bytes(f"chunk-{i}".encode())
        return CommandResult(returncode=0)


class FakeTranscriber:
    """Returns scripted text per call; optionally fails on one call.

    Args:
        texts: Texts to return, in call order.
        fail_on: 0-based call index that raises instead.
        status_code: Provider status used for the failure.
    """

    def __init__(self, texts=None, fail_on: int | None = None, status_code: int = 503):
        self.texts = list(texts or [])
        self.fail_on = fail_on
        self.status_code = status_code
        self.calls: list[tuple[bytes, str | None, str]] = []

    def transcribe(self, audio: bytes, language: str | None, filename: str) -> str:
        index = len(self.calls)
        self.calls.append((audio, language, filename))
        if index == self.fail_on:
            raise TranscriptionProviderError(self.status_code, "upstream failure")
        return self.texts[index] if index < len(self.texts) else f"text {index}"


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a per-test temporary data directory."""
    test_settings = settings_for_data_dir(tmp_path / "data")
    test_settings.upload_dir.mkdir(parents=True, exist_ok=True)
    return test_settings


@pytest.fixture
def temp_db(settings):
    """Create a temporary database for testing.

    Yields:
        tuple: (db_path, engine, SessionFactory)
    """
    engine, SessionFactory = init_db(settings.db_path)
    yield settings.db_path, engine, SessionFactory
    engine.dispose()


@pytest.fixture
def repository(temp_db):
    _, _, SessionFactory = temp_db
    return JobRepository(SessionFactory)


@pytest.fixture
def cleanup(settings):
    return FileCleanup(settings.upload_dir)


@pytest.fixture
def dispatched():
    """Records (job_id, max_segment_seconds) passed to dispatch."""
    return []


@pytest.fixture
def service(repository, cleanup, settings, dispatched):
    def record_dispatch(job_id, max_segment_seconds):
        dispatched.append((job_id, max_segment_seconds))

    return JobService(
        repository=repository,
        cleanup=cleanup,
        settings=settings,
        dispatch=record_dispatch,
    )


@pytest.fixture
def client(service):
    """Create a FastAPI test client bound to the test service.

    Yields:
        tuple: (test_client, service)
    """
    override_service(service)
    with TestClient(app) as test_client:
        yield test_client, service
    override_service(None)


@pytest.fixture
def wav_bytes():
    return make_wav_bytes()


@pytest.fixture
def mp3_bytes():
    return MP3_BYTES
