"""Tests for huey task wiring (immediate mode, no consumer)."""

from unittest.mock import MagicMock, patch

import pytest
from conftest import FakeRunner, FakeTranscriber

from app import huey_app
from app.job_state import JobStatus
from app.processor import JobProcessor
from app.retention import RetentionSweeper
from services.worker_split.run import Segmenter


@pytest.fixture
def immediate_huey():
    huey_app.huey.immediate = True
    yield huey_app.huey
    huey_app.huey.immediate = False
    huey_app.override_components(None, None)


@pytest.fixture
def wired(immediate_huey, repository, cleanup, settings):
    transcriber = FakeTranscriber(["first", "second"])
    processor = JobProcessor(
        repository,
        Segmenter(settings, runner=FakeRunner(duration_seconds=1200)),
        transcriber,
        cleanup,
        settings,
    )
    sweeper = RetentionSweeper(repository, cleanup, settings)
    huey_app.override_components(processor, sweeper)
    return processor, sweeper


class TestProcessJobTask:
    def test_enqueue_processes_job(self, wired, service, mp3_bytes):
        service.dispatch = huey_app.enqueue_job_processing

        job = service.create_job(mp3_bytes, "a.mp3", max_segment_seconds=600)

        done = service.get_job(job.id)
        assert done.status == JobStatus.DONE
        assert done.transcription_text == "first\nsecond\n"

    def test_missing_job_does_not_raise(self, wired):
        result = huey_app.process_job_task("missing")
        assert result.get()["error_message"] == "not found"

    def test_crash_is_contained(self, immediate_huey):
        broken = MagicMock()
        broken.process.side_effect = RuntimeError("boom")
        huey_app.override_components(broken, None)

        result = huey_app.process_job_task("job-x", 600)

        assert result.get()["error_message"] == "crashed"
        broken.process.assert_called_once_with("job-x", 600)


class TestEnqueue:
    def test_enqueue_is_fire_and_forget(self):
        with patch.object(huey_app, "process_job_task") as task:
            huey_app.enqueue_job_processing("job-1", 120)
        task.assert_called_once_with("job-1", 120)


class TestPeriodicTasks:
    def test_orphan_sweep_task(self, wired, settings):
        (settings.upload_dir / "stray_chunks").mkdir()

        # Periodic tasks keep no result in the store; call_local returns it directly
        removed = huey_app.clean_orphaned_chunks_task.call_local()

        assert removed == 1
        assert not (settings.upload_dir / "stray_chunks").exists()

    def test_orphan_sweep_runs_through_the_queue(self, wired, settings):
        (settings.upload_dir / "stray_chunks").mkdir()

        huey_app.clean_orphaned_chunks_task()

        assert not (settings.upload_dir / "stray_chunks").exists()

    def test_storage_report_task(self, wired):
        _, sweeper = wired
        with patch.object(sweeper, "storage_report") as report:
            huey_app.storage_report_task()
        report.assert_called_once_with()
