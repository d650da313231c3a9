"""Tests for the job processor (segmentation, ordered transcription, cleanup)."""

import pytest
from conftest import FakeRunner, FakeTranscriber

from app.errors import JobNotFoundError, SegmentationError
from app.job_state import JobStatus
from app.models import TranscriptionJob
from app.processor import FINAL_SAVE_ATTEMPTS, SAVE_FAILED_MESSAGE, JobProcessor
from app.utils.paths import chunk_dir_for
from services.worker_split.run import Segmenter


@pytest.fixture
def stored_job(repository, settings):
    """An UPLOADED job whose upload exists on disk."""
    upload = settings.upload_dir / "1700000000000_ab12cd34.mp3"
    upload.write_bytes(b"ID3 fake audio")
    job = TranscriptionJob(
        id="job-1",
        file_name="talk.mp3",
        file_path=str(upload),
        status=JobStatus.UPLOADED.value,
        language="pt",
        file_size_bytes=14,
    )
    return repository.add(job)


def make_processor(repository, cleanup, settings, runner=None, transcriber=None):
    return JobProcessor(
        repository=repository,
        segmenter=Segmenter(settings, runner=runner or FakeRunner(duration_seconds=1500)),
        transcriber=transcriber or FakeTranscriber(["A", "B", "C"]),
        cleanup=cleanup,
        settings=settings,
    )


class TestProcessSuccess:
    def test_assembles_text_in_chunk_order(self, repository, cleanup, settings, stored_job):
        transcriber = FakeTranscriber(["A", "B", "C"])
        processor = make_processor(repository, cleanup, settings, transcriber=transcriber)

        result = processor.process(stored_job.id, 600)

        job = repository.get(stored_job.id)
        assert result.status == JobStatus.DONE
        assert result.chunk_count == 3
        assert job.status == JobStatus.DONE
        assert job.transcription_text == "A\nB\nC\n"
        assert job.error_message is None
        assert job.completed_at is not None

        # Chunks sent in index order, each with the job's language hint
        assert [call[0] for call in transcriber.calls] == [b"chunk-0", b"chunk-1", b"chunk-2"]
        assert {call[1] for call in transcriber.calls} == {"pt"}

    def test_chunks_removed_and_original_kept(self, repository, cleanup, settings, stored_job):
        make_processor(repository, cleanup, settings).process(stored_job.id, 600)

        assert not chunk_dir_for(stored_job.file_path).exists()
        assert (settings.upload_dir / "1700000000000_ab12cd34.mp3").exists()

    def test_default_segment_duration(self, repository, cleanup, settings, stored_job):
        runner = FakeRunner(duration_seconds=1500)
        make_processor(repository, cleanup, settings, runner=runner).process(stored_job.id)

        cmd = runner.calls[0]
        assert cmd[cmd.index("-segment_time") + 1] == str(settings.default_segment_seconds)


class TestProcessFailure:
    def test_provider_failure_marks_error(self, repository, cleanup, settings, stored_job):
        transcriber = FakeTranscriber(["A", "B", "C"], fail_on=1, status_code=429)
        processor = make_processor(repository, cleanup, settings, transcriber=transcriber)

        result = processor.process(stored_job.id, 600)

        job = repository.get(stored_job.id)
        assert result.status == JobStatus.ERROR
        assert job.status == JobStatus.ERROR
        assert "rate limit" in job.error_message
        assert job.transcription_text is None
        assert job.completed_at is not None
        # No call for chunk 2 after chunk 1 failed
        assert len(transcriber.calls) == 2

    def test_failure_still_cleans_chunks(self, repository, cleanup, settings, stored_job):
        transcriber = FakeTranscriber(fail_on=0)
        make_processor(repository, cleanup, settings, transcriber=transcriber).process(
            stored_job.id, 600
        )

        assert not chunk_dir_for(stored_job.file_path).exists()
        assert (settings.upload_dir / "1700000000000_ab12cd34.mp3").exists()

    def test_segmentation_failure_marks_error(self, repository, cleanup, settings, stored_job):
        processor = make_processor(
            repository, cleanup, settings, runner=FakeRunner(returncode=1)
        )

        processor.process(stored_job.id, 600)

        job = repository.get(stored_job.id)
        assert job.status == JobStatus.ERROR
        assert job.error_message

    def test_unexpected_exception_marks_error(self, repository, cleanup, settings, stored_job):
        class Exploding:
            def transcribe(self, audio, language, filename):
                raise RuntimeError("socket exploded")

        processor = make_processor(repository, cleanup, settings, transcriber=Exploding())

        processor.process(stored_job.id, 600)

        job = repository.get(stored_job.id)
        assert job.status == JobStatus.ERROR
        assert job.error_message == "socket exploded"

    def test_cleanup_failure_does_not_change_outcome(
        self, repository, cleanup, settings, stored_job, monkeypatch
    ):
        def broken_cleanup(path):
            cleanup_calls.append(path)
            return False

        cleanup_calls = []
        monkeypatch.setattr(cleanup, "delete_chunk_directory", broken_cleanup)

        make_processor(repository, cleanup, settings).process(stored_job.id, 600)

        assert repository.get(stored_job.id).status == JobStatus.DONE
        assert cleanup_calls == [stored_job.file_path]


class TestProcessEdgeCases:
    def test_unknown_job(self, repository, cleanup, settings):
        with pytest.raises(JobNotFoundError):
            make_processor(repository, cleanup, settings).process("missing")

    def test_duplicate_delivery_is_skipped(self, repository, cleanup, settings, stored_job):
        transcriber = FakeTranscriber(["A", "B", "C"])
        processor = make_processor(repository, cleanup, settings, transcriber=transcriber)
        processor.process(stored_job.id, 600)

        again = processor.process(stored_job.id, 600)

        assert again.skipped
        assert again.status == JobStatus.DONE
        assert len(transcriber.calls) == 3

    def test_processing_is_persisted_before_chunk_work(
        self, repository, cleanup, settings, stored_job
    ):
        observed = []

        class Observing:
            def split(self, source_path, max_segment_seconds):
                observed.append(repository.get(stored_job.id).status)
                raise SegmentationError("no audio")

        processor = JobProcessor(
            repository=repository,
            segmenter=Observing(),
            transcriber=FakeTranscriber(),
            cleanup=cleanup,
            settings=settings,
        )
        processor.process(stored_job.id, 600)

        assert observed == [JobStatus.PROCESSING]
        assert repository.get(stored_job.id).error_message == "no audio"


class TestFinalSave:
    """The final status write must not leave the job stuck in PROCESSING."""

    @pytest.fixture(autouse=True)
    def no_retry_delay(self, monkeypatch):
        monkeypatch.setattr("app.processor.FINAL_SAVE_RETRY_DELAY_SECONDS", 0)

    def test_transient_write_failure_is_retried(
        self, repository, cleanup, settings, stored_job, monkeypatch
    ):
        real_save = repository.save
        failures = []

        def locked_once(job):
            if job.status == JobStatus.DONE and not failures:
                failures.append(job.status)
                raise RuntimeError("database is locked")
            return real_save(job)

        monkeypatch.setattr(repository, "save", locked_once)

        result = make_processor(repository, cleanup, settings).process(stored_job.id, 600)

        stored = repository.get(stored_job.id)
        assert failures == [JobStatus.DONE]
        assert result.status == JobStatus.DONE
        assert stored.status == JobStatus.DONE
        assert stored.transcription_text == "A\nB\nC\n"
        assert stored.completed_at is not None

    def test_persistent_failure_falls_back_to_error(
        self, repository, cleanup, settings, stored_job, monkeypatch
    ):
        real_save = repository.save
        rejected = []

        def rejects_done(job):
            if job.status == JobStatus.DONE:
                rejected.append(job.id)
                raise RuntimeError("disk I/O error")
            return real_save(job)

        monkeypatch.setattr(repository, "save", rejects_done)

        result = make_processor(repository, cleanup, settings).process(stored_job.id, 600)

        stored = repository.get(stored_job.id)
        assert len(rejected) == FINAL_SAVE_ATTEMPTS
        assert result.status == JobStatus.ERROR
        assert stored.status == JobStatus.ERROR
        assert stored.error_message == SAVE_FAILED_MESSAGE
        assert stored.transcription_text is None
        assert stored.completed_at is not None

    def test_fallback_keeps_original_failure_message(
        self, repository, cleanup, settings, stored_job, monkeypatch
    ):
        real_save = repository.save
        calls = []

        def flaky(job):
            calls.append(job.status)
            # The PROCESSING checkpoint and the fallback write succeed
            failed_writes = calls.count(JobStatus.ERROR)
            if job.status == JobStatus.ERROR and failed_writes <= FINAL_SAVE_ATTEMPTS:
                raise RuntimeError("database is locked")
            return real_save(job)

        monkeypatch.setattr(repository, "save", flaky)
        transcriber = FakeTranscriber(["A", "B", "C"], fail_on=1, status_code=503)

        make_processor(repository, cleanup, settings, transcriber=transcriber).process(
            stored_job.id, 600
        )

        stored = repository.get(stored_job.id)
        assert stored.status == JobStatus.ERROR
        assert stored.error_message == "The transcription service is temporarily unavailable."
        assert stored.completed_at is not None
