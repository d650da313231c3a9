"""Tests for TranscriptionJob status transitions and invariants."""

import pytest

from app.config import ERROR_MESSAGE_MAX_LENGTH
from app.job_state import InvalidTransition, JobStatus
from app.models import TranscriptionJob, truncate_error_message


def make_job(status=JobStatus.UPLOADED) -> TranscriptionJob:
    return TranscriptionJob(
        id="job-1",
        file_name="talk.mp3",
        file_path="/tmp/uploads/1_abcd1234.mp3",
        status=status.value,
        file_size_bytes=10,
    )


def assert_terminal_invariants(job: TranscriptionJob):
    """completed_at iff terminal; exactly one of text/error when terminal."""
    if job.status in (JobStatus.DONE, JobStatus.ERROR):
        assert job.completed_at is not None
        assert (job.transcription_text is None) != (job.error_message is None)
    else:
        assert job.completed_at is None


class TestMarkCompleted:
    def test_sets_text_and_completed_at(self):
        job = make_job()
        job.mark_processing()
        job.mark_completed("hello\n")

        assert job.status == JobStatus.DONE
        assert job.transcription_text == "hello\n"
        assert job.error_message is None
        assert job.is_completed and job.is_terminal
        assert_terminal_invariants(job)

    def test_requires_processing(self):
        job = make_job()
        with pytest.raises(InvalidTransition):
            job.mark_completed("text")
        assert job.status == JobStatus.UPLOADED


class TestMarkError:
    def test_sets_error_and_completed_at(self):
        job = make_job()
        job.mark_processing()
        job.mark_error("boom")

        assert job.status == JobStatus.ERROR
        assert job.error_message == "boom"
        assert job.transcription_text is None
        assert job.has_error
        assert_terminal_invariants(job)

    def test_empty_message_is_replaced(self):
        job = make_job(JobStatus.PROCESSING)
        job.mark_error("")
        assert job.error_message == "Unknown error"

    def test_long_message_is_truncated(self):
        job = make_job(JobStatus.PROCESSING)
        job.mark_error("x" * 5000)
        assert len(job.error_message) == ERROR_MESSAGE_MAX_LENGTH
        assert job.error_message.endswith("...")


class TestResetForRetry:
    def test_clears_result_fields(self):
        job = make_job(JobStatus.PROCESSING)
        job.mark_error("provider down")

        job.reset_for_retry()

        assert job.status == JobStatus.UPLOADED
        assert job.error_message is None
        assert job.transcription_text is None
        assert job.completed_at is None
        assert_terminal_invariants(job)

    def test_done_cannot_be_reset(self):
        job = make_job(JobStatus.PROCESSING)
        job.mark_completed("text")
        with pytest.raises(InvalidTransition):
            job.reset_for_retry()
        assert job.status == JobStatus.DONE
        assert job.transcription_text == "text"


class TestTruncateErrorMessage:
    def test_short_message_unchanged(self):
        assert truncate_error_message("short") == "short"

    def test_none_becomes_unknown(self):
        assert truncate_error_message(None) == "Unknown error"

    def test_exact_limit_unchanged(self):
        message = "y" * ERROR_MESSAGE_MAX_LENGTH
        assert truncate_error_message(message) == message
