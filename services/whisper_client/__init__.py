"""Audio Transcriber - Speech-to-text provider client."""

from services.whisper_client.client import TranscriptionClient, WhisperClient

__all__ = ["TranscriptionClient", "WhisperClient"]
