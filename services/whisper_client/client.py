"""Audio Transcriber - Speech-to-text provider client.

Sends one audio chunk to an OpenAI Whisper compatible HTTP endpoint and
returns the plain transcript text.

Request: multipart/form-data POST with fields
- file: audio bytes (filename preserved, used by the provider to detect format)
- model: provider model name (e.g. whisper-1)
- language: optional 2-3 letter hint
- response_format: "json"

Errors:
- non-2xx response -> TranscriptionProviderError(status_code, body)
- timeout          -> TranscriptionProviderError(504)
- network error    -> TranscriptionProviderError(503)
"""

from __future__ import annotations

import logging
import mimetypes
from typing import Protocol

import httpx

from app.config import Settings
from app.errors import TranscriptionProviderError

logger = logging.getLogger(__name__)

# Maximum characters of an upstream error body kept in logs and errors
MAX_ERROR_BODY_CHARS = 2000

USER_AGENT = "Audio-Transcriber/1.0"


class TranscriptionClient(Protocol):
    """Anything that can turn one audio chunk into text."""

    def transcribe(self, audio: bytes, language: str | None, filename: str) -> str: ...


def _content_type_for(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


class WhisperClient:
    """Synchronous Whisper API client backed by httpx."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None):
        self.api_url = settings.whisper_api_url
        self.model = settings.whisper_model
        self.timeout = settings.transcription_timeout_seconds

        headers = {"User-Agent": USER_AGENT}
        if settings.whisper_api_key:
            headers["Authorization"] = f"Bearer {settings.whisper_api_key}"
        else:
            logger.warning("WHISPER_API_KEY is not set; requests will be unauthenticated")

        self._owns_client = http_client is None
        self.client = http_client or httpx.Client(timeout=self.timeout)
        self.client.headers.update(headers)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> WhisperClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def transcribe(self, audio: bytes, language: str | None, filename: str) -> str:
        """Transcribe one audio chunk.

        Args:
            audio: Raw audio bytes.
            language: Optional language hint, forwarded as-is.
            filename: Name sent with the file part.

        Returns:
            Transcript text (may be empty for silence).

        Raises:
            TranscriptionProviderError: On any provider or transport failure.
        """
        data = {"model": self.model, "response_format": "json"}
        if language:
            data["language"] = language
        files = {"file": (filename, audio, _content_type_for(filename))}

        logger.debug(
            "Sending %s (%d bytes, language=%s) to %s", filename, len(audio), language, self.api_url
        )
        try:
            response = self.client.post(self.api_url, data=data, files=files, timeout=self.timeout)
        except httpx.TimeoutException as e:
            logger.error("Transcription request timed out for %s: %s", filename, e)
            raise TranscriptionProviderError(504, str(e)) from e
        except httpx.HTTPError as e:
            logger.error("Transcription request failed for %s: %s", filename, e)
            raise TranscriptionProviderError(503, str(e)) from e

        if response.status_code != 200:
            body = response.text[:MAX_ERROR_BODY_CHARS]
            logger.error(
                "Transcription provider returned %d for %s: %s",
                response.status_code,
                filename,
                body,
            )
            raise TranscriptionProviderError(response.status_code, body)

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("Transcription provider returned invalid JSON for %s", filename)
            raise TranscriptionProviderError(502, response.text[:MAX_ERROR_BODY_CHARS]) from e

        text = payload.get("text") if isinstance(payload, dict) else None
        if text is None:
            logger.error("Transcription provider response has no text field for %s", filename)
            raise TranscriptionProviderError(502, "missing text field")

        return text
