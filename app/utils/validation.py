"""Audio Transcriber - Upload validation and input normalization.

- validate_upload(): size, filename, extension, content type, magic numbers
- sanitize_filename(): safe display/storage name
- normalize_language(): 2-3 letter code or None (never raises)
"""

from __future__ import annotations

import logging
import re

from app.errors import InvalidFileError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({".mp3", ".m4a", ".wav", ".webm", ".ogg", ".flac", ".aac"})

ALLOWED_MIME_TYPES = frozenset(
    {
        "audio/mpeg",
        "audio/mp3",
        "audio/mp4",
        "audio/x-m4a",
        "audio/m4a",
        "audio/wav",
        "audio/wave",
        "audio/x-wav",
        "audio/webm",
        "audio/ogg",
        "audio/flac",
        "audio/x-flac",
        "audio/aac",
    }
)

# Generic client-side content types that say nothing about the payload
_GENERIC_MIME_TYPES = frozenset({"application/octet-stream", "binary/octet-stream"})

# Windows reserved device names
FORBIDDEN_FILENAMES = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)

MAX_FILENAME_LENGTH = 255
SANITIZED_FILENAME_LENGTH = 200

_DANGEROUS_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_LANGUAGE_PATTERN = re.compile(r"^[a-z]{2,3}$")


def _is_mpeg_frame_sync(header: bytes) -> bool:
    # 11 set sync bits: MPEG audio frame (mp3) or ADTS (aac)
    return len(header) >= 2 and header[0] == 0xFF and (header[1] & 0xE0) == 0xE0


def detect_audio_signature(header: bytes) -> str | None:
    """Identify an audio container from its first bytes.

    Returns:
        Short format name, or None if no known signature matches.
    """
    if header.startswith(b"ID3"):
        return "mp3_id3"
    if header.startswith(b"RIFF") and header[8:12] == b"WAVE":
        return "wav"
    if header.startswith(b"RIFF"):
        return "riff"
    if header[4:8] == b"ftyp":
        return "mp4"
    if header.startswith(b"OggS"):
        return "ogg"
    if header.startswith(b"fLaC"):
        return "flac"
    if header.startswith(b"\x1a\x45\xdf\xa3"):
        return "webm"
    if _is_mpeg_frame_sync(header):
        return "mpeg"
    return None


def get_extension(filename: str | None) -> str:
    """Return the extension of a filename (with leading dot), or ""."""
    if not filename:
        return ""
    last_dot = filename.rfind(".")
    return filename[last_dot:] if last_dot > 0 else ""


def _base_name(path: str) -> str:
    # Strip both POSIX and Windows directory components
    last_sep = max(path.rfind("/"), path.rfind("\\"))
    return path[last_sep + 1 :] if last_sep >= 0 else path


def validate_upload(
    data: bytes,
    filename: str | None,
    content_type: str | None = None,
    max_size_bytes: int | None = None,
) -> None:
    """Validate an uploaded audio file.

    Args:
        data: Uploaded bytes.
        filename: Client-supplied filename.
        content_type: Client-supplied MIME type, if any.
        max_size_bytes: Upper size bound, or None for no bound.

    Raises:
        InvalidFileError: On the first failed check.
    """
    if not data:
        raise InvalidFileError("The uploaded file is empty")

    if max_size_bytes is not None and len(data) > max_size_bytes:
        raise InvalidFileError(
            f"File too large. Maximum size: {max_size_bytes // (1024 * 1024)} MB, "
            f"received: {len(data) // (1024 * 1024)} MB"
        )
    if len(data) < 1024:
        logger.warning("Very small file uploaded: %d bytes", len(data))

    if not filename or not filename.strip():
        raise InvalidFileError("Invalid file name")

    base_name = _base_name(filename)
    if _DANGEROUS_CHARS.search(base_name):
        logger.warning("File name contains unsafe characters: %r", filename)

    stem = re.sub(r"\.[^.]+$", "", base_name).upper()
    if stem in FORBIDDEN_FILENAMES:
        raise InvalidFileError(f"Forbidden file name: {base_name}")

    if len(base_name) > MAX_FILENAME_LENGTH:
        raise InvalidFileError(f"File name too long (maximum: {MAX_FILENAME_LENGTH} characters)")

    if base_name.count(".") > 1:
        logger.warning("File name has multiple extensions: %r", base_name)

    extension = get_extension(base_name).lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise InvalidFileError(
            f"Extension '{extension}' is not allowed. "
            f"Accepted: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    if content_type is None:
        logger.warning("No content type supplied for %r", filename)
    else:
        normalized_mime = content_type.split(";")[0].strip().lower()
        if normalized_mime not in ALLOWED_MIME_TYPES and normalized_mime not in _GENERIC_MIME_TYPES:
            raise InvalidFileError(
                f"Unsupported file type: {content_type}. Upload a valid audio file."
            )

    if len(data) < 4:
        raise InvalidFileError("File is corrupted or too small")

    signature = detect_audio_signature(data[:12])
    if signature is None:
        logger.error("Unrecognized audio header: %s", data[:12].hex(" ").upper())
        raise InvalidFileError(
            "The file does not appear to be valid audio. Check that it is not corrupted."
        )
    logger.debug("Upload %r identified as %s", filename, signature)


def sanitize_filename(filename: str | None) -> str:
    """Make a client filename safe for display and logs.

    Strips directory components, replaces disallowed characters with "_",
    collapses repeats, trims leading/trailing "_", and bounds the length
    while keeping the extension.

    Raises:
        InvalidFileError: If the name is a reserved device name.
    """
    if filename is None:
        return "audio.mp3"

    base_name = _base_name(filename)

    sanitized = _DANGEROUS_CHARS.sub("_", base_name)
    sanitized = re.sub(r"_+", "_", sanitized)
    sanitized = sanitized.strip("_")

    if not sanitized or sanitized.strip(".") == "":
        return "audio" + get_extension(base_name)

    stem = re.sub(r"\.[^.]+$", "", sanitized).upper()
    if stem in FORBIDDEN_FILENAMES:
        raise InvalidFileError(f"Forbidden file name: {base_name}")

    if len(sanitized) > SANITIZED_FILENAME_LENGTH:
        ext = get_extension(sanitized)
        sanitized = sanitized[: SANITIZED_FILENAME_LENGTH - len(ext)] + ext

    return sanitized


def normalize_language(language: str | None) -> str | None:
    """Normalize a language hint.

    Returns:
        Lowercase 2-3 letter code, or None when absent or malformed.
        Malformed values are logged and dropped, never rejected.
    """
    if language is None or not language.strip():
        return None

    normalized = language.strip().lower()
    if not _LANGUAGE_PATTERN.match(normalized):
        logger.warning(
            "Ignoring invalid language %r (expected 2-3 letters, e.g. pt, en, es)", language
        )
        return None

    return normalized


__all__ = [
    "ALLOWED_EXTENSIONS",
    "ALLOWED_MIME_TYPES",
    "FORBIDDEN_FILENAMES",
    "detect_audio_signature",
    "get_extension",
    "normalize_language",
    "sanitize_filename",
    "validate_upload",
]
