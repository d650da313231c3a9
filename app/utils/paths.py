"""Audio Transcriber - Canonical path utilities.

Returns canonical Paths. Does NOT create directories.
Directory creation is the responsibility of the calling code.
"""

import time
import uuid
from pathlib import Path

# Suffix appended to an upload's stem to name its chunk directory
CHUNK_DIR_SUFFIX = "_chunks"

# Container used for chunks when the source has no extension
DEFAULT_CHUNK_EXTENSION = ".m4a"


def chunk_dir_for(original_path: str | Path) -> Path:
    """Get the chunk directory for an uploaded file.

    Derived only from the file name, so it can be found and removed even
    when the job record is gone.

    Args:
        original_path: Path to the original upload.

    Returns:
        Path: {parent}/{stem}_chunks
    """
    original_path = Path(original_path)
    return original_path.parent / f"{original_path.stem}{CHUNK_DIR_SUFFIX}"


def chunk_extension_for(original_path: str | Path) -> str:
    """Get the chunk file extension (with leading dot) for an upload.

    Stream-copy segmentation keeps the source container, so chunks use the
    source extension.
    """
    suffix = Path(original_path).suffix.lower()
    return suffix if suffix else DEFAULT_CHUNK_EXTENSION


def chunk_name_pattern(original_path: str | Path) -> Path:
    """Get the ffmpeg segment output pattern for an upload.

    Returns:
        Path: {parent}/{stem}_chunks/{stem}_%03d{ext}
    """
    original_path = Path(original_path)
    ext = chunk_extension_for(original_path)
    return chunk_dir_for(original_path) / f"{original_path.stem}_%03d{ext}"


def unique_storage_name(extension: str) -> str:
    """Generate a collision-resistant storage filename.

    Format: {epoch_millis}_{8 hex chars}{ext}

    Args:
        extension: File extension, with or without leading dot.
    """
    ext = extension if not extension or extension.startswith(".") else f".{extension}"
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}{ext}"


def upload_path(upload_dir: str | Path, extension: str) -> Path:
    """Get a fresh storage path for a new upload inside upload_dir."""
    return Path(upload_dir) / unique_storage_name(extension)
