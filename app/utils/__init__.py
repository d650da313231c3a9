"""Audio Transcriber - Utility modules."""

from app.utils.atomic_io import (
    atomic_write_bytes,
    cleanup_orphan_temp_files,
)
from app.utils.paths import (
    chunk_dir_for,
    chunk_extension_for,
    chunk_name_pattern,
    unique_storage_name,
    upload_path,
)
from app.utils.validation import normalize_language, sanitize_filename, validate_upload

__all__ = [
    # atomic_io
    "atomic_write_bytes",
    "cleanup_orphan_temp_files",
    # paths
    "chunk_dir_for",
    "chunk_extension_for",
    "chunk_name_pattern",
    "unique_storage_name",
    "upload_path",
    # validation
    "validate_upload",
    "sanitize_filename",
    "normalize_language",
]
