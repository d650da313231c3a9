"""Audio Transcriber - Atomic I/O utilities.

Atomic publish rule for uploaded audio:
1. Write to temp path in same directory
2. Flush + best-effort fsync
3. Rename temp -> final (the publish boundary)

This ensures that the final path either contains complete valid data
or does not exist. Partial writes only affect the temp file, which is
removed on failure or by cleanup_orphan_temp_files() at startup.
"""

import os
from pathlib import Path


def _write_all(fd: int, data: bytes) -> None:
    """Write all bytes to a file descriptor, handling partial writes.

    Args:
        fd: File descriptor to write to.
        data: Bytes to write.

    Raises:
        OSError: If write fails or returns 0 bytes unexpectedly.
    """
    total_written = 0
    data_len = len(data)

    while total_written < data_len:
        try:
            written = os.write(fd, data[total_written:])
            if written == 0:
                raise OSError("os.write() returned 0 bytes unexpectedly")
            total_written += written
        except InterruptedError:
            # EINTR: retry the write
            continue


def _fsync_directory(dir_path: Path) -> None:
    """Best-effort fsync on a directory.

    Args:
        dir_path: Directory path to sync.
    """
    try:
        fd = os.open(dir_path, os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except (OSError, AttributeError):
        # O_DIRECTORY is not available everywhere
        pass


def _temp_path_for(final_path: Path, temp_suffix: str) -> Path:
    return final_path.with_suffix(final_path.suffix + temp_suffix)


def atomic_write_bytes(
    final_path: str | Path,
    data: bytes,
    temp_suffix: str = ".tmp",
) -> int:
    """Atomically write bytes to a file.

    Args:
        final_path: The target path for the final file.
        data: Bytes to write.
        temp_suffix: Suffix for the temporary file (default: ".tmp").

    Returns:
        Number of bytes written.

    Raises:
        OSError: If directory creation, write, or rename fails.
    """
    final_path = Path(final_path)
    temp_path = _temp_path_for(final_path, temp_suffix)

    final_path.parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
    try:
        _write_all(fd, data)
        os.fsync(fd)
    except OSError:
        os.close(fd)
        try:
            os.remove(temp_path)
        except OSError:
            pass
        raise
    else:
        os.close(fd)

    os.replace(temp_path, final_path)
    _fsync_directory(final_path.parent)
    return len(data)


def cleanup_orphan_temp_files(directory: str | Path, temp_suffix: str = ".tmp") -> int:
    """Clean up orphan temp files in a directory.

    Called during startup to remove incomplete upload writes.

    Args:
        directory: Directory to scan for temp files.
        temp_suffix: Suffix pattern to match (default: ".tmp").

    Returns:
        Number of files removed.
    """
    directory = Path(directory)
    removed = 0

    if not directory.exists():
        return 0

    for temp_file in directory.glob(f"*{temp_suffix}"):
        try:
            temp_file.unlink()
            removed += 1
        except OSError:
            pass

    return removed
