"""Audio Transcriber - File cleanup coordinator.

Best-effort removal of uploads and their chunk directories. The public
delete_* methods never raise: failures are logged and reported through
the return value only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from app.errors import CleanupError
from app.utils.paths import CHUNK_DIR_SUFFIX, chunk_dir_for

logger = logging.getLogger(__name__)


def remove_tree(directory: Path) -> None:
    """Remove a directory tree.

    Raises:
        CleanupError: If any entry could not be removed.
    """
    failures: list[str] = []

    # Reverse lexicographic order visits children before their parents
    for path in sorted(directory.rglob("*"), reverse=True):
        try:
            if path.is_dir() and not path.is_symlink():
                path.rmdir()
            else:
                path.unlink()
        except OSError as e:
            failures.append(f"{path}: {e}")

    try:
        directory.rmdir()
    except OSError as e:
        failures.append(f"{directory}: {e}")

    if failures:
        raise CleanupError(f"Could not fully remove {directory}: {'; '.join(failures)}")


class FileCleanup:
    """Deletes uploaded files and chunk directories under an upload root."""

    def __init__(self, upload_dir: str | Path):
        self.upload_dir = Path(upload_dir)

    def delete_audio_file(self, file_path: str | None) -> bool:
        """Delete an uploaded audio file.

        Returns:
            True if the file was deleted, False otherwise.
        """
        if not file_path:
            return False

        path = Path(file_path)
        try:
            if not path.exists():
                logger.warning("File not found for deletion: %s", path)
                return False
            path.unlink()
            logger.info("Deleted file: %s", path)
            return True
        except OSError:
            logger.error("Failed to delete file: %s", path, exc_info=True)
            return False

    def delete_chunk_directory(self, original_file_path: str | None) -> bool:
        """Delete the chunk directory derived from an upload path.

        Returns:
            True if a directory was removed, False if there was none or
            removal failed.
        """
        if not original_file_path:
            return False

        chunks_dir = chunk_dir_for(original_file_path)
        try:
            if not chunks_dir.is_dir():
                return False
            remove_tree(chunks_dir)
            logger.info("Deleted chunk directory: %s", chunks_dir)
            return True
        except (CleanupError, OSError):
            logger.error("Failed to delete chunk directory: %s", chunks_dir, exc_info=True)
            return False

    def delete_file_and_chunks(self, file_path: str | None) -> None:
        """Delete an upload and its chunk directory."""
        self.delete_audio_file(file_path)
        self.delete_chunk_directory(file_path)

    def clean_orphaned_chunk_dirs(self, keep: Iterable[str] = ()) -> int:
        """Remove *_chunks directories directly under the upload root.

        Args:
            keep: Directory names to leave alone (chunk dirs of jobs that
                are queued or being processed).

        Returns:
            Number of directories removed.
        """
        if not self.upload_dir.exists():
            logger.warning("Upload directory does not exist: %s", self.upload_dir)
            return 0

        kept = set(keep)
        removed = 0
        for entry in self.upload_dir.iterdir():
            if not (entry.is_dir() and entry.name.endswith(CHUNK_DIR_SUFFIX)):
                continue
            if entry.name in kept:
                logger.debug("Keeping chunk directory of an active job: %s", entry)
                continue
            try:
                remove_tree(entry)
                removed += 1
                logger.info("Deleted orphan chunk directory: %s", entry)
            except (CleanupError, OSError):
                logger.error("Failed to delete orphan chunk directory: %s", entry, exc_info=True)
        return removed

    def uploads_dir_size(self) -> int:
        """Total size in bytes of regular files under the upload root."""
        if not self.upload_dir.exists():
            return 0

        total = 0
        for path in self.upload_dir.rglob("*"):
            try:
                if path.is_file():
                    total += path.stat().st_size
            except OSError:
                continue
        return total
