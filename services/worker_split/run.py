"""Audio Transcriber - Split Worker (segmenter).

Cuts one uploaded audio file into ordered, time-bounded chunks with ffmpeg.

Input: the job's stored upload, e.g. data/uploads/{name}.mp3
Output: data/uploads/{name}_chunks/{name}_000.mp3, _001.mp3, ...

The tool is invoked once with stream copy (no re-encoding). Chunk order is
recovered from the trailing ordinal of each file name, compared as an
integer (ffmpeg widens the number past 999, so name order is not enough).

Dependencies:
- Requires ffmpeg installed (path configurable via TRANSCRIBER_FFMPEG_PATH)

Failure modes (all raised as SegmentationError, indistinguishable to callers):
- source file does not exist
- ffmpeg missing, timed out, or exited non-zero
- ffmpeg succeeded but produced zero chunks
"""

from __future__ import annotations

import logging
import re
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from app.cleanup import remove_tree
from app.config import Settings
from app.errors import CleanupError, SegmentationError
from app.utils.paths import chunk_dir_for, chunk_extension_for, chunk_name_pattern

logger = logging.getLogger(__name__)

# Maximum characters of tool output kept in logs
MAX_TOOL_OUTPUT_LOG_CHARS = 4000

SPLIT_FAILED_MESSAGE = "Failed to split the audio file. Check that the file is not corrupted."
NO_CHUNKS_MESSAGE = "No chunks were produced. The file may be corrupted or too short."

# Trailing "_<digits>" of a chunk file stem
_ORDINAL_PATTERN = re.compile(r"_(\d+)$")


# --- Result Types ---


@dataclass(frozen=True)
class Chunk:
    """One segment of the original audio, in transcription order."""

    index: int
    path: Path


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external tool invocation."""

    returncode: int
    output: str = ""


# Runs a command with a timeout in seconds. May raise subprocess.TimeoutExpired
# or OSError (e.g. FileNotFoundError when the binary is missing).
CommandRunner = Callable[[list[str], int], CommandResult]


def subprocess_runner(cmd: list[str], timeout: int) -> CommandResult:
    """Run a command with subprocess, merging stderr into stdout."""
    result = subprocess.run(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        check=False,
        timeout=timeout,
    )
    output = result.stdout.decode("utf-8", errors="replace") if result.stdout else ""
    return CommandResult(returncode=result.returncode, output=output)


def build_split_command(ffmpeg_path: str, source_path: Path, segment_seconds: int) -> list[str]:
    """Build the ffmpeg stream-copy segment command for a source file."""
    return [
        ffmpeg_path,
        "-y",
        "-i",
        str(source_path.absolute()),
        "-f",
        "segment",
        "-segment_time",
        str(segment_seconds),
        "-c",
        "copy",
        str(chunk_name_pattern(source_path).absolute()),
    ]


def list_chunks(source_path: str | Path) -> list[Chunk]:
    """List the chunk files of a source in transcription order."""
    chunks_dir = chunk_dir_for(source_path)
    if not chunks_dir.is_dir():
        return []

    ext = chunk_extension_for(source_path)
    numbered = []
    for p in chunks_dir.iterdir():
        if not (p.is_file() and p.name.endswith(ext)):
            continue
        match = _ORDINAL_PATTERN.search(p.stem)
        if match is None:
            logger.warning("Ignoring unexpected file in chunk directory: %s", p)
            continue
        numbered.append((int(match.group(1)), p))

    numbered.sort()
    return [Chunk(index=i, path=p) for i, (_, p) in enumerate(numbered)]


class Segmenter:
    """Splits audio files into fixed-duration chunks."""

    def __init__(self, settings: Settings, runner: CommandRunner | None = None):
        self.ffmpeg_path = settings.ffmpeg_path
        self.timeout_seconds = settings.ffmpeg_timeout_seconds
        self.runner = runner or subprocess_runner

    def split(self, source_path: str | Path, max_segment_seconds: int) -> list[Chunk]:
        """Split a source file into ordered chunks.

        Args:
            source_path: Path to the uploaded audio file.
            max_segment_seconds: Target duration of each chunk (passed through).

        Returns:
            Chunks sorted by index (0-based).

        Raises:
            SegmentationError: If the source is missing, the tool fails, or
                no chunks were produced.
        """
        source_path = Path(source_path)
        if not source_path.exists():
            raise SegmentationError(f"Audio file not found: {source_path.name}")

        chunks_dir = chunk_dir_for(source_path)
        if chunks_dir.exists():
            # Leftovers from an earlier attempt must not join this chunk list
            logger.info("Removing stale chunk directory: %s", chunks_dir)
            try:
                remove_tree(chunks_dir)
            except CleanupError as e:
                raise SegmentationError(SPLIT_FAILED_MESSAGE) from e
        try:
            chunks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SegmentationError(SPLIT_FAILED_MESSAGE) from e

        cmd = build_split_command(self.ffmpeg_path, source_path, max_segment_seconds)
        logger.info("Running ffmpeg: %s", " ".join(cmd))

        start = time.monotonic()
        try:
            result = self.runner(cmd, self.timeout_seconds)
        except subprocess.TimeoutExpired as e:
            logger.error("ffmpeg timed out after %d seconds for %s", self.timeout_seconds, source_path)
            raise SegmentationError(SPLIT_FAILED_MESSAGE) from e
        except FileNotFoundError as e:
            logger.error("ffmpeg not found: %s", self.ffmpeg_path)
            raise SegmentationError(SPLIT_FAILED_MESSAGE) from e
        except OSError as e:
            logger.error("ffmpeg execution failed: %s", e)
            raise SegmentationError(SPLIT_FAILED_MESSAGE) from e
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if result.returncode != 0:
            logger.error(
                "ffmpeg exited with code %d for %s: %s",
                result.returncode,
                source_path,
                result.output[-MAX_TOOL_OUTPUT_LOG_CHARS:],
            )
            raise SegmentationError(SPLIT_FAILED_MESSAGE)

        chunks = list_chunks(source_path)
        if not chunks:
            logger.error("ffmpeg produced no chunks for %s", source_path)
            raise SegmentationError(NO_CHUNKS_MESSAGE)

        logger.info(
            "Split %s into %d chunk(s) of <= %ds in %dms",
            source_path.name,
            len(chunks),
            max_segment_seconds,
            elapsed_ms,
        )
        return chunks


if __name__ == "__main__":
    import sys

    from app.config import load_settings

    logging.basicConfig(level=logging.INFO)

    if len(sys.argv) != 3:
        print(f"Usage: {sys.argv[0]} <audio_file> <segment_seconds>")
        sys.exit(1)

    try:
        produced = Segmenter(load_settings()).split(sys.argv[1], int(sys.argv[2]))
    except SegmentationError as e:
        print(f"Error: {e.error_code} - {e.message}")
        sys.exit(1)

    for chunk in produced:
        print(f"{chunk.index:03d} {chunk.path}")
