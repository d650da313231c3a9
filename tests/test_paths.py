"""Tests for app.utils.paths module."""

import re
from pathlib import Path

from app.utils.paths import (
    chunk_dir_for,
    chunk_extension_for,
    chunk_name_pattern,
    unique_storage_name,
    upload_path,
)


class TestChunkDirFor:
    """Tests for chunk_dir_for function."""

    def test_derived_from_stem(self):
        path = chunk_dir_for("/data/uploads/1700000000000_ab12cd34.mp3")
        assert path == Path("/data/uploads/1700000000000_ab12cd34_chunks")

    def test_deterministic(self):
        """Same source always maps to the same directory."""
        assert chunk_dir_for("/x/a.wav") == chunk_dir_for(Path("/x/a.wav"))


class TestChunkNaming:
    def test_extension_follows_source(self):
        assert chunk_extension_for("/x/a.WAV") == ".wav"
        assert chunk_extension_for("/x/a.ogg") == ".ogg"

    def test_default_extension(self):
        assert chunk_extension_for("/x/noext") == ".m4a"

    def test_pattern_has_padded_ordinal(self):
        pattern = chunk_name_pattern("/data/uploads/talk.mp3")
        assert pattern == Path("/data/uploads/talk_chunks/talk_%03d.mp3")
        assert str(pattern) % 7 == "/data/uploads/talk_chunks/talk_007.mp3"


class TestUniqueStorageName:
    def test_format(self):
        name = unique_storage_name(".mp3")
        assert re.fullmatch(r"\d{13}_[0-9a-f]{8}\.mp3", name)

    def test_extension_without_dot(self):
        assert unique_storage_name("wav").endswith(".wav")
        assert ".." not in unique_storage_name(".wav")

    def test_names_do_not_collide(self):
        names = {unique_storage_name(".mp3") for _ in range(200)}
        assert len(names) == 200

    def test_upload_path_inside_dir(self, tmp_path):
        path = upload_path(tmp_path, ".flac")
        assert path.parent == tmp_path
        assert path.suffix == ".flac"
