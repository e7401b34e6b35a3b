"""
Tests for the temp-file registry.

Tests cover:
- Registration is an idempotent union
- Reads are rejected for unregistered paths
- Writes register their path
- Command outputs are registered before the command runs
- clear() removal bookkeeping and partial failures
- Per-run working directories
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from core.exceptions import ApplicationError, ErrorCode
from previews.filesystem import TempFileRegistry


class TestRegister:
    """Tests for TempFileRegistry.register()."""

    def test_register_is_idempotent(self, registry):
        """Registering the same path twice keeps one entry."""
        registry.register(["/tmp/a", "/tmp/b"])
        registry.register(["/tmp/b", "/tmp/c"])

        assert registry.files == ["/tmp/a", "/tmp/b", "/tmp/c"]
        assert len(registry) == 3

    def test_registries_are_independent(self):
        """Each run gets its own registry state."""
        first = TempFileRegistry()
        second = TempFileRegistry()

        first.register(["/tmp/a"])

        assert "/tmp/a" in first
        assert "/tmp/a" not in second


class TestOpenForRead:
    """Tests for TempFileRegistry.open_for_read()."""

    def test_unregistered_path_raises_io_error(self, registry, tmp_path):
        """A file that exists but was never registered cannot be read."""
        path = tmp_path / "stray.bin"
        path.write_bytes(b"data")

        with pytest.raises(ApplicationError) as exc_info:
            registry.open_for_read(str(path))

        assert exc_info.value.code is ErrorCode.IO_ERROR

    def test_registered_path_is_readable(self, registry, tmp_path):
        """A written file can be read back."""
        path = str(tmp_path / "a.bin")
        registry.write_file(path, b"payload")

        with registry.open_for_read(path) as stream:
            assert stream.read() == b"payload"


class TestWrites:
    """Tests for open_for_write() and write_file()."""

    def test_write_file_registers_path(self, registry, tmp_path):
        """write_file() registers the path it wrote."""
        path = str(tmp_path / "a.txt")

        registry.write_file(path, "text")

        assert path in registry
        with open(path, "rb") as f:
            assert f.read() == b"text"

    def test_open_for_write_failure_raises_io_error(self, registry, tmp_path):
        """A path that cannot be opened is reported as IOError and not registered."""
        path = str(tmp_path / "missing-dir" / "a.bin")

        with pytest.raises(ApplicationError) as exc_info:
            registry.write_file(path, b"data")

        assert exc_info.value.code is ErrorCode.IO_ERROR
        assert path not in registry


class TestWriteBy:
    """Tests for TempFileRegistry.write_by()."""

    def test_outputs_registered_before_command_runs(self, registry, tmp_path):
        """The output path is already registered when the command executes."""
        output = str(tmp_path / "out.jpg")
        seen = {}

        def fake_run(args, **kwargs):
            seen["registered"] = output in registry
            return "stdout"

        with patch("previews.filesystem.run_command", side_effect=fake_run):
            result = registry.write_by(["convert", "in.png", output], [output])

        assert seen["registered"] is True
        assert result == "stdout"

    def test_outputs_stay_registered_when_command_fails(self, registry, tmp_path):
        """A failed command still leaves its outputs eligible for cleanup."""
        output = str(tmp_path / "out.jpg")
        error = ApplicationError(ErrorCode.COMMAND_ERROR, "command exited with code 1")

        with patch("previews.filesystem.run_command", side_effect=error):
            with pytest.raises(ApplicationError) as exc_info:
                registry.write_by(["convert", "in.png", output], [output])

        assert exc_info.value is error
        assert output in registry


class TestClear:
    """Tests for TempFileRegistry.clear()."""

    def test_clear_removes_files(self, registry, tmp_path):
        """All registered files are deleted and dropped from the registry."""
        paths = [str(tmp_path / name) for name in ("a", "b")]
        for path in paths:
            registry.write_file(path, b"x")

        removed = registry.clear()

        assert removed == paths
        assert registry.files == []
        assert not any(os.path.exists(path) for path in paths)

    def test_missing_file_counts_as_removed(self, registry, tmp_path):
        """A path that no longer exists on disk is not an error."""
        path = str(tmp_path / "never-created.jpg")
        registry.register([path])

        assert registry.clear() == [path]
        assert path not in registry

    def test_cleared_path_is_not_retried(self, registry, tmp_path):
        """A second clear() has nothing left to delete."""
        path = str(tmp_path / "a")
        registry.write_file(path, b"x")

        registry.clear()

        assert registry.clear() == []

    def test_failed_deletion_raises_and_keeps_path(self, registry, tmp_path):
        """An existing file that cannot be deleted fails the call and stays registered."""
        stuck = str(tmp_path / "stuck")
        removable = str(tmp_path / "removable")
        registry.write_file(stuck, b"x")
        registry.write_file(removable, b"x")

        real_unlink = os.unlink

        def fake_unlink(path):
            if path == stuck:
                raise PermissionError(13, "Permission denied", path)
            real_unlink(path)

        with patch("previews.filesystem.os.unlink", side_effect=fake_unlink):
            with pytest.raises(ApplicationError) as exc_info:
                registry.clear()

        assert exc_info.value.code is ErrorCode.IO_ERROR
        assert exc_info.value.details["removed"] == [removable]
        assert registry.files == [stuck]
        assert not os.path.exists(removable)


class TestWorkDir:
    """Tests for the per-run working directory."""

    def test_create_makes_private_directory(self, tmp_path):
        """Each created registry gets its own directory under PREVIEW_TMP_DIR."""
        first = TempFileRegistry.create()
        second = TempFileRegistry.create()

        assert first.work_dir != second.work_dir
        assert os.path.dirname(first.work_dir) == str(tmp_path)
        assert os.path.isdir(first.work_dir)
        assert first.path("photo.jpg") != second.path("photo.jpg")

    def test_path_keeps_only_file_name(self, tmp_path):
        """Directory parts of the name never escape the working directory."""
        registry = TempFileRegistry.create()

        assert registry.path("../a/photo.jpg") == os.path.join(
            registry.work_dir, "photo.jpg"
        )

    def test_path_without_work_dir_uses_settings(self, registry, tmp_path):
        """A registry built without a directory uses PREVIEW_TMP_DIR."""
        assert registry.path("a.jpg") == os.path.join(str(tmp_path), "a.jpg")

    def test_create_failure_raises_io_error(self, tmp_path):
        """A missing parent directory is an IOError."""
        with pytest.raises(ApplicationError) as exc_info:
            TempFileRegistry.create(str(tmp_path / "missing"))

        assert exc_info.value.code is ErrorCode.IO_ERROR

    def test_remove_work_dir_after_clear(self, tmp_path):
        """Clearing then removing leaves the parent empty."""
        registry = TempFileRegistry.create()
        registry.write_file(registry.path("a.jpg"), b"x")

        registry.clear()
        registry.remove_work_dir()

        assert os.listdir(tmp_path) == []

    def test_remove_non_empty_work_dir_raises(self, tmp_path):
        """A directory still holding files is left in place."""
        registry = TempFileRegistry.create()
        registry.write_file(registry.path("a.jpg"), b"x")

        with pytest.raises(ApplicationError) as exc_info:
            registry.remove_work_dir()

        assert exc_info.value.code is ErrorCode.IO_ERROR
        assert os.path.isdir(registry.work_dir)

    def test_remove_without_work_dir_is_noop(self, registry, tmp_path):
        """Nothing is removed when the registry has no directory."""
        registry.remove_work_dir()

        assert os.path.isdir(tmp_path)
