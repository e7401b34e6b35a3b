"""
Temporary file registry.

One TempFileRegistry is created per handler invocation. Every local file the
invocation writes (downloads, command outputs, direct writes) is registered
here, and clear() removes them all at the end of the run whether it
succeeded or not.

Reads are only allowed for registered paths. A read of an unknown path is a
lifecycle bug (a file this run never produced) and fails fast with IOError.

Each run gets its own working directory from create(), so concurrent runs
with the same file names never touch each other's files.

Usage:
    registry = TempFileRegistry.create()
    source, output = registry.path("a.bin"), registry.path("a.jpg")
    try:
        registry.write_file(source, data)
        registry.write_by(["convert", source, output], [output])
        with registry.open_for_read(output) as f:
            upload(f)
    finally:
        registry.clear()
        registry.remove_work_dir()
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import ApplicationError, ErrorCode
from previews.commands import format_command, run_command

if TYPE_CHECKING:
    from collections.abc import Generator, Iterable, Sequence
    from typing import BinaryIO

logger = logging.getLogger(__name__)


class TempFileRegistry:
    """Tracks the local files created during one run and deletes them."""

    def __init__(self, work_dir: str | None = None) -> None:
        self.work_dir = str(work_dir) if work_dir is not None else None
        self._files: list[str] = []
        # Thumbnail sizes are rendered on worker threads
        self._lock = threading.Lock()

    @classmethod
    def create(cls, parent: str | None = None) -> TempFileRegistry:
        """
        Create a registry with its own working directory.

        The directory is made under parent (settings.PREVIEW_TMP_DIR by
        default), so runs sharing a filesystem never share file names.

        Raises:
            ApplicationError: IOError if the directory cannot be created.
        """
        parent = parent or settings.PREVIEW_TMP_DIR
        try:
            work_dir = tempfile.mkdtemp(prefix="preview-", dir=parent)
        except OSError as e:
            logger.error(f"Failed to create a working directory in {parent}")
            raise ApplicationError(
                ErrorCode.IO_ERROR,
                f"Failed to create working directory (parent={parent}, error={e})",
                details={"path": parent},
                cause=e,
            ) from e

        logger.debug("Created working directory", extra={"path": work_dir})
        return cls(work_dir)

    def path(self, file_name: str) -> str:
        """Local path of file_name inside the working directory."""
        work_dir = self.work_dir or settings.PREVIEW_TMP_DIR
        return os.path.join(work_dir, os.path.basename(file_name))

    @property
    def files(self) -> list[str]:
        """Registered paths in registration order."""
        with self._lock:
            return list(self._files)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._files

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    def register(self, paths: Iterable[str]) -> None:
        """Add paths to the registry, ignoring ones already present."""
        with self._lock:
            for path in paths:
                path = str(path)
                if path not in self._files:
                    self._files.append(path)

    def open_for_read(self, path: str) -> BinaryIO:
        """
        Open a registered file for binary reading.

        Raises:
            ApplicationError: IOError if the path was never registered.
        """
        path = str(path)
        if path not in self:
            logger.error(
                "Reading an invalid file",
                extra={"path": path, "valid_paths": ",".join(self.files)},
            )
            raise ApplicationError(
                ErrorCode.IO_ERROR,
                f"File path invalid (path={path})",
                details={"path": path},
            )
        return open(path, "rb")

    @contextmanager
    def open_for_write(self, path: str) -> Generator[BinaryIO, None, None]:
        """
        Open a file for binary writing and register it once opened.

        Raises:
            ApplicationError: IOError if the file cannot be opened or written.
        """
        path = str(path)
        try:
            stream = open(path, "wb")
        except OSError as e:
            logger.error(f"Failed to open {path} for writing")
            raise ApplicationError(
                ErrorCode.IO_ERROR,
                f"Failed to open file for writing (path={path}, error={e})",
                details={"path": path},
                cause=e,
            ) from e

        self.register([path])
        try:
            with stream:
                yield stream
        except OSError as e:
            logger.error(f"Failed to write to {path}")
            raise ApplicationError(
                ErrorCode.IO_ERROR,
                f"Failed to write file (path={path}, error={e})",
                details={"path": path},
                cause=e,
            ) from e

    def write_file(self, path: str, data: bytes | str) -> None:
        """Write data to path and register it."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self.open_for_write(path) as stream:
            stream.write(data)

    def write_by(self, args: Sequence[str], paths: Sequence[str] = ()) -> str:
        """
        Run a command that produces files, registering them first.

        The output paths are registered before the command runs, so files
        left behind by a failed command are still cleaned up. Whether the
        command actually created them is not checked.

        Args:
            args: Command and arguments.
            paths: Files the command is expected to create.

        Returns:
            The command's stdout.
        """
        self.register(paths)
        logger.debug(
            "Executing command producing files",
            extra={"command": format_command(args), "paths": list(paths)},
        )
        return run_command(args)

    def clear(self) -> list[str]:
        """
        Delete every registered file.

        A path whose deletion fails but which no longer exists counts as
        removed. Removed paths are dropped from the registry; the others stay
        registered for a later attempt.

        Returns:
            The removed paths.

        Raises:
            ApplicationError: IOError if any existing file could not be
                deleted. Files that were deleted stay deleted.
        """
        paths = self.files
        if not paths:
            return []

        logger.debug(
            "Removing temporary files",
            extra={"paths": ",".join(paths)},
        )

        removed: list[str] = []
        failed: dict[str, str] = {}
        for path in paths:
            try:
                os.unlink(path)
            except OSError as e:
                if os.path.exists(path):
                    failed[path] = str(e)
                    continue
            removed.append(path)

        with self._lock:
            self._files = [x for x in self._files if x not in removed]

        if failed:
            logger.error(
                "Failed to remove temporary files",
                extra={"failed": failed, "removed": removed},
            )
            raise ApplicationError(
                ErrorCode.IO_ERROR,
                f"Failed to remove temporary files ({', '.join(failed)})",
                details={"failed": failed, "removed": removed},
            )

        logger.info("Removed temporary files", extra={"count": len(removed)})
        return removed

    def remove_work_dir(self) -> None:
        """
        Remove the working directory made by create().

        Only an empty directory is removed; call clear() first.

        Raises:
            ApplicationError: IOError if the directory still holds files.
        """
        if self.work_dir is None:
            return

        try:
            os.rmdir(self.work_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove working directory {self.work_dir}")
            raise ApplicationError(
                ErrorCode.IO_ERROR,
                f"Failed to remove working directory (path={self.work_dir}, error={e})",
                details={"path": self.work_dir},
                cause=e,
            ) from e
