"""
External command runner.

Every invocation of ImageMagick, Ghostscript or poppler goes through
run_command(). Commands are passed as argument lists (never through a
shell), so paths and geometry strings need no quoting.

Behavior:
- stdout is captured and handed to an optional parser
- stderr is buffered until the process exits, then logged line by line;
  it is never parsed
- non-zero exit, death by signal, timeout or a missing binary raise
  ApplicationError(CommandError) with the command line and exit status
- parser exceptions propagate unchanged

Usage:
    from previews.commands import run_command

    output = run_command(["pdfinfo", "/tmp/file.pdf"])
    size = run_command(["identify", ...], parser=parse_dimension)
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import TYPE_CHECKING, TypeVar

from django.conf import settings

from core.exceptions import ApplicationError, ErrorCode

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Shell convention for "command not found"
COMMAND_NOT_FOUND_EXIT_CODE = 127


def format_command(args: Sequence[str]) -> str:
    """Render an argument list as a shell-quoted string for logs and errors."""
    return shlex.join([str(arg) for arg in args])


def run_command(
    args: Sequence[str],
    parser: Callable[[str], T] | None = None,
    timeout: int | None = None,
) -> T | str:
    """
    Run an external command to completion.

    Args:
        args: Command and arguments.
        parser: Called with the full stdout on success. When omitted the raw
            stdout is returned.
        timeout: Seconds before the process is killed. Defaults to
            settings.PREVIEW_COMMAND_TIMEOUT.

    Returns:
        parser(stdout) if a parser was given, else stdout.

    Raises:
        ApplicationError: CommandError on non-zero exit, signal, timeout or
            missing executable; IOError if the output streams cannot be read.
    """
    command = format_command(args)
    if timeout is None:
        timeout = settings.PREVIEW_COMMAND_TIMEOUT

    logger.debug("Executing command", extra={"command": command})

    try:
        result = subprocess.run(
            [str(arg) for arg in args],
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        logger.error(
            "Command not found",
            extra={"command": command, "error": str(e)},
        )
        raise ApplicationError(
            ErrorCode.COMMAND_ERROR,
            f"command not found, exit code {COMMAND_NOT_FOUND_EXIT_CODE} "
            f"(signal=None, command={command})",
            details={
                "returncode": COMMAND_NOT_FOUND_EXIT_CODE,
                "signal": None,
                "command": command,
                "reason": "not found",
            },
            cause=e,
        ) from e
    except subprocess.TimeoutExpired as e:
        logger.error(
            "Command timed out",
            extra={"command": command, "timeout": timeout},
        )
        raise ApplicationError(
            ErrorCode.COMMAND_ERROR,
            f"command timed out after {timeout}s (command={command})",
            details={"returncode": None, "signal": None, "command": command},
            cause=e,
        ) from e
    except OSError as e:
        logger.error(
            "Command output error",
            extra={"command": command, "error": str(e)},
        )
        raise ApplicationError(
            ErrorCode.IO_ERROR,
            f"command output error ({e})",
            details={"command": command},
            cause=e,
        ) from e

    for line in (result.stderr or "").splitlines():
        if line.strip():
            logger.warning(line, extra={"command": command})

    if result.returncode != 0:
        # Negative return codes mean the process was killed by a signal
        returncode = result.returncode if result.returncode > 0 else None
        signal = -result.returncode if result.returncode < 0 else None
        raise ApplicationError(
            ErrorCode.COMMAND_ERROR,
            f"command exited with code {returncode} "
            f"(signal={signal}, command={command})",
            details={"returncode": returncode, "signal": signal, "command": command},
        )

    logger.info("Command finished successfully", extra={"command": command})

    output = result.stdout or ""
    if parser is None:
        return output
    return parser(output)
