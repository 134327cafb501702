"""
Unified CLI Error Handling
==========================

Provides consistent error reporting and exit codes for the CLI.
"""

import sys
import traceback
from enum import IntEnum
from pathlib import Path
from typing import NoReturn

import click


class ExitCode(IntEnum):
    """Standard exit codes for CLI tools."""
    SUCCESS = 0
    BUILD_ERROR = 1      # At least one file failed to preprocess
    INVALID_ARGS = 2     # Invalid arguments
    INTERNAL_ERROR = 3   # Unexpected internal error


def report_file_error(path: Path, error: Exception) -> None:
    """
    Report the failure of one input file on standard error.

    Preprocessor errors already carry file, line and column; read and
    decode failures are prefixed with the path.
    """
    from raspp.errors import RasppError

    if isinstance(error, RasppError):
        click.echo(str(error), err=True)
    elif isinstance(error, OSError):
        reason = error.strerror or str(error)
        click.echo(f"{path}: error: {reason}", err=True)
    elif isinstance(error, UnicodeDecodeError):
        click.echo(
            f"{path}: error: not valid UTF-8 (byte 0x{error.object[error.start]:02x} "
            f"at offset {error.start})",
            err=True,
        )
    else:
        click.echo(f"{path}: internal error: {error}", err=True)


def handle_cli_exception(
    error: Exception,
    verbose: bool = False,
    error_type: str | None = None
) -> NoReturn:
    """
    Exception handler for errors that escape the per-file loop.

    Formats the error message, optionally prints a traceback in verbose
    mode, and exits with the matching exit code.

    Args:
        error: The exception that was raised
        verbose: If True, print full traceback for internal errors
        error_type: Optional prefix for the error message

    Raises:
        SystemExit: Always exits with an appropriate exit code
    """
    from raspp.errors import RasppError

    if isinstance(error, RasppError):
        prefix = f"{error_type} error: " if error_type else "Error: "
        click.echo(f"{prefix}{error}", err=True)
        sys.exit(ExitCode.BUILD_ERROR)

    elif isinstance(error, click.BadParameter):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    elif isinstance(error, (FileNotFoundError, PermissionError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
