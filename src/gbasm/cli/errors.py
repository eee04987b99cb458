"""
CLI Error Handling
==================

Consistent error reporting and exit codes for the gbasm command.
"""

import sys
import traceback
from enum import IntEnum
from typing import NoReturn

import click

from gbasm.errors import GbasmError


class ExitCode(IntEnum):
    """Standard exit codes for the CLI."""
    SUCCESS = 0
    BUILD_ERROR = 1      # Assembly error, failed assertion, too many errors
    INVALID_ARGS = 2     # Invalid arguments or missing files
    INTERNAL_ERROR = 3   # Unexpected internal error


def handle_cli_exception(error: Exception, verbose: bool = False) -> NoReturn:
    """
    Report an exception and exit with the matching exit code.

    Assembler errors are already formatted with location, source line and
    hint, so they are printed as-is.

    Args:
        error: The exception that was raised
        verbose: If True, print the traceback of internal errors

    Raises:
        SystemExit: Always
    """
    if isinstance(error, GbasmError):
        click.echo(str(error), err=True)
        sys.exit(ExitCode.BUILD_ERROR)

    elif isinstance(error, (click.BadParameter, FileNotFoundError, PermissionError)):
        click.echo(f"Error: {error}", err=True)
        sys.exit(ExitCode.INVALID_ARGS)

    else:
        click.echo(f"Internal error: {error}", err=True)
        if verbose:
            traceback.print_exc()
        sys.exit(ExitCode.INTERNAL_ERROR)
