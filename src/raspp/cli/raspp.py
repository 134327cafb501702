"""
raspp - Assembly Preprocessor Command-Line Interface
====================================================

This module implements the command-line interface for the preprocessor.
Every input file is rewritten independently and the results are written,
in order, to standard output (or the file given with -o).

Usage Examples
--------------
Rewrite one file:
    $ raspp boot.S > boot.s

Rewrite several files; a failing file does not stop the others:
    $ raspp a.S b.S c.S > all.s

Read standard input:
    $ cat boot.S | raspp

Exit Codes
----------
0 - All files rewritten
1 - At least one file failed (diagnostics on standard error)
2 - Invalid arguments
3 - Internal error
"""

import logging
import os
import sys
from pathlib import Path
from typing import TextIO

import click

from raspp import __version__
from raspp.cli.errors import ExitCode, handle_cli_exception, report_file_error
from raspp.config import Config
from raspp.errors import RasppError
from raspp.preprocessor import Preprocessor

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )


def silence_stdout() -> None:
    """
    Point standard output at the null device.

    After the reader of a pipe has gone away, this stops the interpreter
    from reporting a second broken pipe when it flushes stdout at exit.
    """
    devnull = os.open(os.devnull, os.O_WRONLY)
    try:
        os.dup2(devnull, sys.stdout.fileno())
    except (OSError, ValueError):
        # stdout has no file descriptor (e.g. captured by a test runner)
        pass
    finally:
        os.close(devnull)


def _write(output: TextIO, text: str) -> None:
    output.write(text)
    output.flush()


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "files",
    nargs=-1,
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.File("w", encoding="utf-8"),
    default="-",
    help="Write output to FILE instead of standard output",
)
@click.option(
    "--strict-scopes",
    is_flag=True,
    help="Treat a stray '}' or an unclosed block as an error",
)
@click.option(
    "--no-line-markers",
    is_flag=True,
    help="Do not emit '# line \"file\"' markers at block boundaries",
)
@click.option(
    "--reset-anonymous",
    is_flag=True,
    help="Restart anonymous block numbering for every file",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="raspp")
def main(
    files: tuple[Path, ...],
    output: TextIO,
    strict_scopes: bool,
    no_line_markers: bool,
    reset_anonymous: bool,
    verbose: bool,
) -> None:
    """
    Rewrite extended assembly source into plain assembly.

    FILES are the source files to rewrite; with no FILES, standard input
    is read. Each file is processed on its own and its output written in
    order. Diagnostics go to standard error.

    \b
    Examples:
        raspp boot.S > boot.s        # Rewrite one file
        raspp -o all.s a.S b.S       # Rewrite two files into one
        raspp --strict-scopes a.S    # Fail on unbalanced blocks
    """
    setup_logging(verbose)

    config = Config.from_env()
    if strict_scopes:
        config.strict_scopes = True
    if no_line_markers:
        config.line_markers = False
    if reset_anonymous:
        config.reset_anonymous_per_file = True

    preprocessor = Preprocessor(config)
    failed = False

    try:
        if not files:
            try:
                source = click.get_text_stream("stdin").read()
                _write(output, preprocessor.process_string(source, "(stdin)"))
            except (RasppError, UnicodeDecodeError) as e:
                report_file_error(Path("(stdin)"), e)
                failed = True
        else:
            for result in preprocessor.process_files(files):
                if result.ok:
                    _write(output, result.output)
                else:
                    report_file_error(result.path, result.error)
                    failed = True

    except BrokenPipeError:
        silence_stdout()
        sys.exit(ExitCode.BUILD_ERROR if failed else ExitCode.SUCCESS)

    except Exception as e:
        handle_cli_exception(e, verbose=verbose, error_type="Preprocessing")

    logger.debug(f"Processed {len(files) or 1} input(s), failed: {failed}")

    if failed:
        sys.exit(ExitCode.BUILD_ERROR)


if __name__ == "__main__":
    main()
