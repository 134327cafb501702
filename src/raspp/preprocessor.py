"""
raspp Preprocessor - Main Interface
===================================

This module provides the Preprocessor class, the primary interface for
rewriting files. It owns the settings and the anonymous block counter,
and runs one independent Rewriter per file.

Example Usage
-------------
>>> from raspp import Preprocessor
>>> pp = Preprocessor()
>>> print(pp.process_string("    add 4, d0\\n", "demo.S"), end="")
    add #4, d0

Batch processing keeps going after a failed file:

>>> for result in pp.process_files(["a.S", "b.S"]):
...     if result.ok:
...         print(result.output, end="")

Anonymous Block Numbering
-------------------------
Anonymous `{` blocks are named from a counter held by the Preprocessor.
By default the counter runs on across files, so every anonymous block in
a batch gets a distinct name; set `Config.reset_anonymous_per_file` to
restart it at zero for every file.
"""

from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union
import logging

from raspp.config import Config
from raspp.errors import RasppError
from raspp.rewriter import Evaluator, Rewriter

logger = logging.getLogger(__name__)


@dataclass
class FileResult:
    """
    Outcome of processing one file in a batch.

    Attributes:
        path: The input path
        output: Rewritten text, None if the file failed
        error: The failure, None if the file succeeded
    """
    path: Path
    output: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Preprocessor:
    """
    Rewrites extended assembly source into plain assembly.

    Each call processes one file with fresh scope, alias and label state;
    only the anonymous block counter is shared between calls (see the
    module docstring).

    Attributes:
        config: Dialect and policy settings
        evaluator: Optional external evaluator for escape payloads
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        evaluator: Optional[Evaluator] = None,
    ):
        self.config = config or Config()
        self.evaluator = evaluator
        self._anonymous = count()
        self._errors: list[Exception] = []

    def process_string(self, source: str, filename: str = "<input>") -> str:
        """
        Rewrite source text.

        Args:
            source: Source text
            filename: Name used in line markers and error messages

        Returns:
            The rewritten text

        Raises:
            PreprocessorError: If the file cannot be rewritten
        """
        if self.config.reset_anonymous_per_file:
            self._anonymous = count()

        rewriter = Rewriter(
            source,
            filename,
            config=self.config,
            evaluator=self.evaluator,
            anonymous=self._anonymous,
        )
        output = rewriter.rewrite()
        logger.debug(
            f"{filename}: {len(rewriter.scopes.all_scopes())} block(s), "
            f"{len(output)} characters out"
        )
        return output

    def process_file(self, path: Union[str, Path]) -> str:
        """
        Read and rewrite a source file.

        Raises:
            OSError: If the file cannot be read
            UnicodeDecodeError: If the file is not valid UTF-8
            PreprocessorError: If the file cannot be rewritten
        """
        path = Path(path)
        source = path.read_text(encoding="utf-8")
        return self.process_string(source, str(path))

    def process_files(self, paths: Iterable[Union[str, Path]]) -> Iterator[FileResult]:
        """
        Rewrite several files, one after another.

        A failure aborts only its own file: it is recorded, logged, and
        processing continues with the next path. Unreadable files and
        files that are not valid UTF-8 count as failures too. The error
        list starts empty for every batch.

        Yields:
            One FileResult per path, in order
        """
        self._errors = []
        for path in paths:
            path = Path(path)
            try:
                output = self.process_file(path)
            except (RasppError, OSError, UnicodeDecodeError) as e:
                logger.debug(f"{path}: failed: {e}")
                self._errors.append(e)
                yield FileResult(path, error=e)
            else:
                yield FileResult(path, output=output)

    # =========================================================================
    # Error Reporting
    # =========================================================================

    def has_errors(self) -> bool:
        """Return True if any file in the last process_files batch failed."""
        return bool(self._errors)

    def get_errors(self) -> list[Exception]:
        return list(self._errors)

    def get_error_report(self) -> str:
        """Format all recorded failures, one per paragraph."""
        return "\n".join(str(e) for e in self._errors)


def preprocess(source: str, filename: str = "<input>", config: Optional[Config] = None) -> str:
    """
    Convenience function to rewrite source text with a fresh Preprocessor.

    Args:
        source: Source text
        filename: Name used in line markers and error messages
        config: Settings (defaults to Config())

    Returns:
        The rewritten text
    """
    return Preprocessor(config).process_string(source, filename)
