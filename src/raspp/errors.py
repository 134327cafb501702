"""
raspp Error Hierarchy
=====================

This module defines the exception hierarchy for the assembly preprocessor.
All exceptions inherit from RasppError, allowing callers to catch every
preprocessor error with a single except clause if desired.

Exception Hierarchy
-------------------
RasppError (base)
└── PreprocessorError (raised while rewriting a file)
    ├── AliasError - problem with an alias definition or use
    │   ├── AliasCycleError - alias chain revisits a name
    │   └── AliasDefinitionError - alias target cannot be chased
    ├── UnbalancedScopeError - stray or unclosed scope block (strict mode)
    └── EvaluatorError - external escape evaluator failed

Error messages follow this format:
    filename:line:column: error: description
        source_line_text
        ^ (pointer to error location)
    hint: suggestion for fixing (when available)

Only hard failures are exceptions. Soft conditions (unterminated strings,
unrecognized text, a stray block close in lenient mode) never raise.
"""

from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class RasppError(Exception):
    """
    Base exception for all raspp errors.

        try:
            preprocessor.process_file("boot.S")
        except RasppError as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Source Location Tracking
# =============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    A location in source text for error reporting.

    Attributes:
        filename: Name of the source file (or "(stdin)" / "<input>")
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """
    filename: str
    line: int
    column: int

    def __str__(self) -> str:
        """Format as 'filename:line:column' for error messages."""
        return f"{self.filename}:{self.line}:{self.column}"


# =============================================================================
# Preprocessor Exceptions
# =============================================================================

class PreprocessorError(RasppError):
    """
    Base exception for errors raised while rewriting one file.

    A PreprocessorError aborts the current file only; the batch driver
    reports it and moves on to the next file.

    Attributes:
        message: The error description
        location: Where in the source the error occurred (optional)
        hint: A suggestion for fixing the error (optional)
        source_line: The source text of the offending line (optional)
    """

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        hint: Optional[str] = None,
        source_line: Optional[str] = None,
    ):
        self.message = message
        self.location = location
        self.hint = hint
        self.source_line = source_line
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """
        Format the error message with location, source context, and hint.

        Example output:
            boot.S:12:5: error: alias cycle: foo -> bar -> foo
                bar@foo
                ^
            hint: each name may alias only one value per scope
        """
        parts = []

        if self.location:
            parts.append(f"{self.location}: error: {self.message}")
        else:
            parts.append(f"error: {self.message}")

        if self.source_line is not None and self.location is not None:
            parts.append(f"    {self.source_line}")
            if self.location.column > 0:
                padding = " " * (4 + self.location.column - 1)
                parts.append(f"{padding}^")

        if self.hint:
            parts.append(f"hint: {self.hint}")

        return "\n".join(parts)


class AliasError(PreprocessorError):
    """Base class for alias table failures."""
    pass


class AliasCycleError(AliasError):
    """
    Alias chain does not terminate.

    Raised when following aliases revisits a name already seen in the
    same chase, or when the chase exceeds its hop bound.

    Example:
        move foo@bar, d0
        move bar@foo, d1    ; foo -> bar -> foo
    """

    def __init__(
        self,
        chain: list[str],
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.chain = list(chain)
        super().__init__(
            f"alias cycle: {' -> '.join(self.chain)}",
            location=location,
            hint="redefine one of the names instead of aliasing it back",
            source_line=source_line,
        )


class AliasDefinitionError(AliasError):
    """
    Alias definition whose target cannot be chased to a terminal value.

    Example:
        move d0@d0, d1      ; a name cannot alias itself
    """

    def __init__(
        self,
        name: str,
        target: str,
        location: Optional[SourceLocation] = None,
        source_line: Optional[str] = None,
    ):
        self.name = name
        self.target = target
        super().__init__(
            f"invalid alias '{name}@{target}'",
            location=location,
            hint="an alias must name a different identifier",
            source_line=source_line,
        )


class UnbalancedScopeError(PreprocessorError):
    """
    Scope block markers do not pair up.

    Only raised when strict scope checking is enabled; otherwise a stray
    close is ignored and an unclosed block is reported as a warning.
    """
    pass


class EvaluatorError(PreprocessorError):
    """
    The external escape evaluator raised while expanding a payload.

    The original exception is available as ``__cause__``.
    """
    pass
