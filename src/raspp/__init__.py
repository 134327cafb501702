"""
raspp - Assembly Preprocessor
=============================

This package rewrites an extended assembly syntax into the plain syntax
accepted by a GNU-style target assembler. It is a single-pass textual
preprocessor: everything it does not recognize passes through unchanged.

Extended Syntax
---------------
- **Blocks with local labels**

      foo: {                #define scope foo
                            .fn foo
      loop:                 foo$loop:
          bra loop          bra foo$loop
      }                     #undef scope
                            .endfn

- **Inline unique aliases**

      move foo@a0, d0       move _(foo)a0, d0
      move foo, d1          move a0, d1
      move bar@a0, d2       move _(bar)a0, d2   (this drops foo)

- **Sigils for arguments and variables**

      @foo                  ARG(foo)
      $bar                  VAR(bar)

- **Square brackets for indirect addressing**

      [a0, 42]              (a0, 42)
      [-a0]                 -(a0)
      [a0+]                 (a0)+

- **Automatic immediate-mode prefix**

      add 4, d0             add #4, d0
      foo$ 4, d0            foo$ 4, d0      ($ marks a macro; no # added)
      .word 4               .word 4         (. marks a pseudo-op)

The output relies on a preamble (the `_()`, `.fn`, `ARG()` and `VAR()`
macros) supplied by the build, not by this package.

Quick Start
-----------
    >>> from raspp import Preprocessor
    >>> pp = Preprocessor()
    >>> text = pp.process_file("boot.S")

Or use the command-line tool:
    $ raspp boot.S > boot.s
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from raspp.config import Config
from raspp.errors import (
    RasppError,
    SourceLocation,
    PreprocessorError,
    AliasError,
    AliasCycleError,
    AliasDefinitionError,
    UnbalancedScopeError,
    EvaluatorError,
)
from raspp.lexer import Scanner, Token, TokenType
from raspp.scopes import AliasTable, LabelTable, Scope, ScopeStack
from raspp.rewriter import Evaluator, LineKind, Rewriter
from raspp.preprocessor import FileResult, Preprocessor, preprocess

__all__ = [
    # Version info
    "__version__",
    # Main interface
    "Preprocessor",
    "FileResult",
    "preprocess",
    "Config",
    # Engine
    "Rewriter",
    "LineKind",
    "Evaluator",
    # Scanner
    "Scanner",
    "Token",
    "TokenType",
    # Symbol state
    "AliasTable",
    "LabelTable",
    "Scope",
    "ScopeStack",
    # Exception hierarchy
    "RasppError",
    "SourceLocation",
    "PreprocessorError",
    "AliasError",
    "AliasCycleError",
    "AliasDefinitionError",
    "UnbalancedScopeError",
    "EvaluatorError",
]
