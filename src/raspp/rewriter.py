"""
Rewriter
========

This module implements the single-pass rewrite engine. It pulls tokens
from the Scanner one at a time and appends the rewritten text of each to
an output buffer, in input order.

Rewrites
--------
| Input               | Output                         | Notes                      |
|---------------------|--------------------------------|----------------------------|
| `foo: {` ... `}`    | `#define scope foo` / `.fn foo`| block; labels inside local |
|                     | ... `#undef scope` / `.endfn`  |                            |
| `a: { x: { } }`     | nested blocks, one per line    | inline `{`/`}` only at     |
|                     |                                | statement start            |
| `loop:` in block    | `foo$loop:`                    | pre-scanned, so forward    |
| `.loop`             | `foo$loop`                     | references work            |
| `name::`            | `name: .global name;`          | global label               |
| `foo@a0`, `foo = a0`| `_(foo)a0`                     | alias definition           |
| `foo`               | `a0`                           | alias use                  |
| `[a0, 42]`          | `(a0, 42)`                     | indirect addressing        |
| `[-a0]`, `[a0+]`    | `-(a0)`, `(a0)+`               | pre-dec / post-inc         |
| `@arg`, `$var`      | `ARG(arg)`, `VAR(var)`         | sigils                     |
| `add 4, d0`         | `add #4, d0`                   | instructions only          |
| `.word 4`, `m$ 4`   | unchanged                      | pseudo-ops and macros      |

Line Classification
-------------------
Each line starts unclassified. The first identifier (other than a label
definition) is the mnemonic and fixes the line as PSEUDO (it starts with
"." or contains "$") or INSTRUCTION. Any other visible token seen first,
such as the "#" of a "#define", fixes the line as PSEUDO. Only numeric
literals in INSTRUCTION lines receive the immediate marker, and only
when they start an operand outside brackets.

Line Markers
------------
Opening or closing a block emits a `# <line> "<file>"` marker naming the
source line that follows, so downstream tools can map output lines back
to the original source. After an inline marker the rest of its source
line continues on a new output line, under a marker for that same line.
"""

from enum import Enum, auto
from itertools import count
from typing import Callable, Iterator, Optional
import logging

from raspp.config import Config
from raspp.errors import (
    AliasCycleError,
    AliasDefinitionError,
    EvaluatorError,
    SourceLocation,
    UnbalancedScopeError,
)
from raspp.lexer import Scanner, Token, TokenType
from raspp.scopes import ScopeStack

logger = logging.getLogger(__name__)

# Signature of the external escape evaluator: payload -> replacement text
Evaluator = Callable[[str], str]


class LineKind(Enum):
    """Classification of the current logical line."""
    NONE = auto()
    INSTRUCTION = auto()
    PSEUDO = auto()


class Rewriter:
    """
    Rewrites one file of extended assembly into plain assembly.

    A Rewriter is single-use: construct it with the source, call
    rewrite() once, and read the scope state afterwards if needed.

    Attributes:
        source: The source text
        filename: Name used in locations and line markers
        config: Dialect and policy settings
        scopes: Scope stack for this file
    """

    def __init__(
        self,
        source: str,
        filename: str = "<input>",
        config: Optional[Config] = None,
        evaluator: Optional[Evaluator] = None,
        anonymous: Optional[Iterator[int]] = None,
    ):
        """
        Initialize the rewriter.

        Args:
            source: Source text to rewrite
            filename: Source filename for markers and error reporting
            config: Settings (defaults to Config())
            evaluator: Called with the payload of each `escape` token;
                       when None, escapes pass through unchanged
            anonymous: Numbers for anonymous blocks; share one iterator
                       between rewriters to keep numbering unique
        """
        self.source = source
        self.filename = filename
        self.config = config or Config()
        self.evaluator = evaluator
        self.scopes = ScopeStack(self.config.separator)

        self._scanner = Scanner(source, filename)
        self._anonymous = anonymous if anonymous is not None else count()
        self._out: list[str] = []

        # Per-line state
        self._kind = LineKind.NONE
        self._operand_start = False
        self._sign_at: Optional[int] = None
        self._bracket_depth = 0

    def rewrite(self) -> str:
        """
        Rewrite the whole source.

        Returns:
            The rewritten text

        Raises:
            PreprocessorError: On alias cycles, invalid aliases, evaluator
                failures, or unbalanced blocks in strict mode
        """
        for token in self._scanner.tokenize():
            self._dispatch(token)
        return "".join(self._out)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _dispatch(self, token: Token) -> None:
        kind = token.type

        if kind is TokenType.WHITESPACE or kind is TokenType.COMMENT:
            self._emit(token.text)
        elif kind is TokenType.IDENTIFIER:
            self._on_identifier(token)
        elif kind is TokenType.NUMBER:
            self._on_number(token)
        elif kind is TokenType.ARGUMENT:
            self._on_operand(self.config.argument_format.format(name=token.name))
        elif kind is TokenType.VARIABLE:
            self._on_operand(self.config.variable_format.format(name=token.name))
        elif kind is TokenType.INDIRECT_BEGIN:
            self._bracket_depth += 1
            self._on_operand(f"{token.inc}(")
        elif kind is TokenType.INDIRECT_END:
            self._bracket_depth = max(0, self._bracket_depth - 1)
            self._on_operand(f"){token.inc}")
        elif kind is TokenType.STRING:
            self._on_operand(token.text)
        elif kind is TokenType.OTHER:
            self._on_other(token)
        elif kind is TokenType.ESCAPE:
            self._on_escape(token)
        elif kind is TokenType.SEPARATOR:
            self._emit(token.text)
            self._end_statement()
        elif kind is TokenType.EOL:
            self._emit(token.text)
            self._end_statement()
        elif kind is TokenType.SCOPE_BEGIN:
            self._on_scope_begin(token)
        elif kind is TokenType.SCOPE_END:
            self._on_scope_end(token)
        elif kind is TokenType.EOF:
            self._on_eof(token)
        else:
            raise AssertionError(f"unhandled token kind {kind}")

    # =========================================================================
    # Handlers
    # =========================================================================

    def _on_identifier(self, token: Token) -> None:
        if self._kind is LineKind.NONE:
            if token.colon:
                self._on_label(token)
                return
            # Mnemonic: emitted as written, fixes the line classification
            self._classify(LineKind.PSEUDO if self.config.is_pseudo(token.name)
                           else LineKind.INSTRUCTION)
            self._emit(token.text)
            self._operand_start = True
            return

        if token.target is not None:
            self._on_alias(token)
            return

        self._on_operand(self._resolve(token.name, token) + (token.colon or ""))

    def _on_label(self, token: Token) -> None:
        name = token.name
        if token.colon == "::":
            self._emit(f"{name}: .global {name};")
        else:
            self._emit(f"{self._localize(name)}:")

    def _on_alias(self, token: Token) -> None:
        name, target = token.name, token.target
        if name == target:
            raise AliasDefinitionError(
                name, target, token.location, self._scanner.line_text(token.line)
            )

        self.scopes.current.aliases.define(name, target)
        logger.debug(f"{token.location}: alias {name} -> {target}")

        value = self._localize(
            self._chase(target, token, chain=[name]), define=self._defines_labels()
        )
        self._on_operand(self.config.alias_note.format(name=name) + value)

    def _on_number(self, token: Token) -> None:
        self._classify(LineKind.PSEUDO)
        if self._wants_immediate(token):
            prefix = self.config.immediate_prefix
            if self._sign_at is not None:
                # "-4" at operand start becomes "#-4"
                self._out.insert(self._sign_at, prefix)
            else:
                self._emit(prefix)
        self._on_operand(token.text)

    def _on_other(self, token: Token) -> None:
        self._classify(LineKind.PSEUDO)
        head = token.text.rstrip("-+~")
        signs = token.text[len(head):]

        if not (head.endswith(",") or (head == "" and self._operand_start)):
            self._emit(token.text)
            self._operand_start = False
            self._sign_at = None
            return

        # Operand separator and/or unary signs at the start of an operand
        self._emit(head)
        self._operand_start = True
        if head:
            self._sign_at = None
        if signs and self._sign_at is None:
            self._sign_at = len(self._out)
        self._emit(signs)

    def _on_escape(self, token: Token) -> None:
        self._classify(LineKind.PSEUDO)
        if self.evaluator is None:
            self._on_operand(token.text)
            return
        try:
            replacement = self.evaluator(token.payload)
        except Exception as e:
            raise EvaluatorError(
                f"escape evaluation failed: {e}",
                location=token.location,
                source_line=self._scanner.line_text(token.line),
            ) from e
        self._on_operand(str(replacement))

    def _on_scope_begin(self, token: Token) -> None:
        if not self._is_marker(token):
            self._on_operand(token.text)
            return
        self._start_marker(token)

        name = token.name
        if not name:
            name = self.config.anonymous_format.format(index=next(self._anonymous))

        outer = self.scopes.current
        scope = self.scopes.push(name)

        # Pre-scan the body so labels resolve before their definition
        for label in self._scanner.block_labels(token.end):
            bare = self.config.strip_local(label)
            scope.labels.define_if_absent(bare, self.scopes.qualify(bare))

        lines = []
        if outer.qualified is not None:
            lines.append("#undef scope")
        lines.append(f"#define scope {scope.qualified}")
        lines.append(f".fn {scope.qualified}")
        self._emit("\n".join(lines))
        self._finish_marker(token)

    def _on_scope_end(self, token: Token) -> None:
        if not self._is_marker(token):
            self._on_operand(token.text)
            return
        self._start_marker(token)

        closed = self.scopes.pop()
        if closed is None:
            line = token.line + token.newlines
            if self.config.strict_scopes:
                raise UnbalancedScopeError(
                    "block close without a matching open",
                    location=self._line_location(line),
                    source_line=self._scanner.line_text(line),
                )
            logger.warning(f"{self.filename}:{line}: ignoring block close without a matching open")
            return

        lines = ["#undef scope", ".endfn"]
        outer = self.scopes.current
        if outer.qualified is not None:
            lines.append(f"#define scope {outer.qualified}")
        self._emit("\n".join(lines))
        self._finish_marker(token)

    def _on_eof(self, token: Token) -> None:
        unclosed = self.scopes.open_scopes()
        if not unclosed:
            return
        names = ", ".join(f"'{scope.qualified}'" for scope in unclosed)
        if self.config.strict_scopes:
            raise UnbalancedScopeError(
                f"unclosed block(s) at end of input: {names}",
                location=token.location,
                hint="add a '}' line for each open block",
            )
        logger.warning(f"{self.filename}: unclosed block(s) at end of input: {names}")

    # =========================================================================
    # Name Resolution
    # =========================================================================

    def _resolve(self, name: str, token: Token) -> str:
        """Follow aliases from `name`, then localize the final name."""
        return self._localize(self._chase(name, token), define=self._defines_labels())

    def _chase(self, name: str, token: Token, chain: Optional[list[str]] = None) -> str:
        """
        Follow the alias chain starting at `name` to its final value.

        Names in `chain` count as already visited. The number of hops is
        bounded by the number of visible aliases plus one.

        Raises:
            AliasCycleError: If a name is visited twice or the bound is hit
        """
        aliases = self.scopes.current.aliases
        chain = list(chain or []) + [name]
        seen = set(chain)
        current = name

        for _ in range(aliases.chain_size() + 1):
            value = aliases.lookup(current)
            if value is None:
                return current
            chain.append(value)
            if value in seen:
                break
            seen.add(value)
            current = value

        raise AliasCycleError(
            chain, token.location, self._scanner.line_text(token.line)
        )

    def _localize(self, name: str, define: bool = True) -> str:
        """
        Replace a label name with its qualified symbol, if it has one.

        A name carrying the local marker that no enclosing block defines
        is defined in the current block on first use, unless `define` is
        False. Operands of pseudo-ops never define labels, so that
        `.section .text` stays as written.
        """
        bare = self.config.strip_local(name)
        symbol = self.scopes.current.labels.lookup(bare)
        if symbol is None and define and self.config.is_local(name):
            symbol = self.scopes.current.labels.define_if_absent(
                bare, self.scopes.qualify(bare)
            )
        return symbol if symbol is not None else name

    # =========================================================================
    # Output and Line State
    # =========================================================================

    def _emit(self, text: str) -> None:
        if text:
            self._out.append(text)

    def _on_operand(self, text: str) -> None:
        """Emit an operand part; numbers after it no longer start an operand."""
        self._classify(LineKind.PSEUDO)
        self._emit(text)
        self._operand_start = False
        self._sign_at = None

    def _classify(self, kind: LineKind) -> None:
        """Fix the line classification if it is still open."""
        if self._kind is LineKind.NONE:
            self._kind = kind

    def _defines_labels(self) -> bool:
        return self._kind is LineKind.INSTRUCTION

    def _wants_immediate(self, token: Token) -> bool:
        if self._kind is not LineKind.INSTRUCTION:
            return False
        if not self._operand_start or self._bracket_depth:
            return False
        # "4(a0)" is a displacement, not an immediate
        return not self.source.startswith("(", token.end)

    def _end_statement(self) -> None:
        self._kind = LineKind.NONE
        self._operand_start = False
        self._sign_at = None
        self._bracket_depth = 0

    def _sync(self, line: int) -> None:
        if self.config.line_markers:
            self._emit(f'\n# {line} "{self.filename}"')

    def _is_marker(self, token: Token) -> bool:
        """A brace opens or closes a block only at the start of a statement."""
        return token.starts_line or self._kind is LineKind.NONE

    def _start_marker(self, token: Token) -> None:
        """Put the block prologue or epilogue at the start of an output line."""
        self._end_statement()
        if token.starts_line:
            self._emit("\n")
            return
        # Inline marker: drop the indentation before it, break the line
        while self._out and not self._out[-1].strip(" \t"):
            self._out.pop()
        if self._out and not self._out[-1].endswith("\n"):
            self._emit("\n")

    def _finish_marker(self, token: Token) -> None:
        """Sync to the source line that the following output comes from."""
        line = token.line + token.newlines
        if self._ends_line(token):
            self._sync(line + 1)
        else:
            # The rest of this source line follows on a line of its own
            self._sync(line)
            self._emit("\n")

    def _ends_line(self, token: Token) -> bool:
        return token.end >= len(self.source) or self.source.startswith("\n", token.end)

    def _line_location(self, line: int) -> SourceLocation:
        return SourceLocation(self.filename, line, 1)
