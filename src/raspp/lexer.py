"""
Assembly Preprocessor Scanner
=============================

This module implements the scanner that feeds the rewriter. It classifies
the text at a cursor into exactly one token, using a single compiled
pattern whose alternatives are tried in a fixed order, and never looks
back into text it has already consumed.

Token Types
-----------
- EOL: End of line (a newline character)
- SCOPE_BEGIN: Block opener: a whole `name: {` or `{` line (with the newline
  before it), or an inline `name: {` / `{`
- SCOPE_END: Block closer: a whole `}` line, or an inline `}`
- WHITESPACE: Spaces, tabs and backslash line continuations
- COMMENT: `//` comment to end of line
- STRING: Double-quoted string or single-quoted character literal
- ESCAPE: Backtick-delimited payload for an external evaluator
- IDENTIFIER: Name, optionally followed by `:`/`::`, `@target` or `= target`
- ARGUMENT / VARIABLE: `@name` / `$name` sigils
- NUMBER: A digit followed by identifier characters
- INDIRECT_BEGIN / INDIRECT_END: `[` and `]`, with `-`/`+` markers
- SEPARATOR: `;` statement separator
- OTHER: Anything else, coalesced into one span

The scanner is total: every input, however malformed, is covered by some
token, and an unterminated string or escape at end of line is accepted
as-is. Every brace is a block marker token. A marker on a line of its own
always opens or closes a block; an inline one only does so at the start
of a statement (after a newline, a `;`, a label or another marker), and
is plain text anywhere else.

Example
-------
>>> from raspp.lexer import Scanner
>>> for token in Scanner("add 4, d0", "example.S").tokenize():
...     print(token)
Token(IDENTIFIER, 'add', 1:1)
Token(WHITESPACE, ' ', 1:4)
Token(NUMBER, '4', 1:5)
Token(OTHER, ',', 1:6)
Token(WHITESPACE, ' ', 1:7)
Token(IDENTIFIER, 'd0', 1:8)
Token(EOF, '', 1:10)
"""

from bisect import bisect_right
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional
import re

from raspp.errors import SourceLocation


# =============================================================================
# Token Type Enumeration
# =============================================================================

class TokenType(Enum):
    """Closed set of token kinds produced by the scanner."""

    # Structural tokens
    EOL = auto()
    SCOPE_BEGIN = auto()
    SCOPE_END = auto()
    EOF = auto()

    # Passthrough tokens
    WHITESPACE = auto()
    COMMENT = auto()
    STRING = auto()
    OTHER = auto()

    # Rewritten tokens
    IDENTIFIER = auto()
    ARGUMENT = auto()
    VARIABLE = auto()
    NUMBER = auto()
    INDIRECT_BEGIN = auto()
    INDIRECT_END = auto()
    SEPARATOR = auto()
    ESCAPE = auto()


# =============================================================================
# Token Data Class
# =============================================================================

@dataclass(frozen=True)
class Token:
    """
    A single token with its exact source span.

    Attributes:
        type: The TokenType classification
        text: The matched source text, for verbatim passthrough
        offset: Offset of the first character in the source
        line: Line number of the first character (1-indexed)
        column: Column number of the first character (1-indexed)
        filename: Name of the source file
        name: Identifier, sigil or scope name (when the kind has one)
        target: Alias target for `name@target` / `name = target`
        colon: Label suffix, ":" or "::"
        inc: Increment/decrement marker on an indirect bracket
        payload: Escape payload without its delimiters
    """
    type: TokenType
    text: str
    offset: int
    line: int
    column: int
    filename: str
    name: Optional[str] = None
    target: Optional[str] = None
    colon: Optional[str] = None
    inc: str = ""
    payload: Optional[str] = None

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.text!r}, {self.line}:{self.column})"

    @property
    def end(self) -> int:
        """Offset just past the last character of the token."""
        return self.offset + len(self.text)

    @property
    def newlines(self) -> int:
        """Number of line breaks inside the token text."""
        return self.text.count("\n")

    @property
    def starts_line(self) -> bool:
        """True for a block marker that carries the newline before its line."""
        return self.text.startswith("\n")

    @property
    def location(self) -> SourceLocation:
        """Return a SourceLocation for error reporting."""
        return SourceLocation(self.filename, self.line, self.column)


# =============================================================================
# Patterns
# =============================================================================

# Identifiers may contain "." and "$" but may not start with a digit or "$"
ID = r"(?![\d$])[\w.$]+"

# Rest of a block marker line: blanks, optional comment, then end of line
_MARKER_TAIL = r"[ \t]*(?://[^\n]*)?\r?(?=\n|\Z)"

# `name: {`, `name:` (optionally commented) + newline + `{`, or a bare `{`
_SCOPE_OPEN = (
    rf"[ \t]*(?:(?P<scope>{ID})[ \t]*:[ \t]*(?:(?://[^\n]*)?\r?\n[ \t]*)?)?"
    rf"\{{{_MARKER_TAIL}"
)

_SCOPE_CLOSE = rf"[ \t]*\}}{_MARKER_TAIL}"

TOKEN_PATTERN = re.compile(
    rf"""
      (?P<scope_begin> (?:\n|\A) {_SCOPE_OPEN} )
    | (?P<scope_end>   (?:\n|\A) {_SCOPE_CLOSE} )
    | (?P<eol>         \n )
    | (?P<ws>          (?:[ \t]|\\\n)+ )
    | (?P<comment>     //[^\n]* )
    | (?P<string>      "(?:[^\\"\n]|\\[^\n]?)*"? | '(?:[^\\'\n]|\\[^\n]?)*'? )
    | (?P<escape>      `(?P<payload>[^`\n]*)`? )
    | (?P<block_begin> (?: (?P<block>{ID}) [ \t]*:[ \t]* )? \{{ (?:{_MARKER_TAIL})? )
    | (?P<block_end>   \}} (?:{_MARKER_TAIL})? )
    | (?P<ident>       (?P<id>{ID})
                       (?: (?P<colon>::?)(?!:)
                         | @(?P<at_target>{ID})
                         | [ \t]*=[ \t]*(?P<eq_target>{ID})
                       )? )
    | (?P<argument>    @(?P<arg_name>{ID}) )
    | (?P<variable>    \$(?P<var_name>{ID}) )
    | (?P<number>      \d[\w.]* )
    | (?P<ibegin>      \[ (?: (?P<pre>[-+]) (?=[ \t]*{ID}[ \t]*\]) )? )
    | (?P<iend>        (?P<post>[-+])? \] )
    | (?P<separator>   ; )
    | (?P<other>       (?: [^ \t\w\n@$.\[\]\-+/\\"'`;{{}}]
                         | [@$] (?=\d|[^\w.$]|\Z)
                         | [-+] (?!\])
                         | / (?!/)
                         | \\ (?!\n)
                       )+ )
    | (?P<any>         [\s\S] )
    """,
    re.VERBOSE,
)

_SIMPLE_KINDS = {
    "eol": TokenType.EOL,
    "ws": TokenType.WHITESPACE,
    "comment": TokenType.COMMENT,
    "string": TokenType.STRING,
    "number": TokenType.NUMBER,
    "separator": TokenType.SEPARATOR,
    "other": TokenType.OTHER,
    "any": TokenType.OTHER,
}


# =============================================================================
# Scanner Implementation
# =============================================================================

class Scanner:
    """
    Classifies assembly source text into tokens.

    Usage:
        scanner = Scanner(source_text, filename)
        tokens = list(scanner.tokenize())

    or, one token at a time:
        token, cursor = scanner.next_token(cursor)

    Attributes:
        source: The source text being scanned
        filename: Name of the source file (for token locations)
    """

    def __init__(self, source: str, filename: str = "<input>"):
        self.source = source
        self.filename = filename

        # Offsets of the first character of every line, for locations
        self._line_starts = [0]
        self._line_starts.extend(m.end() for m in re.finditer(r"\n", source))

    def tokenize(self) -> Iterator[Token]:
        """
        Generate tokens from the whole source.

        Yields:
            Token objects in source order, ending with one EOF token
        """
        cursor = 0
        while True:
            token, cursor = self.next_token(cursor)
            yield token
            if token.type is TokenType.EOF:
                return

    def next_token(self, cursor: int) -> tuple[Token, int]:
        """
        Scan one token starting exactly at `cursor`.

        Args:
            cursor: Offset into the source

        Returns:
            The token and the offset just past it. At end of input the
            token is EOF and the cursor does not move.
        """
        if cursor >= len(self.source):
            return self._make_token(TokenType.EOF, "", cursor), cursor

        match = TOKEN_PATTERN.match(self.source, cursor)
        # The [\s\S] fallback guarantees a match of at least one character
        assert match is not None and match.end() > cursor

        return self._classify(match), match.end()

    # =========================================================================
    # Token Creation
    # =========================================================================

    def _classify(self, match: re.Match) -> Token:
        """Turn a pattern match into a Token of the matching kind."""
        kind = match.lastgroup
        text = match.group(0)
        start = match.start()

        if kind == "scope_begin":
            return self._make_token(
                TokenType.SCOPE_BEGIN, text, start, name=match.group("scope")
            )
        if kind == "block_begin":
            return self._make_token(
                TokenType.SCOPE_BEGIN, text, start, name=match.group("block")
            )
        if kind == "scope_end" or kind == "block_end":
            return self._make_token(TokenType.SCOPE_END, text, start)
        if kind == "ident":
            target = match.group("at_target") or match.group("eq_target")
            return self._make_token(
                TokenType.IDENTIFIER,
                text,
                start,
                name=match.group("id"),
                target=target,
                colon=match.group("colon"),
            )
        if kind == "argument":
            return self._make_token(
                TokenType.ARGUMENT, text, start, name=match.group("arg_name")
            )
        if kind == "variable":
            return self._make_token(
                TokenType.VARIABLE, text, start, name=match.group("var_name")
            )
        if kind == "ibegin":
            return self._make_token(
                TokenType.INDIRECT_BEGIN, text, start, inc=match.group("pre") or ""
            )
        if kind == "iend":
            return self._make_token(
                TokenType.INDIRECT_END, text, start, inc=match.group("post") or ""
            )
        if kind == "escape":
            return self._make_token(
                TokenType.ESCAPE, text, start, payload=match.group("payload")
            )

        return self._make_token(_SIMPLE_KINDS[kind], text, start)

    def _make_token(self, token_type: TokenType, text: str, offset: int, **captures) -> Token:
        line, column = self.locate(offset)
        return Token(
            type=token_type,
            text=text,
            offset=offset,
            line=line,
            column=column,
            filename=self.filename,
            **captures,
        )

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def locate(self, offset: int) -> tuple[int, int]:
        """Return the (line, column) of a source offset, both 1-indexed."""
        index = bisect_right(self._line_starts, offset) - 1
        return index + 1, offset - self._line_starts[index] + 1

    def line_text(self, line: int) -> str:
        """
        Get the text of a source line, without its newline.

        Useful for error reporting.
        """
        if line < 1 or line > len(self._line_starts):
            return ""
        start = self._line_starts[line - 1]
        end = self.source.find("\n", start)
        if end == -1:
            end = len(self.source)
        return self.source[start:end]

    # =========================================================================
    # Label Pre-Scan
    # =========================================================================

    def block_labels(self, start: int) -> list[str]:
        """
        List the labels a block defines, without consuming any input.

        Scans from `start` (the end of the block's opening marker) to the
        block's closing marker, collecting every `name:` at statement
        position and the names of directly nested blocks. Labels inside
        nested blocks belong to those blocks and are skipped; `name::`
        global labels are skipped too.

        A statement starts after a newline, a `;`, a block marker or a
        label. Braces anywhere else are not block markers.

        Args:
            start: Offset where the block body begins

        Returns:
            Label names in source order, as written (local markers included)
        """
        names: list[str] = []
        depth = 0
        at_statement = True
        cursor = start

        while True:
            token, cursor = self.next_token(cursor)
            kind = token.type

            if kind is TokenType.EOF:
                break
            if kind is TokenType.WHITESPACE or kind is TokenType.COMMENT:
                continue
            if kind is TokenType.EOL or kind is TokenType.SEPARATOR:
                at_statement = True
                continue

            marker = at_statement or token.starts_line
            if kind is TokenType.SCOPE_BEGIN and marker:
                if depth == 0 and token.name:
                    names.append(token.name)
                depth += 1
                at_statement = True
            elif kind is TokenType.SCOPE_END and marker:
                if depth == 0:
                    break
                depth -= 1
                at_statement = True
            elif kind is TokenType.IDENTIFIER and at_statement and token.colon:
                if depth == 0 and token.colon == ":":
                    names.append(token.name)
            else:
                at_statement = False

        return names
