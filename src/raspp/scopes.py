"""
Scopes, Labels and Aliases
==========================

This module holds the symbol state the rewriter consults while it works
through a file:

- **AliasTable**: one-to-one renames (`foo@a0`) for one block level
- **LabelTable**: local label name -> qualified symbol for one block level
- **Scope**: one block level, owning one of each table
- **ScopeStack**: every scope opened in the file, plus the stack of open ones

Both tables read through to the enclosing block's table on lookup and
only ever write to their own level. A name defined in an inner block
shadows the outer one until the inner block closes.

Qualified Symbols
-----------------
A label `n` inside block `x`, itself inside block `a`, becomes the
qualified symbol `a$x$n` (the separator is configurable). The symbol
depends only on the label name and the names of the enclosing blocks, so
resolving the same label twice gives the same text.

Example
-------
>>> stack = ScopeStack()
>>> stack.push("a").qualified
'a'
>>> stack.push("x").qualified
'a$x'
>>> stack.qualify("n")
'a$x$n'
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# Alias Table
# =============================================================================

class AliasTable:
    """
    One-to-one name -> value mapping for a single block level.

    Within one table a name aliases at most one value and a value is
    aliased by at most one name: defining (k, v) first drops any pair
    whose key is k and any pair whose value is v. Tables of enclosing
    blocks are never modified and stay visible until shadowed.

    Attributes:
        parent: Table of the enclosing block, None for the root
    """

    def __init__(self, parent: Optional["AliasTable"] = None):
        self.parent = parent
        self._k2v: dict[str, str] = {}
        self._v2k: dict[str, str] = {}

    def define(self, key: str, value: str) -> str:
        """
        Map `key` to `value` at this level, evicting conflicting pairs.

        Returns:
            The value, for chaining
        """
        old_value = self._k2v.pop(key, None)
        if old_value is not None:
            del self._v2k[old_value]

        old_key = self._v2k.pop(value, None)
        if old_key is not None:
            del self._k2v[old_key]

        self._k2v[key] = value
        self._v2k[value] = key
        return value

    def lookup(self, key: str) -> Optional[str]:
        """Return the value for `key`, searching enclosing levels, or None."""
        table: Optional[AliasTable] = self
        while table is not None:
            value = table._k2v.get(key)
            if value is not None:
                return value
            table = table.parent
        return None

    def lookup_reverse(self, value: str) -> Optional[str]:
        """Return the name aliasing `value`, searching enclosing levels, or None."""
        table: Optional[AliasTable] = self
        while table is not None:
            key = table._v2k.get(value)
            if key is not None:
                return key
            table = table.parent
        return None

    def chain_size(self) -> int:
        """Total number of pairs visible from this level, shadowed ones included."""
        size = 0
        table: Optional[AliasTable] = self
        while table is not None:
            size += len(table._k2v)
            table = table.parent
        return size

    def items(self) -> Iterator[tuple[str, str]]:
        """Iterate over the pairs defined at this level only."""
        return iter(self._k2v.items())

    def __contains__(self, key: str) -> bool:
        return key in self._k2v

    def __len__(self) -> int:
        return len(self._k2v)

    def __repr__(self) -> str:
        return f"AliasTable({self._k2v!r})"


# =============================================================================
# Label Table
# =============================================================================

class LabelTable:
    """
    Local label name -> qualified symbol mapping for a single block level.

    Several names may map to the same symbol. Lookup climbs to enclosing
    levels; define_if_absent writes to this level only, and an entry once
    made is never replaced.
    """

    def __init__(self, parent: Optional["LabelTable"] = None):
        self.parent = parent
        self._symbols: dict[str, str] = {}

    def define_if_absent(self, name: str, symbol: str) -> str:
        """
        Map `name` to `symbol` unless this level already defines `name`.

        Returns:
            The symbol `name` maps to at this level afterwards
        """
        return self._symbols.setdefault(name, symbol)

    def lookup(self, name: str) -> Optional[str]:
        """Return the symbol for `name`, searching enclosing levels, or None."""
        table: Optional[LabelTable] = self
        while table is not None:
            symbol = table._symbols.get(name)
            if symbol is not None:
                return symbol
            table = table.parent
        return None

    def __contains__(self, name: str) -> bool:
        return name in self._symbols

    def __len__(self) -> int:
        return len(self._symbols)

    def __repr__(self) -> str:
        return f"LabelTable({self._symbols!r})"


# =============================================================================
# Scope and Scope Stack
# =============================================================================

@dataclass
class Scope:
    """
    One block level.

    Attributes:
        name: The block's own name, None for the root
        qualified: Names of all enclosing blocks joined, None for the root
        parent: Index of the enclosing scope in the stack's arena
        labels: Label table for this level
        aliases: Alias table for this level
    """
    name: Optional[str]
    qualified: Optional[str]
    parent: Optional[int]
    labels: LabelTable = field(default_factory=LabelTable)
    aliases: AliasTable = field(default_factory=AliasTable)

    @property
    def is_root(self) -> bool:
        return self.parent is None


class ScopeStack:
    """
    Scopes opened while rewriting one file.

    Every scope ever opened is kept in an arena list and refers to its
    parent by index; the stack holds the arena indices of the currently
    open scopes, root first. The root scope is never popped.

    Attributes:
        separator: Joins block names and label names into qualified symbols
    """

    def __init__(self, separator: str = "$"):
        self.separator = separator
        self._arena: list[Scope] = [Scope(name=None, qualified=None, parent=None)]
        self._open: list[int] = [0]

    @property
    def current(self) -> Scope:
        """The innermost open scope."""
        return self._arena[self._open[-1]]

    @property
    def root(self) -> Scope:
        return self._arena[0]

    @property
    def depth(self) -> int:
        """Number of open blocks, not counting the root."""
        return len(self._open) - 1

    def parent_of(self, scope: Scope) -> Optional[Scope]:
        """Return the scope enclosing `scope`, None for the root."""
        if scope.parent is None:
            return None
        return self._arena[scope.parent]

    def qualify(self, name: str) -> str:
        """Return the qualified symbol for `name` in the current scope."""
        prefix = self.current.qualified
        if prefix is None:
            return name
        return f"{prefix}{self.separator}{name}"

    def push(self, name: str) -> Scope:
        """
        Open a block named `name` inside the current scope.

        Returns:
            The new, now current, scope
        """
        parent = self.current
        scope = Scope(
            name=name,
            qualified=self.qualify(name),
            parent=self._open[-1],
            labels=LabelTable(parent.labels),
            aliases=AliasTable(parent.aliases),
        )
        self._arena.append(scope)
        self._open.append(len(self._arena) - 1)
        logger.debug(f"Opened scope '{scope.qualified}' at depth {self.depth}")
        return scope

    def pop(self) -> Optional[Scope]:
        """
        Close the current block.

        Returns:
            The closed scope, or None if only the root is open
        """
        if self.depth == 0:
            return None
        scope = self._arena[self._open.pop()]
        logger.debug(f"Closed scope '{scope.qualified}'")
        return scope

    def open_scopes(self) -> list[Scope]:
        """The currently open scopes, outermost first, root excluded."""
        return [self._arena[index] for index in self._open[1:]]

    def all_scopes(self) -> list[Scope]:
        """Every scope opened so far, in opening order, root excluded."""
        return self._arena[1:]
