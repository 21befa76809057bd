"""Scope-aware symbol table for the PL/0C compiler."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterator, List, Optional


class SymbolKind(Enum):
    """What a declared name stands for."""

    CONSTANT = auto()   # value = literal
    VARIABLE = auto()   # value = frame offset
    PROCEDURE = auto()  # value = entry address
    FUNCTION = auto()   # value = entry address


@dataclass
class Symbol:
    """A symbol table entry."""

    name: str
    kind: SymbolKind
    level: int
    value: int = 0
    arity: int = 0  # Formal parameter count, for procedures and functions


class SymbolTable:
    """A multimap from names to declarations.

    Each name maps to a stack of entries, one per block level that declares
    it. Lookups pick the entry from the deepest level, so inner declarations
    shadow outer ones until ``purge()`` drops them at the end of their block.
    """

    def __init__(self):
        self._entries: Dict[str, List[Symbol]] = {}

    def declare(self, symbol: Symbol) -> Symbol:
        """Insert ``symbol``, keeping any other entries with the same name.

        Callers check ``is_declared()`` first; two entries with the same
        name and level are never inserted.
        """
        self._entries.setdefault(symbol.name, []).append(symbol)
        return symbol

    def is_declared(self, name: str, level: int) -> bool:
        """Is ``name`` already declared at exactly ``level``?"""
        return any(entry.level == level for entry in self._entries.get(name, ()))

    def resolve(self, name: str) -> Optional[Symbol]:
        """Return the innermost visible declaration of ``name``, or None."""
        entries = self._entries.get(name)
        if not entries:
            return None
        return max(entries, key=lambda entry: entry.level)

    def purge(self, level: int) -> List[Symbol]:
        """Remove, and return, every entry declared at ``level``."""
        removed = []
        for name in list(self._entries):
            entries = self._entries[name]
            kept = [entry for entry in entries if entry.level != level]
            removed.extend(entry for entry in entries if entry.level == level)
            if kept:
                self._entries[name] = kept
            else:
                del self._entries[name]
        return removed

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[Symbol]:
        for entries in self._entries.values():
            yield from entries

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
